from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kosh.core.constants import BillType, EntityType
from kosh.dependencies import get_db, get_write_db
from kosh.schemas.transaction import (
    AccountSummary,
    BillBalance,
    LedgerStatement,
    NoteCreate,
    PaymentCreate,
    TransactionRead,
)
from kosh.services import ledger_service

router = APIRouter(tags=["Ledger"])


@router.post("/payments", response_model=TransactionRead, status_code=201)
def record_payment(payload: PaymentCreate, db: Session = Depends(get_write_db)):
    return TransactionRead.model_validate(ledger_service.record_payment(db, payload))


@router.post("/notes", response_model=TransactionRead, status_code=201)
def record_note(payload: NoteCreate, db: Session = Depends(get_write_db)):
    return TransactionRead.model_validate(ledger_service.record_note(db, payload))


@router.post("/transactions/{transaction_id}/cancel", response_model=TransactionRead)
def cancel_transaction(transaction_id: int, db: Session = Depends(get_write_db)):
    return TransactionRead.model_validate(ledger_service.cancel_transaction(db, transaction_id))


@router.get("/bills/{bill_type}/{bill_id}/balance", response_model=BillBalance)
def bill_balance(bill_type: BillType, bill_id: int, db: Session = Depends(get_db)):
    return ledger_service.bill_balance(db, bill_type, bill_id)


@router.get("/ledger/{entity_type}/{entity_id}", response_model=LedgerStatement)
def entity_ledger(
    entity_type: EntityType,
    entity_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
):
    return ledger_service.entity_ledger(db, entity_type, entity_id, start_date, end_date)


@router.get("/ledger/{entity_type}/{entity_id}/summary", response_model=AccountSummary)
def account_summary(entity_type: EntityType, entity_id: int, db: Session = Depends(get_db)):
    return ledger_service.account_summary(db, entity_type, entity_id)
