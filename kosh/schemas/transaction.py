from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from kosh.core.constants import BillType, EntityType, TransactionType


class PaymentCreate(BaseModel):
    type: TransactionType = TransactionType.PAYMENT_IN
    amount: float = Field(gt=0)
    entity_type: Optional[EntityType] = None
    entity_id: Optional[int] = None
    bill_type: Optional[BillType] = None
    bill_id: Optional[int] = None
    payment_mode: str = "Cash"
    transaction_date: Optional[date] = None
    note: Optional[str] = None
    allow_overpayment: bool = False


class NoteCreate(BaseModel):
    type: TransactionType = TransactionType.CREDIT_NOTE
    amount: float = Field(gt=0)
    entity_type: Optional[EntityType] = None
    entity_id: Optional[int] = None
    bill_type: Optional[BillType] = None
    bill_id: Optional[int] = None
    gst_amount: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    transaction_date: Optional[date] = None
    note: Optional[str] = None


class TransactionRead(BaseModel):
    id: int
    reference_no: str
    type: TransactionType
    bill_id: Optional[int]
    bill_type: Optional[str]
    entity_id: Optional[int]
    entity_type: Optional[str]
    transaction_date: date
    amount: float
    payment_mode: Optional[str]
    status: str
    note: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerRow(BaseModel):
    row_date: date
    kind: str
    source_id: int
    reference_no: str
    debit: float = 0
    credit: float = 0
    balance: float = 0
    note: Optional[str] = None


class LedgerStatement(BaseModel):
    entity_type: EntityType
    entity_id: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    opening_balance: float
    rows: List[LedgerRow]
    closing_balance: float


class AccountSummary(BaseModel):
    entity_type: EntityType
    entity_id: int
    total_billed: float
    total_bills: int
    total_paid: float
    total_credit_notes: float
    total_debit_notes: float
    outstanding_balance: float


class BillBalance(BaseModel):
    bill_type: BillType
    bill_id: int
    total_amount: float
    paid: float
    outstanding: float
