"""Money movements, bill balances and customer/supplier statements.

Balances are signed from the shop's point of view of what is still owed on
the account: a customer's balance is what the customer owes the shop, a
supplier's balance is what the shop owes the supplier. Bills raise the
balance; payments and notes move it according to ``_EFFECTS``.
"""

import logging
from datetime import date
from typing import Optional, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from kosh.core import dates
from kosh.core.constants import (
    INACTIVE_BILL_STATUSES,
    STATUS_CANCELLED,
    TRANSACTION_REFERENCE_TYPES,
    BillType,
    EntityType,
    TransactionType,
)
from kosh.core.exceptions import InvariantViolation, NotFoundError, OverpaymentError
from kosh.database.session import flush_or_reject
from kosh.models.parties import Customer, Supplier
from kosh.models.purchase import Purchase
from kosh.models.sales import Sale
from kosh.models.transaction import Transaction
from kosh.schemas.transaction import (
    AccountSummary,
    BillBalance,
    LedgerRow,
    LedgerStatement,
    NoteCreate,
    PaymentCreate,
)
from kosh.services.reference_service import generate_reference

logger = logging.getLogger(__name__)

_MONEY_EPSILON = 0.005

_EFFECTS = {
    EntityType.CUSTOMER: {
        TransactionType.PAYMENT_IN: -1,
        TransactionType.CREDIT_NOTE: -1,
        TransactionType.PAYMENT_OUT: 1,
        TransactionType.DEBIT_NOTE: 1,
    },
    EntityType.SUPPLIER: {
        TransactionType.PAYMENT_OUT: -1,
        TransactionType.DEBIT_NOTE: -1,
        TransactionType.PAYMENT_IN: 1,
        TransactionType.CREDIT_NOTE: 1,
    },
}

_BILL_PAYMENT_TYPE = {
    BillType.SALE: TransactionType.PAYMENT_IN,
    BillType.PURCHASE: TransactionType.PAYMENT_OUT,
}

# money handed back against a bill when an edit lowers what was paid
_BILL_REFUND_TYPE = {
    BillType.SALE: TransactionType.PAYMENT_OUT,
    BillType.PURCHASE: TransactionType.PAYMENT_IN,
}

_BILL_NOTE_TYPE = {
    BillType.SALE: TransactionType.CREDIT_NOTE,
    BillType.PURCHASE: TransactionType.DEBIT_NOTE,
}

_BILL_ENTITY = {
    BillType.SALE: EntityType.CUSTOMER,
    BillType.PURCHASE: EntityType.SUPPLIER,
}

# bills sort before money movements on the same day
_BILL_ORDER = 0
_TRANSACTION_ORDER = 1


def get_bill(db: Session, bill_type: Union[BillType, str], bill_id: int) -> Union[Sale, Purchase]:
    bill_type = BillType(bill_type)
    model = Sale if bill_type == BillType.SALE else Purchase
    bill = db.get(model, bill_id)
    if bill is None:
        raise NotFoundError(bill_type.value.capitalize(), bill_id)
    return bill


def _bill_entity_id(bill: Union[Sale, Purchase]) -> Optional[int]:
    if isinstance(bill, Sale):
        return bill.customer_id
    return bill.supplier_id


def _ensure_entity(db: Session, entity_type: EntityType, entity_id: int) -> None:
    model = Customer if entity_type == EntityType.CUSTOMER else Supplier
    if db.get(model, entity_id) is None:
        raise NotFoundError(entity_type.value.capitalize(), entity_id)


def add_transaction(
    db: Session,
    tx_type: Union[TransactionType, str],
    amount: float,
    *,
    entity_type: Optional[EntityType] = None,
    entity_id: Optional[int] = None,
    bill_type: Optional[BillType] = None,
    bill_id: Optional[int] = None,
    transaction_date: Optional[date] = None,
    payment_mode: Optional[str] = None,
    note: Optional[str] = None,
    gst_amount: float = 0,
    discount: float = 0,
) -> Transaction:
    """Insert one ledger row with a freshly issued reference number."""
    tx_type = TransactionType(tx_type)
    transaction = Transaction(
        reference_no=generate_reference(db, TRANSACTION_REFERENCE_TYPES[tx_type]),
        type=tx_type.value,
        entity_type=EntityType(entity_type).value if entity_type else None,
        entity_id=entity_id,
        bill_type=BillType(bill_type).value if bill_type else None,
        bill_id=bill_id,
        transaction_date=transaction_date or dates.today(),
        amount=round(amount, 2),
        payment_mode=payment_mode,
        note=note,
        gst_amount=gst_amount,
        discount=discount,
    )
    db.add(transaction)
    flush_or_reject(db, "Transaction reference already exists")
    return transaction


def bill_sums(db: Session, bill_type: Union[BillType, str], bill_id: int) -> tuple[float, float]:
    """Net amount paid on a bill and the total of notes raised against it."""
    bill_type = BillType(bill_type)
    rows = db.execute(
        select(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
        .where(
            Transaction.bill_type == bill_type.value,
            Transaction.bill_id == bill_id,
            Transaction.status != STATUS_CANCELLED,
        )
        .group_by(Transaction.type)
    ).all()
    totals = {tx_type: float(total) for tx_type, total in rows}
    paid = totals.get(_BILL_PAYMENT_TYPE[bill_type].value, 0.0)
    paid -= totals.get(_BILL_REFUND_TYPE[bill_type].value, 0.0)
    adjusted = totals.get(_BILL_NOTE_TYPE[bill_type].value, 0.0)
    return paid, adjusted


def bill_balance(db: Session, bill_type: Union[BillType, str], bill_id: int) -> BillBalance:
    bill_type = BillType(bill_type)
    bill = get_bill(db, bill_type, bill_id)
    db.flush()
    paid, adjusted = bill_sums(db, bill_type, bill_id)
    return BillBalance(
        bill_type=bill_type,
        bill_id=bill_id,
        total_amount=bill.total_amount,
        paid=round(paid, 2),
        outstanding=round(bill.total_amount - paid - adjusted, 2),
    )


def sync_bill_paid(db: Session, bill: Union[Sale, Purchase], bill_type: BillType) -> None:
    db.flush()
    paid, _adjusted = bill_sums(db, bill_type, bill.id)
    bill.paid_amount = round(paid, 2)


def record_payment(db: Session, data: PaymentCreate) -> Transaction:
    tx_type = TransactionType(data.type)
    if tx_type not in (TransactionType.PAYMENT_IN, TransactionType.PAYMENT_OUT):
        raise InvariantViolation("Payments must be payment_in or payment_out.")

    entity_type = data.entity_type
    entity_id = data.entity_id
    bill = None
    bill_type = BillType(data.bill_type) if data.bill_type else None

    if data.bill_id is not None:
        if bill_type is None:
            raise InvariantViolation("bill_type is required with bill_id.")
        bill = get_bill(db, bill_type, data.bill_id)
        if _BILL_PAYMENT_TYPE[bill_type] != tx_type:
            raise InvariantViolation(
                "A {} bill takes {} payments.".format(bill_type.value, _BILL_PAYMENT_TYPE[bill_type].value)
            )
        if bill.status in INACTIVE_BILL_STATUSES or getattr(bill, "is_quote", False):
            raise InvariantViolation("Payments cannot be recorded against this bill.")
        entity_type = entity_type or _BILL_ENTITY[bill_type]
        entity_id = entity_id if entity_id is not None else _bill_entity_id(bill)

        if not data.allow_overpayment:
            balance = bill_balance(db, bill_type, bill.id)
            outstanding = max(balance.outstanding, 0)
            if data.amount > outstanding + _MONEY_EPSILON:
                raise OverpaymentError(outstanding, data.amount)
    elif entity_id is None:
        raise InvariantViolation("A payment needs a bill or a customer/supplier.")

    if entity_id is not None:
        if entity_type is None:
            entity_type = EntityType.CUSTOMER if tx_type == TransactionType.PAYMENT_IN else EntityType.SUPPLIER
        _ensure_entity(db, EntityType(entity_type), entity_id)

    transaction = add_transaction(
        db,
        tx_type,
        data.amount,
        entity_type=entity_type if entity_id is not None else None,
        entity_id=entity_id,
        bill_type=bill_type if bill is not None else None,
        bill_id=bill.id if bill is not None else None,
        transaction_date=data.transaction_date,
        payment_mode=data.payment_mode,
        note=data.note,
    )
    if bill is not None:
        sync_bill_paid(db, bill, bill_type)
    return transaction


def record_note(db: Session, data: NoteCreate) -> Transaction:
    tx_type = TransactionType(data.type)
    if tx_type not in (TransactionType.CREDIT_NOTE, TransactionType.DEBIT_NOTE):
        raise InvariantViolation("Notes must be credit_note or debit_note.")

    entity_type = data.entity_type
    entity_id = data.entity_id
    bill_type = BillType(data.bill_type) if data.bill_type else None
    if data.bill_id is not None:
        if bill_type is None:
            raise InvariantViolation("bill_type is required with bill_id.")
        bill = get_bill(db, bill_type, data.bill_id)
        entity_type = entity_type or _BILL_ENTITY[bill_type]
        entity_id = entity_id if entity_id is not None else _bill_entity_id(bill)
    if entity_id is None:
        raise InvariantViolation("A note needs a bill or a customer/supplier.")
    if entity_type is None:
        entity_type = EntityType.CUSTOMER if tx_type == TransactionType.CREDIT_NOTE else EntityType.SUPPLIER
    _ensure_entity(db, EntityType(entity_type), entity_id)

    return add_transaction(
        db,
        tx_type,
        data.amount,
        entity_type=entity_type,
        entity_id=entity_id,
        bill_type=bill_type if data.bill_id is not None else None,
        bill_id=data.bill_id,
        transaction_date=data.transaction_date,
        note=data.note,
        gst_amount=data.gst_amount,
        discount=data.discount,
    )


def get_transaction(db: Session, transaction_id: int) -> Transaction:
    transaction = db.get(Transaction, transaction_id)
    if transaction is None:
        raise NotFoundError("Transaction", transaction_id)
    return transaction


def cancel_transaction(db: Session, transaction_id: int) -> Transaction:
    """Soft cancel; the row and its reference number stay for audit."""
    transaction = get_transaction(db, transaction_id)
    if transaction.status == STATUS_CANCELLED:
        raise InvariantViolation("Transaction {} is already cancelled.".format(transaction.reference_no))
    transaction.status = STATUS_CANCELLED
    if transaction.bill_id is not None and transaction.bill_type:
        bill_type = BillType(transaction.bill_type)
        model = Sale if bill_type == BillType.SALE else Purchase
        bill = db.get(model, transaction.bill_id)
        if bill is not None:
            sync_bill_paid(db, bill, bill_type)
    db.flush()
    return transaction


# ----------------------------------------------------------------------
# Statements
# ----------------------------------------------------------------------
def _ledger_entries(db: Session, entity_type: EntityType, entity_id: int) -> list[tuple]:
    """All signed entries for one account, in statement order."""
    entries = []
    if entity_type == EntityType.CUSTOMER:
        bills = db.execute(
            select(Sale).where(
                Sale.customer_id == entity_id,
                Sale.is_quote.is_(False),
                Sale.status.notin_(INACTIVE_BILL_STATUSES),
            )
        ).scalars()
        for sale in bills:
            entries.append(
                (dates.normalize_date(sale.created_at), _BILL_ORDER, sale.id, BillType.SALE.value,
                 sale.reference_no, sale.total_amount, sale.note)
            )
    else:
        bills = db.execute(
            select(Purchase).where(
                Purchase.supplier_id == entity_id,
                Purchase.status.notin_(INACTIVE_BILL_STATUSES),
            )
        ).scalars()
        for purchase in bills:
            entries.append(
                (purchase.date, _BILL_ORDER, purchase.id, BillType.PURCHASE.value,
                 purchase.reference_no, purchase.total_amount, purchase.note)
            )

    transactions = db.execute(
        select(Transaction).where(
            Transaction.entity_type == entity_type.value,
            Transaction.entity_id == entity_id,
            Transaction.status != STATUS_CANCELLED,
        )
    ).scalars()
    effects = _EFFECTS[entity_type]
    for transaction in transactions:
        sign = effects[TransactionType(transaction.type)]
        entries.append(
            (transaction.transaction_date, _TRANSACTION_ORDER, transaction.id, transaction.type,
             transaction.reference_no, sign * transaction.amount, transaction.note)
        )

    entries.sort(key=lambda entry: (entry[0], entry[1], entry[2]))
    return entries


def entity_ledger(
    db: Session,
    entity_type: Union[EntityType, str],
    entity_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> LedgerStatement:
    entity_type = EntityType(entity_type)
    _ensure_entity(db, entity_type, entity_id)
    db.flush()

    opening = 0.0
    balance = 0.0
    rows: list[LedgerRow] = []
    for row_date, _order, source_id, kind, reference_no, signed, note in _ledger_entries(db, entity_type, entity_id):
        if start_date is not None and row_date < start_date:
            opening += signed
            balance = opening
            continue
        if end_date is not None and row_date > end_date:
            break
        balance += signed
        rows.append(
            LedgerRow(
                row_date=row_date,
                kind=kind,
                source_id=source_id,
                reference_no=reference_no,
                debit=round(signed, 2) if signed > 0 else 0,
                credit=round(-signed, 2) if signed < 0 else 0,
                balance=round(balance, 2),
                note=note,
            )
        )

    return LedgerStatement(
        entity_type=entity_type,
        entity_id=entity_id,
        start_date=start_date,
        end_date=end_date,
        opening_balance=round(opening, 2),
        rows=rows,
        closing_balance=round(balance, 2),
    )


def account_summary(db: Session, entity_type: Union[EntityType, str], entity_id: int) -> AccountSummary:
    entity_type = EntityType(entity_type)
    _ensure_entity(db, entity_type, entity_id)
    db.flush()

    if entity_type == EntityType.CUSTOMER:
        billed, bill_count = db.execute(
            select(func.coalesce(func.sum(Sale.total_amount), 0), func.count(Sale.id)).where(
                Sale.customer_id == entity_id,
                Sale.is_quote.is_(False),
                Sale.status.notin_(INACTIVE_BILL_STATUSES),
            )
        ).one()
        paid_type = TransactionType.PAYMENT_IN
    else:
        billed, bill_count = db.execute(
            select(func.coalesce(func.sum(Purchase.total_amount), 0), func.count(Purchase.id)).where(
                Purchase.supplier_id == entity_id,
                Purchase.status.notin_(INACTIVE_BILL_STATUSES),
            )
        ).one()
        paid_type = TransactionType.PAYMENT_OUT

    rows = db.execute(
        select(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
        .where(
            Transaction.entity_type == entity_type.value,
            Transaction.entity_id == entity_id,
            Transaction.status != STATUS_CANCELLED,
        )
        .group_by(Transaction.type)
    ).all()
    totals = {TransactionType(tx_type): float(total) for tx_type, total in rows}
    effects = _EFFECTS[entity_type]
    outstanding = float(billed) + sum(effects[tx_type] * total for tx_type, total in totals.items())

    return AccountSummary(
        entity_type=entity_type,
        entity_id=entity_id,
        total_billed=round(float(billed), 2),
        total_bills=int(bill_count),
        total_paid=round(totals.get(paid_type, 0.0), 2),
        total_credit_notes=round(totals.get(TransactionType.CREDIT_NOTE, 0.0), 2),
        total_debit_notes=round(totals.get(TransactionType.DEBIT_NOTE, 0.0), 2),
        outstanding_balance=round(outstanding, 2),
    )


__all__ = [
    "account_summary",
    "add_transaction",
    "bill_balance",
    "bill_sums",
    "cancel_transaction",
    "entity_ledger",
    "get_bill",
    "get_transaction",
    "record_note",
    "record_payment",
    "sync_bill_paid",
]
