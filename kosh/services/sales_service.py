import logging
from datetime import date, datetime, timezone
from typing import Optional, Union

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from kosh.core import dates
from kosh.core.constants import (
    INACTIVE_BILL_STATUSES,
    BillType,
    EntityType,
    ReferenceType,
    SerialStatus,
    TrackingType,
    TransactionType,
)
from kosh.core.exceptions import ConstraintViolation, InvariantViolation, NotFoundError, OverpaymentError
from kosh.database.session import flush_or_reject
from kosh.models.parties import Customer
from kosh.models.product import Product
from kosh.models.sales import Sale, SaleItem
from kosh.models.shop import Shop
from kosh.models.transaction import Transaction
from kosh.schemas.sales import SaleCreate, SaleItemCreate, SalesReturnCreate, SaleUpdate
from kosh.services import inventory_service
from kosh.services.ledger_service import add_transaction, bill_sums, sync_bill_paid
from kosh.services.reference_service import generate_quote_reference, generate_reference
from kosh.services.shop_service import ensure_shop

logger = logging.getLogger(__name__)

_MONEY_EPSILON = 0.005

STATUS_COMPLETED = "completed"
STATUS_DRAFT = "draft"
STATUS_RETURNED = "returned"
STATUS_PARTIALLY_RETURNED = "partially_returned"


def line_price(rate: float, quantity: int, discount_pct: float, gst_rate: float, inclusive_tax: bool) -> float:
    """Net line amount: rate x qty less the percentage discount, plus GST when prices exclude tax."""
    net = rate * quantity * (1 - (discount_pct or 0) / 100)
    if not inclusive_tax:
        net += net * (gst_rate or 0) / 100
    return round(net, 2)


def split_price(price: float, quantity: int, parts: list[int]) -> list[float]:
    """Share one line amount over ``parts`` units; the last part takes the rounding."""
    shares = [round(price * part / quantity, 2) for part in parts[:-1]]
    shares.append(round(price - sum(shares), 2))
    return shares


def get_sale(db: Session, sale_id: int) -> Sale:
    sale = db.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale", sale_id)
    return sale


def _sale_timestamp(sale_date: Optional[date]) -> datetime:
    if sale_date is None:
        return dates.utc_now()
    return datetime.combine(sale_date, datetime.min.time(), tzinfo=timezone.utc)


def _price_lines(
    db: Session,
    shop: Shop,
    data: Union[SaleCreate, SaleUpdate],
) -> tuple[list[Product], list[float], float]:
    if data.customer_id is not None and db.get(Customer, data.customer_id) is None:
        raise NotFoundError("Customer", data.customer_id)

    products = [inventory_service.get_product(db, item.product_id) for item in data.items]
    prices = [
        line_price(item.rate, item.quantity, item.discount, item.gst_rate, shop.inclusive_tax_pricing)
        for item in data.items
    ]
    total = round(sum(prices) - data.discount, 2)
    if total < 0:
        raise InvariantViolation("Sale discount exceeds the line total.")
    if data.paid_amount > total + _MONEY_EPSILON:
        raise OverpaymentError(total, data.paid_amount)
    return products, prices, total


def _write_lines(
    db: Session,
    sale: Sale,
    items: list[SaleItemCreate],
    products: list[Product],
    prices: list[float],
) -> None:
    """Add the bill lines, taking stock for real sales.

    A line drawn from several lots is recorded once per lot so returns can
    put each unit back where it came from.
    """
    sr_no = 0
    for item, product, price in zip(items, products, prices):
        if sale.is_quote:
            sources = [(item.batch_id, item.serial_id, item.quantity)]
        else:
            picks = inventory_service.deduct_stock(
                db,
                product,
                item.quantity,
                batch_id=item.batch_id,
                serial_id=item.serial_id,
            )
            sources = [
                (
                    pick.batch.id if pick.batch is not None else None,
                    pick.serial.id if pick.serial is not None else None,
                    pick.quantity,
                )
                for pick in picks
            ]

        shares = split_price(price, item.quantity, [quantity for _b, _s, quantity in sources])
        for (batch_id, serial_id, quantity), share in zip(sources, shares):
            sr_no += 1
            sale.items.append(
                SaleItem(
                    sr_no=str(sr_no),
                    product_id=product.id,
                    batch_id=batch_id,
                    serial_id=serial_id,
                    rate=item.rate,
                    quantity=quantity,
                    gst_rate=item.gst_rate,
                    discount=item.discount,
                    price=share,
                )
            )
    flush_or_reject(db, "Sale items could not be saved")


def create_sale(db: Session, data: SaleCreate) -> Sale:
    shop = ensure_shop(db)
    products, prices, total = _price_lines(db, shop, data)

    if data.reference_no and data.reference_no.strip():
        reference_no = data.reference_no.strip()
        taken = db.execute(select(Sale.id).where(Sale.reference_no == reference_no)).first()
        if taken is not None:
            raise ConstraintViolation("Sale reference {} already exists.".format(reference_no))
    elif data.is_quote:
        reference_no = generate_quote_reference(db)
    else:
        reference_no = generate_reference(db, ReferenceType.SALE)

    sale = Sale(
        customer_id=data.customer_id,
        reference_no=reference_no,
        payment_mode=data.payment_mode,
        paid_amount=0 if data.is_quote else data.paid_amount,
        total_amount=total,
        discount=data.discount,
        note=data.note,
        status=STATUS_DRAFT if data.is_quote else STATUS_COMPLETED,
        is_reverse_charge=data.is_reverse_charge,
        is_ecommerce_sale=data.is_ecommerce_sale,
        is_quote=data.is_quote,
        created_at=_sale_timestamp(data.sale_date),
    )
    db.add(sale)
    flush_or_reject(db, "Sale could not be saved")
    _write_lines(db, sale, data.items, products, prices)

    if not data.is_quote and data.paid_amount > 0:
        add_transaction(
            db,
            TransactionType.PAYMENT_IN,
            data.paid_amount,
            entity_type=EntityType.CUSTOMER if data.customer_id is not None else None,
            entity_id=data.customer_id,
            bill_type=BillType.SALE,
            bill_id=sale.id,
            transaction_date=_sale_timestamp(data.sale_date).date(),
            payment_mode=data.payment_mode,
            note="Payment for {}".format(reference_no),
        )

    db.refresh(sale)
    logger.debug("Saved sale %s (%d lines, total %.2f)", reference_no, len(sale.items), total)
    return sale


def update_sale(db: Session, sale_id: int, data: SaleUpdate) -> Sale:
    """Replace a bill's header and lines in one transaction.

    The old lines' stock goes back first (serials return to ``available``),
    then the new lines are taken as for a fresh sale. A change in what was
    paid posts the difference as a payment or a refund. Bills with returns
    are closed to edits.
    """
    sale = get_sale(db, sale_id)
    if sale.status in INACTIVE_BILL_STATUSES:
        raise InvariantViolation("Sale {} is {}.".format(sale.reference_no, sale.status))
    if any(item.returned_quantity for item in sale.items):
        raise InvariantViolation("Sale {} has returns and cannot be edited.".format(sale.reference_no))

    shop = ensure_shop(db)
    products, prices, total = _price_lines(db, shop, data)

    if not sale.is_quote:
        for line in sale.items:
            _return_line(db, line, line.quantity, "restock")
    sale.items.clear()
    flush_or_reject(db, "Sale items could not be replaced")

    if data.customer_id != sale.customer_id and not sale.is_quote:
        db.execute(
            update(Transaction)
            .where(Transaction.bill_type == BillType.SALE.value, Transaction.bill_id == sale.id)
            .values(
                entity_type=EntityType.CUSTOMER.value if data.customer_id is not None else None,
                entity_id=data.customer_id,
            )
        )
    sale.customer_id = data.customer_id
    sale.payment_mode = data.payment_mode
    sale.total_amount = total
    sale.discount = data.discount
    sale.note = data.note
    sale.is_reverse_charge = data.is_reverse_charge
    sale.is_ecommerce_sale = data.is_ecommerce_sale
    if data.sale_date is not None:
        sale.created_at = _sale_timestamp(data.sale_date)
    _write_lines(db, sale, data.items, products, prices)

    if not sale.is_quote:
        paid_before, _credited = bill_sums(db, BillType.SALE, sale.id)
        delta = round(data.paid_amount - paid_before, 2)
        if abs(delta) > _MONEY_EPSILON:
            add_transaction(
                db,
                TransactionType.PAYMENT_IN if delta > 0 else TransactionType.PAYMENT_OUT,
                abs(delta),
                entity_type=EntityType.CUSTOMER if sale.customer_id is not None else None,
                entity_id=sale.customer_id,
                bill_type=BillType.SALE,
                bill_id=sale.id,
                payment_mode=data.payment_mode,
                note="Adjustment for edit of {}".format(sale.reference_no),
            )
        sync_bill_paid(db, sale, BillType.SALE)

    db.refresh(sale)
    logger.info("Updated sale %s (%d lines, total %.2f)", sale.reference_no, len(sale.items), total)
    return sale


def _return_line(db: Session, line: SaleItem, quantity: int, condition: str) -> tuple[Optional[int], Optional[int]]:
    product = inventory_service.get_product(db, line.product_id)
    tracking = TrackingType(product.tracking_type)
    restock = condition == "restock"

    if tracking == TrackingType.SERIAL:
        if line.serial_id is None:
            raise InvariantViolation("Sale line {} has no serial to return.".format(line.sr_no))
        serial = inventory_service.get_serial(db, line.serial_id)
        inventory_service.transition_serial(db, serial, SerialStatus.RETURNED)
        if restock:
            inventory_service.transition_serial(db, serial, SerialStatus.AVAILABLE)
        return serial.batch_id, serial.id

    if not restock:
        return line.batch_id, None
    if tracking == TrackingType.BATCH:
        if line.batch_id is None:
            raise InvariantViolation("Sale line {} has no batch to restock.".format(line.sr_no))
        batch = inventory_service.get_batch(db, line.batch_id)
        inventory_service.restock_batch(db, batch, quantity)
        return batch.id, None
    inventory_service.restock_untracked(db, product, quantity)
    return None, None


def process_sales_return(db: Session, sale_id: int, data: SalesReturnCreate) -> Transaction:
    """Return sold units and issue a credit note for their value.

    ``restock`` lines go back on the shelf; ``damaged`` lines are written
    off (serials stay ``returned``). Line values carry the bill's header
    discount, and the credit never exceeds what the bill has left to credit.
    Returns the credit note.
    """
    sale = get_sale(db, sale_id)
    if sale.is_quote:
        raise InvariantViolation("Quotes cannot be returned.")
    if sale.status in INACTIVE_BILL_STATUSES:
        raise InvariantViolation("Sale {} is {}.".format(sale.reference_no, sale.status))

    lines_total = sum(item.price for item in sale.items)
    bill_share = sale.total_amount / lines_total if lines_total > 0 else 0.0

    credit = 0.0
    for entry in data.items:
        line = db.get(SaleItem, entry.sale_item_id)
        if line is None or line.sale_id != sale.id:
            raise NotFoundError("Sale item", entry.sale_item_id)
        remaining = line.quantity - (line.returned_quantity or 0)
        if entry.quantity > remaining:
            raise InvariantViolation(
                "Cannot return {} of line {}; only {} left.".format(entry.quantity, line.sr_no, remaining)
            )

        product = inventory_service.get_product(db, line.product_id)
        old_quantity = product.quantity
        batch_id, serial_id = _return_line(db, line, entry.quantity, entry.condition)
        line.returned_quantity = (line.returned_quantity or 0) + entry.quantity
        credit += line.price * entry.quantity / line.quantity * bill_share

        inventory_service.log_adjustment(
            db,
            product,
            old_quantity,
            category="sales_return" if entry.condition == "restock" else "damaged_return",
            reason=data.reason or "Return against {}".format(sale.reference_no),
            adjusted_by=data.adjusted_by,
            batch_id=batch_id,
            serial_id=serial_id,
        )

    db.flush()
    fully_returned = all(item.returned_quantity >= item.quantity for item in sale.items)
    sale.status = STATUS_RETURNED if fully_returned else STATUS_PARTIALLY_RETURNED

    _paid, credited = bill_sums(db, BillType.SALE, sale.id)
    credit = max(min(round(credit, 2), round(sale.total_amount - credited, 2)), 0)

    credit_note = add_transaction(
        db,
        TransactionType.CREDIT_NOTE,
        credit,
        entity_type=EntityType.CUSTOMER if sale.customer_id is not None else None,
        entity_id=sale.customer_id,
        bill_type=BillType.SALE,
        bill_id=sale.id,
        transaction_date=data.return_date,
        payment_mode=data.payment_mode,
        note=data.reason or "Return against {}".format(sale.reference_no),
    )
    logger.info("Sales return on %s issued %s for %.2f", sale.reference_no, credit_note.reference_no, credit)
    return credit_note


__all__ = [
    "create_sale",
    "get_sale",
    "line_price",
    "process_sales_return",
    "split_price",
    "update_sale",
]
