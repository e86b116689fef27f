"""Three-tier stock model: products, batches and serials.

``Product.quantity`` is a cache. For batch-tracked products it is the sum of
active batch quantities; for serial-tracked products it (and each batch's
quantity) is the number of ``available`` serials. Every write path below
recomputes the cache in the caller's session, so it commits together with
the change that caused it.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from kosh.core.constants import (
    BATCH_UID_PREFIX,
    DEFAULT_BATCH_NUMBER,
    DEFAULT_LOCATION,
    SERIAL_TRANSITIONS,
    SHOP_ID,
    SerialStatus,
    TrackingType,
)
from kosh.core.exceptions import (
    ConstraintViolation,
    InsufficientStock,
    InvalidSerialTransition,
    InvariantViolation,
    NotFoundError,
)
from kosh.database.session import flush_or_reject
from kosh.models.batch import ProductBatch, ProductSerial
from kosh.models.product import Product
from kosh.models.purchase import Purchase
from kosh.models.sales import Sale, SaleItem
from kosh.models.shop import Shop
from kosh.models.stock_adjustment import StockAdjustment
from kosh.schemas.product import ProductCreate, SerialRead, SerialTrace, StockAdjustmentCreate, StockMismatch

logger = logging.getLogger(__name__)

_SERIAL_SPLIT = re.compile(r"[\n,]")


@dataclass
class StockPick:
    """Units taken from one place: a lot, a serial, or untracked stock."""

    batch: Optional[ProductBatch]
    serial: Optional[ProductSerial]
    quantity: int


def _tracking(product: Product) -> TrackingType:
    return TrackingType(product.tracking_type or TrackingType.NONE.value)


def allow_negative_stock(db: Session) -> bool:
    shop = db.get(Shop, SHOP_ID)
    return bool(shop is not None and shop.allow_negative_stock)


# ----------------------------------------------------------------------
# Products
# ----------------------------------------------------------------------
def create_product(db: Session, data: ProductCreate) -> Product:
    values = data.model_dump()
    values["tracking_type"] = data.tracking_type.value
    if data.tracking_type != TrackingType.NONE and data.quantity:
        raise InvariantViolation(
            "Opening stock for batch or serial tracked products must be received as a batch."
        )
    product = Product(**values)
    db.add(product)
    flush_or_reject(db, "Product code already exists")
    return product


def get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def get_batch(db: Session, batch_id: int) -> ProductBatch:
    batch = db.get(ProductBatch, batch_id)
    if batch is None:
        raise NotFoundError("Batch", batch_id)
    return batch


def get_serial(db: Session, serial_id: int) -> ProductSerial:
    serial = db.get(ProductSerial, serial_id)
    if serial is None:
        raise NotFoundError("Serial", serial_id)
    return serial


def deactivate_product(db: Session, product_id: int) -> Product:
    product = get_product(db, product_id)
    product.is_active = False
    db.flush()
    return product


# ----------------------------------------------------------------------
# Aggregates
# ----------------------------------------------------------------------
def _count_available(db: Session, *criteria) -> int:
    stmt = select(func.count(ProductSerial.id)).where(
        ProductSerial.status == SerialStatus.AVAILABLE.value,
        *criteria,
    )
    return int(db.execute(stmt).scalar_one())


def refresh_batch_quantity(db: Session, batch: ProductBatch) -> int:
    """Serial-tracked batches hold exactly their ``available`` serials."""
    product = get_product(db, batch.product_id)
    if _tracking(product) == TrackingType.SERIAL:
        db.flush()
        batch.quantity = _count_available(db, ProductSerial.batch_id == batch.id)
    return batch.quantity


def refresh_product_quantity(db: Session, product: Product) -> int:
    tracking = _tracking(product)
    if tracking == TrackingType.NONE:
        return product.quantity
    db.flush()
    if tracking == TrackingType.BATCH:
        total = db.execute(
            select(func.coalesce(func.sum(ProductBatch.quantity), 0)).where(
                ProductBatch.product_id == product.id,
                ProductBatch.is_active.is_(True),
            )
        ).scalar_one()
        product.quantity = int(total)
    else:
        product.quantity = _count_available(db, ProductSerial.product_id == product.id)
    db.flush()
    return product.quantity


def update_average_purchase_price(product: Product, quantity: int, unit_cost: float) -> None:
    on_hand = max(product.quantity or 0, 0)
    current_avg = product.average_purchase_price or 0
    total_qty = on_hand + quantity
    if total_qty <= 0:
        return
    product.average_purchase_price = round(
        (on_hand * current_avg + quantity * unit_cost) / total_qty, 4
    )


# ----------------------------------------------------------------------
# Batches and serials
# ----------------------------------------------------------------------
def generate_batch_uid(product_id: int, seq: int) -> str:
    return "{}-{}-{:04d}".format(BATCH_UID_PREFIX, product_id, seq)


def _next_batch_uid(db: Session, product_id: int) -> str:
    seq = db.execute(
        select(func.count(ProductBatch.id)).where(ProductBatch.product_id == product_id)
    ).scalar_one() + 1
    while True:
        candidate = generate_batch_uid(product_id, seq)
        taken = db.execute(
            select(ProductBatch.id).where(ProductBatch.batch_uid == candidate)
        ).first()
        if taken is None:
            return candidate
        seq += 1


def parse_serial_numbers(value: Union[str, Iterable[str], None]) -> list[str]:
    """Split a pasted serial list (newline or comma separated) into clean strings."""
    if value is None:
        return []
    if isinstance(value, str):
        parts = _SERIAL_SPLIT.split(value)
    else:
        parts = list(value)
    return [str(part).strip() for part in parts if str(part).strip()]


def receive_batch(
    db: Session,
    product: Product,
    quantity: int,
    *,
    purchase_id: Optional[int] = None,
    batch_number: Optional[str] = None,
    serial_numbers: Union[str, Iterable[str], None] = None,
    expiry_date: Optional[date] = None,
    mfg_date: Optional[date] = None,
    mrp: Optional[float] = None,
    cost_price: float = 0,
    selling_price: Optional[float] = None,
    location: Optional[str] = None,
    barcode: Optional[str] = None,
) -> ProductBatch:
    tracking = _tracking(product)
    if tracking == TrackingType.NONE:
        raise InvariantViolation(
            "Product {} is not batch or serial tracked.".format(product.product_code)
        )
    if quantity <= 0:
        raise InvariantViolation("Received quantity must be positive.")

    serials = _check_receipt_serials(db, product, quantity, serial_numbers)
    lot_mrp = mrp if mrp is not None else (product.mrp or 0)
    lot_selling = selling_price if selling_price is not None else lot_mrp
    batch = ProductBatch(
        product_id=product.id,
        purchase_id=purchase_id,
        batch_uid=_next_batch_uid(db, product.id),
        batch_number=batch_number or DEFAULT_BATCH_NUMBER,
        barcode=barcode,
        expiry_date=expiry_date,
        mfg_date=mfg_date,
        mrp=lot_mrp,
        cost_price=cost_price or 0,
        selling_price=lot_selling,
        margin=round(lot_selling - (cost_price or 0), 4),
        quantity=quantity if tracking == TrackingType.BATCH else 0,
        location=location or DEFAULT_LOCATION,
    )
    db.add(batch)
    flush_or_reject(db, "Batch could not be created")
    _add_serials(db, batch, serials)

    update_average_purchase_price(product, quantity, cost_price or 0)
    refresh_batch_quantity(db, batch)
    refresh_product_quantity(db, product)
    logger.debug("Received batch %s (%s units) for product %s", batch.batch_uid, quantity, product.id)
    return batch


def _check_receipt_serials(
    db: Session,
    product: Product,
    quantity: int,
    serial_numbers: Union[str, Iterable[str], None],
) -> list[str]:
    serials = parse_serial_numbers(serial_numbers)
    if _tracking(product) == TrackingType.SERIAL:
        if len(serials) != quantity:
            raise InvariantViolation(
                "Expected {} serial numbers for {}, got {}.".format(
                    quantity, product.product_code, len(serials)
                )
            )
        if len(set(serials)) != len(serials):
            raise InvariantViolation("Duplicate serial numbers in receipt.")
        existing = db.execute(
            select(ProductSerial.serial_number).where(
                ProductSerial.product_id == product.id,
                ProductSerial.serial_number.in_(serials),
            )
        ).scalars().all()
        if existing:
            raise ConstraintViolation(
                "Serial numbers already exist for {}: {}".format(
                    product.product_code, ", ".join(sorted(existing))
                )
            )
    elif serials:
        raise InvariantViolation(
            "Product {} is batch tracked and does not take serial numbers.".format(product.product_code)
        )
    return serials


def _add_serials(db: Session, batch: ProductBatch, serials: list[str]) -> None:
    for serial_number in serials:
        db.add(
            ProductSerial(
                product_id=batch.product_id,
                batch_id=batch.id,
                serial_number=serial_number,
                status=SerialStatus.AVAILABLE.value,
            )
        )
    flush_or_reject(db, "Serial numbers could not be created")


def add_to_lot(
    db: Session,
    batch: ProductBatch,
    quantity: int,
    *,
    serial_numbers: Union[str, Iterable[str], None] = None,
    expiry_date: Optional[date] = None,
    mfg_date: Optional[date] = None,
    mrp: Optional[float] = None,
) -> ProductBatch:
    """Receive more units into an existing lot (a re-entered purchase line)."""
    product = get_product(db, batch.product_id)
    if quantity <= 0:
        raise InvariantViolation("Received quantity must be positive.")
    serials = _check_receipt_serials(db, product, quantity, serial_numbers)

    if mrp is not None:
        batch.mrp = mrp
    batch.expiry_date = expiry_date
    batch.mfg_date = mfg_date
    batch.is_active = True
    if _tracking(product) == TrackingType.BATCH:
        batch.quantity += quantity
    _add_serials(db, batch, serials)

    refresh_batch_quantity(db, batch)
    refresh_product_quantity(db, product)
    return batch


def _lot_serials(db: Session, batch: ProductBatch) -> list[ProductSerial]:
    return list(
        db.execute(
            select(ProductSerial).where(ProductSerial.batch_id == batch.id).order_by(ProductSerial.id)
        ).scalars().all()
    )


def reverse_receipt(db: Session, batch: ProductBatch, quantity: int) -> ProductBatch:
    """Take a receipt back out of its lot so the purchase line can be re-entered.

    Batch lots lose ``quantity`` even when that drives them below zero; the
    re-entered receipt settles the balance. Serial lots are only reversible
    while every serial is still ``available`` and on no sale line; the
    serial rows are removed.
    """
    product = get_product(db, batch.product_id)
    if _tracking(product) == TrackingType.SERIAL:
        serials = _lot_serials(db, batch)
        moved = [serial.serial_number for serial in serials if serial.status != SerialStatus.AVAILABLE.value]
        sold_before = db.execute(
            select(SaleItem.id)
            .join(Sale, Sale.id == SaleItem.sale_id)
            .where(
                SaleItem.serial_id.in_([serial.id for serial in serials]),
                Sale.is_quote.is_(False),
            )
        ).first()
        if moved or sold_before is not None:
            raise InvariantViolation(
                "Lot {} has serials that already left stock; its receipt cannot be changed.".format(
                    batch.batch_uid
                )
            )
        for serial in serials:
            db.delete(serial)
        db.flush()
        refresh_batch_quantity(db, batch)
    else:
        batch.quantity -= quantity
    refresh_product_quantity(db, product)
    return batch


def write_off_lot(db: Session, batch: ProductBatch) -> int:
    """Remove whatever a lot still holds and retire it. Returns the units removed.

    Unsold serials become ``defective`` so their history stays traceable.
    """
    product = get_product(db, batch.product_id)
    if _tracking(product) == TrackingType.SERIAL:
        removed = 0
        for serial in _lot_serials(db, batch):
            if serial.status == SerialStatus.AVAILABLE.value:
                transition_serial(db, serial, SerialStatus.DEFECTIVE)
                removed += 1
    else:
        removed = max(batch.quantity, 0)
        batch.quantity = 0
    batch.is_active = False
    refresh_product_quantity(db, product)
    return removed


def transition_serial(
    db: Session,
    serial: ProductSerial,
    new_status: Union[SerialStatus, str],
) -> ProductSerial:
    target = SerialStatus(new_status)
    current = SerialStatus(serial.status)
    if target not in SERIAL_TRANSITIONS[current]:
        raise InvalidSerialTransition(serial.serial_number, current.value, target.value)

    result = db.execute(
        update(ProductSerial)
        .where(ProductSerial.id == serial.id, ProductSerial.status == current.value)
        .values(status=target.value)
    )
    if result.rowcount != 1:
        # another writer moved it first
        db.refresh(serial)
        raise InvalidSerialTransition(serial.serial_number, serial.status, target.value)

    batch = get_batch(db, serial.batch_id)
    refresh_batch_quantity(db, batch)
    refresh_product_quantity(db, get_product(db, serial.product_id))
    return serial


def deactivate_batch(db: Session, batch_id: int) -> ProductBatch:
    batch = get_batch(db, batch_id)
    available = _count_available(db, ProductSerial.batch_id == batch.id)
    if available:
        raise InvariantViolation(
            "Batch {} still has {} available serials.".format(batch.batch_uid, available)
        )
    batch.is_active = False
    refresh_product_quantity(db, get_product(db, batch.product_id))
    return batch


# ----------------------------------------------------------------------
# Stock movements
# ----------------------------------------------------------------------
def deduct_batch(db: Session, batch: ProductBatch, quantity: int, allow_negative: bool = False) -> ProductBatch:
    if not batch.is_active:
        raise InvariantViolation("Batch {} is inactive.".format(batch.batch_uid))
    if batch.quantity < quantity and not allow_negative:
        raise InsufficientStock(batch.batch_uid, batch.quantity, quantity)
    batch.quantity -= quantity
    refresh_product_quantity(db, get_product(db, batch.product_id))
    return batch


def restock_batch(db: Session, batch: ProductBatch, quantity: int) -> ProductBatch:
    batch.quantity += quantity
    refresh_product_quantity(db, get_product(db, batch.product_id))
    return batch


def deduct_untracked(db: Session, product: Product, quantity: int, allow_negative: bool = False) -> Product:
    if product.quantity < quantity and not allow_negative:
        raise InsufficientStock(product.product_code, product.quantity, quantity)
    product.quantity -= quantity
    db.flush()
    return product


def restock_untracked(db: Session, product: Product, quantity: int) -> Product:
    product.quantity += quantity
    db.flush()
    return product


def _consume_lots(db: Session, product: Product, quantity: int, allow_negative: bool) -> list[StockPick]:
    """Drain active lots first-expiring first until ``quantity`` is covered.

    With negative stock allowed, any shortfall lands on the last lot.
    """
    batches = list_active_batches(db, product.id)
    available = sum(max(batch.quantity, 0) for batch in batches)
    if not batches or (available < quantity and not allow_negative):
        raise InsufficientStock(product.product_code, available, quantity)

    picks: list[StockPick] = []
    remaining = quantity
    for batch in batches:
        take = min(remaining, max(batch.quantity, 0))
        if take:
            deduct_batch(db, batch, take)
            picks.append(StockPick(batch, None, take))
            remaining -= take
        if not remaining:
            return picks

    last = batches[-1]
    deduct_batch(db, last, remaining, allow_negative=True)
    if picks and picks[-1].batch is last:
        picks[-1].quantity += remaining
    else:
        picks.append(StockPick(last, None, remaining))
    return picks


def deduct_stock(
    db: Session,
    product: Product,
    quantity: int,
    *,
    batch_id: Optional[int] = None,
    serial_id: Optional[int] = None,
    allow_negative: Optional[bool] = None,
) -> list[StockPick]:
    """Take ``quantity`` units out of stock the way the product is tracked.

    Returns what was actually consumed, one pick per lot, so a sale can
    record a line for each. Without ``batch_id`` a batch-tracked product is
    drawn from its lots in expiry order and may span several of them.
    """
    if allow_negative is None:
        allow_negative = allow_negative_stock(db)
    if not product.is_active:
        raise InvariantViolation("Product {} is inactive.".format(product.product_code))

    tracking = _tracking(product)
    if tracking == TrackingType.NONE:
        deduct_untracked(db, product, quantity, allow_negative)
        return [StockPick(None, None, quantity)]

    if tracking == TrackingType.BATCH:
        if batch_id is None:
            return _consume_lots(db, product, quantity, allow_negative)
        batch = get_batch(db, batch_id)
        if batch.product_id != product.id:
            raise InvariantViolation(
                "Batch {} does not belong to product {}.".format(batch.batch_uid, product.product_code)
            )
        deduct_batch(db, batch, quantity, allow_negative)
        return [StockPick(batch, None, quantity)]

    if serial_id is None:
        raise InvariantViolation(
            "Serial tracked product {} must be sold by serial.".format(product.product_code)
        )
    if quantity != 1:
        raise InvariantViolation("A serial line sells exactly one unit.")
    serial = get_serial(db, serial_id)
    if serial.product_id != product.id:
        raise InvariantViolation(
            "Serial {} does not belong to product {}.".format(serial.serial_number, product.product_code)
        )
    transition_serial(db, serial, SerialStatus.SOLD)
    return [StockPick(get_batch(db, serial.batch_id), serial, 1)]


# ----------------------------------------------------------------------
# Adjustments
# ----------------------------------------------------------------------
def log_adjustment(
    db: Session,
    product: Product,
    old_quantity: int,
    *,
    category: str,
    reason: Optional[str] = None,
    adjusted_by: str = "Admin",
    batch_id: Optional[int] = None,
    serial_id: Optional[int] = None,
) -> StockAdjustment:
    entry = StockAdjustment(
        product_id=product.id,
        batch_id=batch_id,
        serial_id=serial_id,
        category=category,
        old_quantity=old_quantity,
        new_quantity=product.quantity,
        adjustment=product.quantity - old_quantity,
        reason=reason,
        adjusted_by=adjusted_by or "Admin",
    )
    db.add(entry)
    db.flush()
    return entry


def adjust_stock(db: Session, data: StockAdjustmentCreate) -> StockAdjustment:
    product = get_product(db, data.product_id)
    tracking = _tracking(product)
    old_quantity = product.quantity
    allow_negative = allow_negative_stock(db)

    if tracking == TrackingType.SERIAL:
        if data.adjustment:
            raise InvariantViolation(
                "Serial tracked stock changes through serial status, not numeric adjustments."
            )
        if data.serial_id is None or data.serial_status is None:
            raise InvariantViolation("serial_id and serial_status are required for serial tracked products.")
        serial = get_serial(db, data.serial_id)
        if serial.product_id != product.id:
            raise InvariantViolation("Serial does not belong to this product.")
        transition_serial(db, serial, data.serial_status)
        batch_id, serial_id = serial.batch_id, serial.id
    else:
        if not data.adjustment:
            raise InvariantViolation("Adjustment must be a non-zero quantity.")
        if tracking == TrackingType.BATCH:
            if data.batch_id is None:
                raise InvariantViolation("batch_id is required for batch tracked products.")
            batch = get_batch(db, data.batch_id)
            if batch.product_id != product.id:
                raise InvariantViolation("Batch does not belong to this product.")
            if data.adjustment < 0:
                deduct_batch(db, batch, -data.adjustment, allow_negative)
            else:
                restock_batch(db, batch, data.adjustment)
            batch_id, serial_id = batch.id, None
        else:
            if data.batch_id is not None or data.serial_id is not None:
                raise InvariantViolation("Untracked products have no batches or serials.")
            if data.adjustment < 0:
                deduct_untracked(db, product, -data.adjustment, allow_negative)
            else:
                restock_untracked(db, product, data.adjustment)
            batch_id, serial_id = None, None

    return log_adjustment(
        db,
        product,
        old_quantity,
        category=data.category,
        reason=data.reason,
        adjusted_by=data.adjusted_by,
        batch_id=batch_id,
        serial_id=serial_id,
    )


# ----------------------------------------------------------------------
# Lookups
# ----------------------------------------------------------------------
def list_available_serials(db: Session, product_id: int) -> list[ProductSerial]:
    stmt = (
        select(ProductSerial)
        .where(
            ProductSerial.product_id == product_id,
            ProductSerial.status == SerialStatus.AVAILABLE.value,
        )
        .order_by(ProductSerial.id)
    )
    return list(db.execute(stmt).scalars().all())


def list_active_batches(db: Session, product_id: int) -> list[ProductBatch]:
    """Active lots, first-expiring first; undated lots last."""
    stmt = (
        select(ProductBatch)
        .where(ProductBatch.product_id == product_id, ProductBatch.is_active.is_(True))
        .order_by(
            ProductBatch.expiry_date.is_(None),
            ProductBatch.expiry_date,
            ProductBatch.id,
        )
    )
    return list(db.execute(stmt).scalars().all())


def trace_serial(db: Session, serial_number: str, product_id: Optional[int] = None) -> list[SerialTrace]:
    stmt = select(ProductSerial).where(ProductSerial.serial_number == serial_number)
    if product_id is not None:
        stmt = stmt.where(ProductSerial.product_id == product_id)
    traces = []
    for serial in db.execute(stmt.order_by(ProductSerial.id)).scalars():
        batch = get_batch(db, serial.batch_id)
        purchase = db.get(Purchase, batch.purchase_id) if batch.purchase_id is not None else None
        sale_row = db.execute(
            select(Sale.id, Sale.reference_no)
            .join(SaleItem, SaleItem.sale_id == Sale.id)
            .where(SaleItem.serial_id == serial.id)
            .order_by(SaleItem.id.desc())
        ).first()
        traces.append(
            SerialTrace(
                serial=SerialRead.model_validate(serial),
                batch_uid=batch.batch_uid,
                purchase_id=purchase.id if purchase else None,
                purchase_ref=purchase.internal_ref_no if purchase else None,
                sale_id=sale_row.id if sale_row else None,
                sale_ref=sale_row.reference_no if sale_row else None,
            )
        )
    return traces


def verify_stock_consistency(db: Session, product_id: Optional[int] = None) -> list[StockMismatch]:
    """Compare cached quantities against batches and serials; empty means consistent."""
    db.flush()
    product_stmt = select(Product).where(Product.tracking_type != TrackingType.NONE.value)
    if product_id is not None:
        product_stmt = product_stmt.where(Product.id == product_id)

    mismatches: list[StockMismatch] = []
    for product in db.execute(product_stmt.order_by(Product.id)).scalars():
        tracking = _tracking(product)
        if tracking == TrackingType.SERIAL:
            batches = db.execute(
                select(ProductBatch).where(ProductBatch.product_id == product.id).order_by(ProductBatch.id)
            ).scalars()
            for batch in batches:
                expected = _count_available(db, ProductSerial.batch_id == batch.id)
                if batch.quantity != expected:
                    mismatches.append(
                        StockMismatch(
                            product_id=product.id,
                            batch_id=batch.id,
                            recorded=batch.quantity,
                            expected=expected,
                        )
                    )
            expected_total = _count_available(db, ProductSerial.product_id == product.id)
        else:
            expected_total = int(
                db.execute(
                    select(func.coalesce(func.sum(ProductBatch.quantity), 0)).where(
                        ProductBatch.product_id == product.id,
                        ProductBatch.is_active.is_(True),
                    )
                ).scalar_one()
            )
        if product.quantity != expected_total:
            mismatches.append(
                StockMismatch(product_id=product.id, recorded=product.quantity, expected=expected_total)
            )
    if mismatches:
        logger.warning("Stock consistency check found %d mismatches", len(mismatches))
    return mismatches


__all__ = [
    "StockPick",
    "add_to_lot",
    "adjust_stock",
    "allow_negative_stock",
    "create_product",
    "deactivate_batch",
    "deactivate_product",
    "deduct_batch",
    "deduct_stock",
    "deduct_untracked",
    "generate_batch_uid",
    "get_batch",
    "get_product",
    "get_serial",
    "list_active_batches",
    "list_available_serials",
    "log_adjustment",
    "parse_serial_numbers",
    "receive_batch",
    "refresh_batch_quantity",
    "refresh_product_quantity",
    "restock_batch",
    "restock_untracked",
    "reverse_receipt",
    "trace_serial",
    "update_average_purchase_price",
    "transition_serial",
    "verify_stock_consistency",
    "write_off_lot",
]
