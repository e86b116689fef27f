import logging
from typing import Union

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from kosh.core import dates
from kosh.core.constants import (
    DEFAULT_BATCH_NUMBER,
    INACTIVE_BILL_STATUSES,
    STATUS_CANCELLED,
    BillType,
    EntityType,
    ReferenceType,
    TrackingType,
    TransactionType,
)
from kosh.core.exceptions import ConstraintViolation, InvariantViolation, NotFoundError, OverpaymentError
from kosh.database.session import flush_or_reject
from kosh.models.batch import ProductBatch
from kosh.models.parties import Supplier
from kosh.models.product import Product
from kosh.models.purchase import Purchase, PurchaseItem
from kosh.models.shop import Shop
from kosh.models.transaction import Transaction
from kosh.schemas.purchase import PurchaseCreate, PurchaseItemCreate, PurchaseUpdate
from kosh.services import inventory_service
from kosh.services.ledger_service import add_transaction, bill_sums, sync_bill_paid
from kosh.services.reference_service import generate_reference
from kosh.services.sales_service import line_price
from kosh.services.shop_service import ensure_shop

logger = logging.getLogger(__name__)

_MONEY_EPSILON = 0.005


def get_purchase(db: Session, purchase_id: int) -> Purchase:
    purchase = db.get(Purchase, purchase_id)
    if purchase is None:
        raise NotFoundError("Purchase", purchase_id)
    return purchase


def _price_lines(
    db: Session,
    shop: Shop,
    data: Union[PurchaseCreate, PurchaseUpdate],
) -> tuple[list[Product], list[float], float]:
    products = [inventory_service.get_product(db, item.product_id) for item in data.items]
    prices = [
        line_price(item.rate, item.quantity, item.discount, item.gst_rate, shop.inclusive_tax_pricing)
        for item in data.items
    ]
    total = round(sum(prices) - data.discount, 2)
    if total < 0:
        raise InvariantViolation("Purchase discount exceeds the line total.")
    if data.paid_amount > total + _MONEY_EPSILON:
        raise OverpaymentError(total, data.paid_amount)
    return products, prices, total


def _purchase_item(item: PurchaseItemCreate, product: Product, price: float, batch=None) -> PurchaseItem:
    purchase_item = PurchaseItem(
        product_id=product.id,
        quantity=item.quantity,
        rate=item.rate,
        gst_rate=item.gst_rate,
        discount=item.discount,
        price=price,
        expiry_date=item.expiry_date,
        mfg_date=item.mfg_date,
        mrp=item.mrp,
    )
    if batch is not None:
        purchase_item.batch_uid = batch.batch_uid
        purchase_item.batch_number = batch.batch_number
        serials = inventory_service.parse_serial_numbers(item.serial_numbers)
        purchase_item.serial_numbers = "\n".join(serials) or None
    return purchase_item


def _receive_item(
    db: Session,
    purchase: Purchase,
    item: PurchaseItemCreate,
    product: Product,
    price: float,
) -> PurchaseItem:
    unit_cost = round(price / item.quantity, 4)
    if TrackingType(product.tracking_type) == TrackingType.NONE:
        inventory_service.update_average_purchase_price(product, item.quantity, unit_cost)
        inventory_service.restock_untracked(db, product, item.quantity)
        return _purchase_item(item, product, price)

    batch = inventory_service.receive_batch(
        db,
        product,
        item.quantity,
        purchase_id=purchase.id,
        batch_number=item.batch_number,
        serial_numbers=item.serial_numbers,
        expiry_date=item.expiry_date,
        mfg_date=item.mfg_date,
        mrp=item.mrp,
        cost_price=unit_cost,
        selling_price=item.selling_price,
        location=item.location,
    )
    return _purchase_item(item, product, price, batch)


def create_purchase(db: Session, data: PurchaseCreate) -> Purchase:
    """Record a supplier bill and receive its stock.

    ``data.id`` may carry an id chosen by the caller (imports, restores);
    otherwise SQLite assigns the next rowid.
    """
    shop = ensure_shop(db)
    if db.get(Supplier, data.supplier_id) is None:
        raise NotFoundError("Supplier", data.supplier_id)
    if data.id is not None and db.get(Purchase, data.id) is not None:
        raise ConstraintViolation("Purchase id {} already exists.".format(data.id))
    products, prices, total = _price_lines(db, shop, data)

    purchase = Purchase(
        id=data.id,
        supplier_id=data.supplier_id,
        reference_no=data.reference_no,
        internal_ref_no=generate_reference(db, ReferenceType.PURCHASE),
        date=data.date or dates.today(),
        status=data.status,
        note=data.note,
        total_amount=total,
        paid_amount=data.paid_amount,
        discount=data.discount,
        payment_mode=data.payment_mode,
        is_reverse_charge=data.is_reverse_charge,
    )
    db.add(purchase)
    flush_or_reject(db, "Purchase could not be saved")

    for item, product, price in zip(data.items, products, prices):
        purchase.items.append(_receive_item(db, purchase, item, product, price))
    flush_or_reject(db, "Purchase items could not be saved")

    if data.paid_amount > 0:
        add_transaction(
            db,
            TransactionType.PAYMENT_OUT,
            data.paid_amount,
            entity_type=EntityType.SUPPLIER,
            entity_id=data.supplier_id,
            bill_type=BillType.PURCHASE,
            bill_id=purchase.id,
            transaction_date=purchase.date,
            payment_mode=data.payment_mode,
            note="Payment for {}".format(purchase.reference_no),
        )

    db.refresh(purchase)
    logger.debug("Saved purchase %s (%s)", purchase.internal_ref_no, purchase.reference_no)
    return purchase


def _purchase_lots(db: Session, purchase: Purchase) -> list[ProductBatch]:
    return list(
        db.execute(
            select(ProductBatch).where(ProductBatch.purchase_id == purchase.id).order_by(ProductBatch.id)
        ).scalars().all()
    )


def delete_purchase(db: Session, purchase_id: int, adjusted_by: str = "Admin") -> None:
    """Delete a purchase and its lines, taking its stock back off the shelf.

    Untracked items come off the product quantity, even below zero when some
    were already sold. Lots it created keep only their sold history: what is
    left in them is written off and the lot is retired, and the foreign key
    clears their ``purchase_id``. Payments linked to it are cancelled. Every
    stock change is logged as a ``purchase_deleted`` adjustment.
    """
    purchase = get_purchase(db, purchase_id)
    reason = "Purchase {} deleted".format(purchase.internal_ref_no)

    for item in purchase.items:
        product = inventory_service.get_product(db, item.product_id)
        if TrackingType(product.tracking_type) != TrackingType.NONE:
            continue
        old_quantity = product.quantity
        inventory_service.deduct_untracked(db, product, item.quantity, allow_negative=True)
        inventory_service.log_adjustment(
            db, product, old_quantity, category="purchase_deleted", reason=reason, adjusted_by=adjusted_by
        )

    for batch in _purchase_lots(db, purchase):
        product = inventory_service.get_product(db, batch.product_id)
        old_quantity = product.quantity
        removed = inventory_service.write_off_lot(db, batch)
        if removed:
            inventory_service.log_adjustment(
                db,
                product,
                old_quantity,
                category="purchase_deleted",
                reason=reason,
                adjusted_by=adjusted_by,
                batch_id=batch.id,
            )

    db.execute(
        update(Transaction)
        .where(
            Transaction.bill_type == BillType.PURCHASE.value,
            Transaction.bill_id == purchase.id,
            Transaction.status != STATUS_CANCELLED,
        )
        .values(status=STATUS_CANCELLED)
    )
    db.delete(purchase)
    flush_or_reject(db, "Purchase could not be deleted")
    logger.info("Deleted purchase %s", purchase.internal_ref_no)


def update_purchase(db: Session, purchase_id: int, data: PurchaseUpdate) -> Purchase:
    """Re-enter a purchase: revert the old receipt, receive the new one.

    A line whose product and batch number match one of the purchase's lots
    tops that lot up again; other lines open new lots. Lots left out of the
    new version must be empty once reverted and are retired. Serial lots can
    only be edited while none of their serials has left stock.
    """
    purchase = get_purchase(db, purchase_id)
    if purchase.status in INACTIVE_BILL_STATUSES:
        raise InvariantViolation("Purchase {} is {}.".format(purchase.internal_ref_no, purchase.status))
    shop = ensure_shop(db)
    if db.get(Supplier, data.supplier_id) is None:
        raise NotFoundError("Supplier", data.supplier_id)
    products, prices, total = _price_lines(db, shop, data)

    received = {}
    for item in purchase.items:
        if item.batch_uid:
            received[item.batch_uid] = received.get(item.batch_uid, 0) + item.quantity
    old_lots = _purchase_lots(db, purchase)
    lots = {}
    for batch in old_lots:
        inventory_service.reverse_receipt(db, batch, received.get(batch.batch_uid, 0))
        lots.setdefault((batch.product_id, batch.batch_number), batch)
    for item in purchase.items:
        product = inventory_service.get_product(db, item.product_id)
        if TrackingType(product.tracking_type) == TrackingType.NONE:
            inventory_service.deduct_untracked(db, product, item.quantity, allow_negative=True)
    purchase.items.clear()
    flush_or_reject(db, "Purchase items could not be replaced")

    if data.supplier_id != purchase.supplier_id:
        db.execute(
            update(Transaction)
            .where(Transaction.bill_type == BillType.PURCHASE.value, Transaction.bill_id == purchase.id)
            .values(entity_type=EntityType.SUPPLIER.value, entity_id=data.supplier_id)
        )
    purchase.supplier_id = data.supplier_id
    purchase.reference_no = data.reference_no
    purchase.date = data.date or purchase.date
    purchase.status = data.status
    purchase.note = data.note
    purchase.total_amount = total
    purchase.discount = data.discount
    purchase.payment_mode = data.payment_mode
    purchase.is_reverse_charge = data.is_reverse_charge

    reused = set()
    for item, product, price in zip(data.items, products, prices):
        key = (product.id, item.batch_number or DEFAULT_BATCH_NUMBER)
        if key in lots and TrackingType(product.tracking_type) != TrackingType.NONE:
            batch = inventory_service.add_to_lot(
                db,
                lots[key],
                item.quantity,
                serial_numbers=item.serial_numbers,
                expiry_date=item.expiry_date,
                mfg_date=item.mfg_date,
                mrp=item.mrp,
            )
            reused.add(batch.id)
            purchase.items.append(_purchase_item(item, product, price, batch))
        else:
            purchase.items.append(_receive_item(db, purchase, item, product, price))
    flush_or_reject(db, "Purchase items could not be saved")

    allow_negative = inventory_service.allow_negative_stock(db)
    for batch in old_lots:
        if batch.id not in reused:
            if batch.quantity < 0:
                raise InvariantViolation(
                    "Lot {} has sold units and must stay on the purchase.".format(batch.batch_uid)
                )
            inventory_service.write_off_lot(db, batch)
        elif batch.quantity < 0 and not allow_negative:
            raise InvariantViolation(
                "Lot {} has sold more units than the edited purchase receives.".format(batch.batch_uid)
            )

    paid_before, _adjusted = bill_sums(db, BillType.PURCHASE, purchase.id)
    delta = round(data.paid_amount - paid_before, 2)
    if abs(delta) > _MONEY_EPSILON:
        add_transaction(
            db,
            TransactionType.PAYMENT_OUT if delta > 0 else TransactionType.PAYMENT_IN,
            abs(delta),
            entity_type=EntityType.SUPPLIER,
            entity_id=purchase.supplier_id,
            bill_type=BillType.PURCHASE,
            bill_id=purchase.id,
            transaction_date=purchase.date,
            payment_mode=data.payment_mode,
            note="Adjustment for edit of {}".format(purchase.reference_no),
        )
    sync_bill_paid(db, purchase, BillType.PURCHASE)

    db.refresh(purchase)
    logger.info("Updated purchase %s (%s)", purchase.internal_ref_no, purchase.reference_no)
    return purchase


__all__ = ["create_purchase", "delete_purchase", "get_purchase", "update_purchase"]
