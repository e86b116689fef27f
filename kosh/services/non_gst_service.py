"""Simplified cash sales kept in the secondary store.

Stock is shared, so the reference number, the stock deduction and any
payment commit in the primary store first; the bill and its lines are then
written to the secondary store. The two commits are independent: when the
second one fails the primary side stays committed and the error carries the
issued reference so the bill can be re-entered.
"""

import logging
from typing import TYPE_CHECKING

from kosh.core.constants import ReferenceType, TransactionType
from kosh.core.exceptions import InvariantViolation, NonGstSaleNotRecorded, NotFoundError, OverpaymentError
from kosh.models.non_gst import NonGstSale, NonGstSaleItem
from kosh.schemas.non_gst import NonGstSaleCreate
from kosh.services import inventory_service
from kosh.services.ledger_service import add_transaction
from kosh.services.reference_service import generate_reference

if TYPE_CHECKING:
    from kosh.database.engine import StoreContext

logger = logging.getLogger(__name__)

_MONEY_EPSILON = 0.005


def _line_amount(rate: float, quantity: int, discount_pct: float) -> float:
    return round(rate * quantity * (1 - (discount_pct or 0) / 100), 2)


def create_non_gst_sale(store: "StoreContext", data: NonGstSaleCreate) -> NonGstSale:
    lines = []
    with store.write_session() as db:
        products = [inventory_service.get_product(db, item.product_id) for item in data.items]
        amounts = [_line_amount(item.rate, item.quantity, item.discount) for item in data.items]
        total = round(sum(amounts) - data.discount, 2)
        if total < 0:
            raise InvariantViolation("Sale discount exceeds the line total.")
        if data.paid_amount > total + _MONEY_EPSILON:
            raise OverpaymentError(total, data.paid_amount)

        reference_no = generate_reference(db, ReferenceType.NON_GST_SALE)
        for item, product, amount in zip(data.items, products, amounts):
            inventory_service.deduct_stock(
                db,
                product,
                item.quantity,
                batch_id=item.batch_id,
                serial_id=item.serial_id,
            )
            lines.append((item, product.name, amount))

        if data.paid_amount > 0:
            add_transaction(
                db,
                TransactionType.PAYMENT_IN,
                data.paid_amount,
                payment_mode=data.payment_mode,
                note="Non-GST sale {}".format(reference_no),
            )

    try:
        with store.secondary_write_session() as secondary:
            sale = NonGstSale(
                customer_id=data.customer_id,
                reference_no=reference_no,
                payment_mode=data.payment_mode,
                paid_amount=data.paid_amount,
                total_amount=total,
                discount=data.discount,
                note=data.note,
            )
            for index, (item, product_name, amount) in enumerate(lines, start=1):
                sale.items.append(
                    NonGstSaleItem(
                        sr_no=str(index),
                        product_id=item.product_id,
                        product_name=product_name,
                        rate=item.rate,
                        quantity=item.quantity,
                        discount=item.discount,
                        price=amount,
                    )
                )
            secondary.add(sale)
            secondary.flush()
    except Exception as exc:
        logger.error("Non-GST sale %s committed in primary but not in secondary store: %s", reference_no, exc)
        raise NonGstSaleNotRecorded(reference_no, exc) from exc

    logger.debug("Saved non-GST sale %s", reference_no)
    return sale


def get_non_gst_sale(store: "StoreContext", sale_id: int) -> NonGstSale:
    db = store.secondary_session()
    try:
        sale = db.get(NonGstSale, sale_id)
        if sale is None:
            raise NotFoundError("Non-GST sale", sale_id)
        return sale
    finally:
        db.close()


__all__ = ["create_non_gst_sale", "get_non_gst_sale"]
