"""Human-facing reference numbers backed by the shop counters.

Each call increments one counter with ``UPDATE ... RETURNING`` inside the
caller's write transaction. The yearly reset happens lazily: the first
increment after the financial year changes zeroes every counter and stamps
``last_reset_fy`` in the same transaction. The very first use only stamps the
label, so counters carried over from an older install are kept.
"""

import logging
import uuid
from datetime import date
from typing import Optional, Union

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from kosh.core import dates
from kosh.core.constants import (
    COUNTER_COLUMNS,
    DEFAULT_FINANCIAL_YEAR_START,
    DEFAULT_INVOICE_PREFIX,
    REFERENCE_COUNTERS,
    REFERENCE_PAD_WIDTH,
    SHOP_ID,
    ReferenceType,
)
from kosh.models.shop import Shop
from kosh.services.shop_service import ensure_shop

logger = logging.getLogger(__name__)


def financial_year_label(today: Optional[date] = None, fy_start: str = DEFAULT_FINANCIAL_YEAR_START) -> str:
    return dates.financial_year_label(today or dates.today(), fy_start or DEFAULT_FINANCIAL_YEAR_START)


def format_reference(prefix: str, fy: str, number: int) -> str:
    return "{}/{}/{}".format(prefix, fy, str(number).zfill(REFERENCE_PAD_WIDTH))


def _reset_for_financial_year(db: Session, shop: Shop, fy: str) -> bool:
    if shop.last_reset_fy == fy:
        return False

    values = {"last_reset_fy": fy}
    first_use = shop.last_reset_fy is None
    if not first_use:
        values.update({column: 0 for column in COUNTER_COLUMNS})

    stmt = (
        update(Shop)
        .where(
            Shop.id == SHOP_ID,
            or_(Shop.last_reset_fy.is_(None), Shop.last_reset_fy != fy),
        )
        .values(**values)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        return False
    if not first_use:
        logger.info("Financial year changed to %s; reference counters reset.", fy)
    return True


def _next_value(db: Session, reference_type: ReferenceType, today: Optional[date]):
    column, fixed_prefix = REFERENCE_COUNTERS[reference_type]
    shop = ensure_shop(db)
    fy = financial_year_label(today, shop.financial_year_start)
    _reset_for_financial_year(db, shop, fy)

    counter = getattr(Shop, column)
    value = db.execute(
        update(Shop)
        .where(Shop.id == SHOP_ID)
        .values({counter: counter + 1})
        .returning(counter)
    ).scalar_one()
    prefix = fixed_prefix or shop.invoice_prefix or DEFAULT_INVOICE_PREFIX
    return value, prefix, fy


def next_counter_value(
    db: Session,
    reference_type: Union[ReferenceType, str],
    today: Optional[date] = None,
) -> int:
    """Increment and return one counter. Call inside a write session."""
    value, _prefix, _fy = _next_value(db, ReferenceType(reference_type), today)
    return value


def generate_reference(
    db: Session,
    reference_type: Union[ReferenceType, str],
    today: Optional[date] = None,
) -> str:
    value, prefix, fy = _next_value(db, ReferenceType(reference_type), today)
    return format_reference(prefix, fy, value)


def generate_quote_reference(db: Session, today: Optional[date] = None) -> str:
    # quotes never consume an invoice number
    shop = ensure_shop(db)
    fy = financial_year_label(today, shop.financial_year_start)
    return "QUO/{}/{}".format(fy, uuid.uuid4().hex[:10].upper())


__all__ = [
    "financial_year_label",
    "format_reference",
    "generate_quote_reference",
    "generate_reference",
    "next_counter_value",
]
