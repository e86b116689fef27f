import logging

from sqlalchemy.orm import Session

from kosh.core.constants import COUNTER_COLUMNS, SHOP_ID
from kosh.core.exceptions import ConstraintViolation, NotFoundError
from kosh.models.shop import Shop
from kosh.schemas.shop import ShopCreate, ShopUpdate

logger = logging.getLogger(__name__)

DEFAULT_SHOP_NAME = "My Shop"

# only the sequencer writes these
_PROTECTED_FIELDS = frozenset(COUNTER_COLUMNS) | {"id", "last_reset_fy"}


def get_shop(db: Session) -> Shop:
    shop = db.get(Shop, SHOP_ID)
    if shop is None:
        raise NotFoundError("Shop", SHOP_ID)
    return shop


def ensure_shop(db: Session) -> Shop:
    """Return the singleton shop row, inserting a default one on first use."""
    shop = db.get(Shop, SHOP_ID)
    if shop is not None:
        return shop
    shop = Shop(id=SHOP_ID, shop_name=DEFAULT_SHOP_NAME)
    db.add(shop)
    db.flush()
    logger.info("Created default shop profile.")
    return shop


def create_shop(db: Session, data: ShopCreate) -> Shop:
    if db.get(Shop, SHOP_ID) is not None:
        raise ConstraintViolation("Shop profile already exists; use update_shop instead.")
    shop = Shop(id=SHOP_ID, **data.model_dump())
    db.add(shop)
    db.flush()
    return shop


def update_shop(db: Session, data: ShopUpdate) -> Shop:
    shop = ensure_shop(db)
    changes = data.model_dump(exclude_unset=True)
    for field_name, value in changes.items():
        if field_name in _PROTECTED_FIELDS:
            continue
        if value is None and field_name in ("shop_name", "financial_year_start"):
            continue
        setattr(shop, field_name, value)
    db.flush()
    return shop


__all__ = ["DEFAULT_SHOP_NAME", "create_shop", "ensure_shop", "get_shop", "update_shop"]
