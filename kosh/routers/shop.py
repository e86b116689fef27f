from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kosh.dependencies import get_db, get_write_db
from kosh.schemas.shop import ShopRead, ShopUpdate
from kosh.services import shop_service

router = APIRouter(prefix="/shop", tags=["Shop"])


@router.get("", response_model=ShopRead)
def get_shop(db: Session = Depends(get_db)):
    return ShopRead.model_validate(shop_service.get_shop(db))


@router.put("", response_model=ShopRead)
def update_shop(payload: ShopUpdate, db: Session = Depends(get_write_db)):
    return ShopRead.model_validate(shop_service.update_shop(db, payload))
