from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from kosh.dependencies import get_db, get_write_db
from kosh.schemas.purchase import PurchaseCreate, PurchaseRead, PurchaseUpdate
from kosh.services import purchase_service

router = APIRouter(prefix="/purchases", tags=["Purchases"])


@router.post("", response_model=PurchaseRead, status_code=201)
def create_purchase(payload: PurchaseCreate, db: Session = Depends(get_write_db)):
    return PurchaseRead.model_validate(purchase_service.create_purchase(db, payload))


@router.get("/{purchase_id}", response_model=PurchaseRead)
def get_purchase(purchase_id: int, db: Session = Depends(get_db)):
    return PurchaseRead.model_validate(purchase_service.get_purchase(db, purchase_id))


@router.put("/{purchase_id}", response_model=PurchaseRead)
def update_purchase(purchase_id: int, payload: PurchaseUpdate, db: Session = Depends(get_write_db)):
    return PurchaseRead.model_validate(purchase_service.update_purchase(db, purchase_id, payload))


@router.delete("/{purchase_id}", status_code=204)
def delete_purchase(purchase_id: int, db: Session = Depends(get_write_db)):
    purchase_service.delete_purchase(db, purchase_id)
    return Response(status_code=204)
