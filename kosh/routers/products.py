from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kosh.dependencies import get_db, get_write_db
from kosh.schemas.product import (
    BatchRead,
    BatchReceipt,
    ProductCreate,
    ProductRead,
    SerialRead,
    StockAdjustmentCreate,
    StockAdjustmentRead,
    StockMismatch,
)
from kosh.services import inventory_service

router = APIRouter(tags=["Inventory"])


@router.post("/products", response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_write_db)):
    return ProductRead.model_validate(inventory_service.create_product(db, payload))


@router.get("/products/consistency", response_model=List[StockMismatch])
def stock_consistency(db: Session = Depends(get_db)):
    return inventory_service.verify_stock_consistency(db)


@router.get("/products/{product_id}", response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return ProductRead.model_validate(inventory_service.get_product(db, product_id))


@router.delete("/products/{product_id}", response_model=ProductRead)
def deactivate_product(product_id: int, db: Session = Depends(get_write_db)):
    return ProductRead.model_validate(inventory_service.deactivate_product(db, product_id))


@router.post("/products/{product_id}/batches", response_model=BatchRead, status_code=201)
def receive_batch(product_id: int, payload: BatchReceipt, db: Session = Depends(get_write_db)):
    product = inventory_service.get_product(db, product_id)
    batch = inventory_service.receive_batch(
        db,
        product,
        payload.quantity,
        **payload.model_dump(exclude={"quantity"}),
    )
    return BatchRead.model_validate(batch)


@router.get("/products/{product_id}/batches", response_model=List[BatchRead])
def list_batches(product_id: int, db: Session = Depends(get_db)):
    inventory_service.get_product(db, product_id)
    return [BatchRead.model_validate(batch) for batch in inventory_service.list_active_batches(db, product_id)]


@router.get("/products/{product_id}/serials", response_model=List[SerialRead])
def list_serials(product_id: int, db: Session = Depends(get_db)):
    inventory_service.get_product(db, product_id)
    return [SerialRead.model_validate(serial) for serial in inventory_service.list_available_serials(db, product_id)]


@router.delete("/batches/{batch_id}", response_model=BatchRead)
def deactivate_batch(batch_id: int, db: Session = Depends(get_write_db)):
    return BatchRead.model_validate(inventory_service.deactivate_batch(db, batch_id))


@router.post("/stock-adjustments", response_model=StockAdjustmentRead, status_code=201)
def adjust_stock(payload: StockAdjustmentCreate, db: Session = Depends(get_write_db)):
    return StockAdjustmentRead.model_validate(inventory_service.adjust_stock(db, payload))
