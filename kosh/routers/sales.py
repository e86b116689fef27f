from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kosh.database.engine import StoreContext
from kosh.dependencies import get_db, get_store, get_write_db
from kosh.schemas.non_gst import NonGstSaleCreate, NonGstSaleRead
from kosh.schemas.sales import SaleCreate, SaleRead, SalesReturnCreate, SaleUpdate
from kosh.schemas.transaction import TransactionRead
from kosh.services import non_gst_service, sales_service

router = APIRouter(tags=["Sales"])


@router.post("/sales", response_model=SaleRead, status_code=201)
def create_sale(payload: SaleCreate, db: Session = Depends(get_write_db)):
    return SaleRead.model_validate(sales_service.create_sale(db, payload))


@router.get("/sales/{sale_id}", response_model=SaleRead)
def get_sale(sale_id: int, db: Session = Depends(get_db)):
    return SaleRead.model_validate(sales_service.get_sale(db, sale_id))


@router.put("/sales/{sale_id}", response_model=SaleRead)
def update_sale(sale_id: int, payload: SaleUpdate, db: Session = Depends(get_write_db)):
    return SaleRead.model_validate(sales_service.update_sale(db, sale_id, payload))


@router.post("/sales/{sale_id}/returns", response_model=TransactionRead, status_code=201)
def return_sale(sale_id: int, payload: SalesReturnCreate, db: Session = Depends(get_write_db)):
    return TransactionRead.model_validate(sales_service.process_sales_return(db, sale_id, payload))


@router.post("/non-gst-sales", response_model=NonGstSaleRead, status_code=201)
def create_non_gst_sale(payload: NonGstSaleCreate, store: StoreContext = Depends(get_store)):
    return NonGstSaleRead.model_validate(non_gst_service.create_non_gst_sale(store, payload))


@router.get("/non-gst-sales/{sale_id}", response_model=NonGstSaleRead)
def get_non_gst_sale(sale_id: int, store: StoreContext = Depends(get_store)):
    return NonGstSaleRead.model_validate(non_gst_service.get_non_gst_sale(store, sale_id))
