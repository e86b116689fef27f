from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kosh.dependencies import get_db, get_write_db
from kosh.schemas.party import CustomerCreate, CustomerRead, SupplierCreate, SupplierRead
from kosh.services import party_service

router = APIRouter(tags=["Parties"])


@router.post("/customers", response_model=CustomerRead, status_code=201)
def create_customer(payload: CustomerCreate, db: Session = Depends(get_write_db)):
    return CustomerRead.model_validate(party_service.create_customer(db, payload))


@router.get("/customers/{customer_id}", response_model=CustomerRead)
def get_customer(customer_id: int, db: Session = Depends(get_db)):
    return CustomerRead.model_validate(party_service.get_customer(db, customer_id))


@router.post("/suppliers", response_model=SupplierRead, status_code=201)
def create_supplier(payload: SupplierCreate, db: Session = Depends(get_write_db)):
    return SupplierRead.model_validate(party_service.create_supplier(db, payload))


@router.get("/suppliers/{supplier_id}", response_model=SupplierRead)
def get_supplier(supplier_id: int, db: Session = Depends(get_db)):
    return SupplierRead.model_validate(party_service.get_supplier(db, supplier_id))
