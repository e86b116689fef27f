from sqlalchemy.orm import Session

from kosh.core.exceptions import NotFoundError
from kosh.database.session import flush_or_reject
from kosh.models.parties import Customer, Supplier
from kosh.schemas.party import CustomerCreate, SupplierCreate


def create_customer(db: Session, data: CustomerCreate) -> Customer:
    values = data.model_dump()
    if values.get("phone"):
        values["phone"] = values["phone"].strip()
    else:
        values["phone"] = None
    customer = Customer(**values)
    db.add(customer)
    flush_or_reject(db, "Customer phone already exists")
    return customer


def get_customer(db: Session, customer_id: int) -> Customer:
    customer = db.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer", customer_id)
    return customer


def create_supplier(db: Session, data: SupplierCreate) -> Supplier:
    supplier = Supplier(**data.model_dump())
    db.add(supplier)
    flush_or_reject(db, "Supplier could not be saved")
    return supplier


def get_supplier(db: Session, supplier_id: int) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError("Supplier", supplier_id)
    return supplier


__all__ = ["create_customer", "create_supplier", "get_customer", "get_supplier"]
