from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CustomerCreate(BaseModel):
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    gst_no: Optional[str] = None
    credit_limit: float = Field(default=0, ge=0)
    additional_info: Optional[str] = None


class CustomerRead(CustomerCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


class SupplierCreate(BaseModel):
    name: str = Field(min_length=1)
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    gst_number: Optional[str] = None
    supplier_type: Literal["local", "wholeseller", "manufacturer", "distributor"] = "local"
    notes: Optional[str] = None


class SupplierRead(SupplierCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)
