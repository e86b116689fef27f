import datetime as dt
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PurchaseItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    rate: float = Field(ge=0)
    gst_rate: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0, le=100)
    batch_number: Optional[str] = None
    serial_numbers: Union[str, List[str], None] = None
    expiry_date: Optional[dt.date] = None
    mfg_date: Optional[dt.date] = None
    mrp: Optional[float] = None
    selling_price: Optional[float] = None
    location: Optional[str] = None


class PurchaseCreate(BaseModel):
    id: Optional[int] = Field(default=None, gt=0)
    supplier_id: int
    reference_no: str = Field(min_length=1)
    date: Optional[dt.date] = None
    status: str = "received"
    note: Optional[str] = None
    paid_amount: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    payment_mode: str = "Cash"
    is_reverse_charge: bool = False
    items: List[PurchaseItemCreate] = Field(min_length=1)


class PurchaseUpdate(BaseModel):
    supplier_id: int
    reference_no: str = Field(min_length=1)
    date: Optional[dt.date] = None
    status: str = "received"
    note: Optional[str] = None
    paid_amount: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    payment_mode: str = "Cash"
    is_reverse_charge: bool = False
    items: List[PurchaseItemCreate] = Field(min_length=1)


class PurchaseItemRead(BaseModel):
    id: str
    product_id: int
    quantity: int
    rate: float
    gst_rate: float
    discount: float
    price: float
    batch_uid: Optional[str]
    batch_number: Optional[str]
    serial_numbers: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class PurchaseRead(BaseModel):
    id: int
    supplier_id: int
    reference_no: str
    internal_ref_no: str
    date: dt.date
    status: str
    total_amount: float
    paid_amount: float
    discount: float
    created_at: dt.datetime
    items: List[PurchaseItemRead] = []

    model_config = ConfigDict(from_attributes=True)
