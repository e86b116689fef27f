from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class NonGstSaleItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    rate: float = Field(ge=0)
    discount: float = Field(default=0, ge=0, le=100)
    batch_id: Optional[int] = None
    serial_id: Optional[int] = None


class NonGstSaleCreate(BaseModel):
    customer_id: Optional[int] = None
    payment_mode: str = "Cash"
    paid_amount: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    note: Optional[str] = None
    items: List[NonGstSaleItemCreate] = Field(min_length=1)


class NonGstSaleItemRead(BaseModel):
    id: int
    sr_no: str
    product_id: int
    product_name: Optional[str]
    rate: float
    quantity: int
    discount: float
    price: float

    model_config = ConfigDict(from_attributes=True)


class NonGstSaleRead(BaseModel):
    id: int
    customer_id: Optional[int]
    reference_no: str
    payment_mode: str
    paid_amount: float
    total_amount: float
    discount: float
    note: Optional[str]
    status: str
    created_at: datetime
    items: List[NonGstSaleItemRead] = []

    model_config = ConfigDict(from_attributes=True)
