from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class SaleItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    rate: float = Field(ge=0)
    gst_rate: float = Field(default=0, ge=0)
    # percent of rate x quantity
    discount: float = Field(default=0, ge=0, le=100)
    batch_id: Optional[int] = None
    serial_id: Optional[int] = None


class SaleCreate(BaseModel):
    customer_id: Optional[int] = None
    reference_no: Optional[str] = None
    payment_mode: str = "Cash"
    paid_amount: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    note: Optional[str] = None
    is_reverse_charge: bool = False
    is_ecommerce_sale: bool = False
    is_quote: bool = False
    sale_date: Optional[date] = None
    items: List[SaleItemCreate] = Field(min_length=1)


class SaleUpdate(BaseModel):
    """A full replacement of an existing bill; the reference number stays."""

    customer_id: Optional[int] = None
    payment_mode: str = "Cash"
    # total paid on the bill after the edit
    paid_amount: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    note: Optional[str] = None
    is_reverse_charge: bool = False
    is_ecommerce_sale: bool = False
    sale_date: Optional[date] = None
    items: List[SaleItemCreate] = Field(min_length=1)


class SaleItemRead(BaseModel):
    id: int
    sr_no: str
    product_id: int
    batch_id: Optional[int]
    serial_id: Optional[int]
    rate: float
    quantity: int
    gst_rate: float
    discount: float
    price: float
    returned_quantity: int

    model_config = ConfigDict(from_attributes=True)


class SaleRead(BaseModel):
    id: int
    customer_id: Optional[int]
    reference_no: str
    payment_mode: str
    paid_amount: float
    total_amount: float
    discount: float
    note: Optional[str]
    status: str
    is_reverse_charge: bool
    is_ecommerce_sale: bool
    is_quote: bool
    created_at: datetime
    items: List[SaleItemRead] = []

    model_config = ConfigDict(from_attributes=True)


class SalesReturnItem(BaseModel):
    sale_item_id: int
    quantity: int = Field(default=1, gt=0)
    condition: Literal["restock", "damaged"] = "restock"


class SalesReturnCreate(BaseModel):
    items: List[SalesReturnItem] = Field(min_length=1)
    reason: Optional[str] = None
    payment_mode: Optional[str] = None
    return_date: Optional[date] = None
    adjusted_by: str = "Admin"
