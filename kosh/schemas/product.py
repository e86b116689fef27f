from datetime import date, datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from kosh.core.constants import SerialStatus, TrackingType


class ProductBase(BaseModel):
    name: str = Field(min_length=1)
    product_code: str = Field(min_length=1)
    hsn: Optional[str] = None
    gst_rate: float = Field(default=0, ge=0)
    mrp: Optional[float] = None
    mop: Optional[float] = None
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    storage_location: Optional[str] = None
    tracking_type: TrackingType = TrackingType.NONE
    low_stock_threshold: int = Field(default=0, ge=0)
    description: Optional[str] = None
    brand: Optional[str] = None
    barcode: Optional[str] = None


class ProductCreate(ProductBase):
    # opening stock; only meaningful for untracked products
    quantity: int = Field(default=0, ge=0)
    average_purchase_price: float = Field(default=0, ge=0)


class ProductRead(ProductBase):
    id: int
    quantity: int
    average_purchase_price: float
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class BatchReceipt(BaseModel):
    quantity: int = Field(gt=0)
    purchase_id: Optional[int] = None
    batch_number: Optional[str] = None
    serial_numbers: Union[str, List[str], None] = None
    expiry_date: Optional[date] = None
    mfg_date: Optional[date] = None
    mrp: Optional[float] = None
    cost_price: float = Field(default=0, ge=0)
    selling_price: Optional[float] = None
    location: Optional[str] = None
    barcode: Optional[str] = None


class BatchRead(BaseModel):
    id: int
    product_id: int
    purchase_id: Optional[int]
    batch_uid: str
    batch_number: str
    expiry_date: Optional[date]
    mfg_date: Optional[date]
    mrp: float
    cost_price: float
    selling_price: float
    quantity: int
    location: Optional[str]
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class SerialRead(BaseModel):
    id: int
    product_id: int
    batch_id: int
    serial_number: str
    status: SerialStatus

    model_config = ConfigDict(from_attributes=True)


class SerialStatusUpdate(BaseModel):
    status: SerialStatus


class SerialTrace(BaseModel):
    serial: SerialRead
    batch_uid: str
    purchase_id: Optional[int] = None
    purchase_ref: Optional[str] = None
    sale_id: Optional[int] = None
    sale_ref: Optional[str] = None


class StockAdjustmentCreate(BaseModel):
    product_id: int
    category: str = "correction"
    # signed delta for untracked and batch-tracked stock
    adjustment: int = 0
    batch_id: Optional[int] = None
    serial_id: Optional[int] = None
    serial_status: Optional[SerialStatus] = None
    reason: Optional[str] = None
    adjusted_by: str = "Admin"


class StockAdjustmentRead(BaseModel):
    id: int
    product_id: int
    batch_id: Optional[int]
    serial_id: Optional[int]
    category: str
    old_quantity: int
    new_quantity: int
    adjustment: int
    reason: Optional[str]
    adjusted_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StockMismatch(BaseModel):
    product_id: int
    batch_id: Optional[int] = None
    recorded: int
    expected: int
