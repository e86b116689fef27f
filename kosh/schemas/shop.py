from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kosh.core.dates import parse_day_month


class ShopBase(BaseModel):
    shop_name: str = Field(min_length=1)
    owner_name: Optional[str] = None
    contact_number: Optional[str] = None
    email: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    country: Optional[str] = "India"
    gstin: Optional[str] = None
    gst_registration_type: Optional[str] = None
    invoice_prefix: Optional[str] = "INV"
    financial_year_start: str = "01-04"
    gst_enabled: bool = True
    inclusive_tax_pricing: bool = True
    default_gst_rate: Optional[float] = 18
    default_payment_mode: Optional[str] = "cash"
    allow_negative_stock: bool = False
    low_stock_threshold: Optional[int] = 5

    @field_validator("financial_year_start")
    @classmethod
    def _check_fy_start(cls, value: str) -> str:
        day, month = parse_day_month(value)
        return "{:02d}-{:02d}".format(day, month)


class ShopCreate(ShopBase):
    pass


class ShopUpdate(BaseModel):
    shop_name: Optional[str] = None
    owner_name: Optional[str] = None
    contact_number: Optional[str] = None
    email: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    country: Optional[str] = None
    gstin: Optional[str] = None
    gst_registration_type: Optional[str] = None
    invoice_prefix: Optional[str] = None
    financial_year_start: Optional[str] = None
    gst_enabled: Optional[bool] = None
    inclusive_tax_pricing: Optional[bool] = None
    default_gst_rate: Optional[float] = None
    default_payment_mode: Optional[str] = None
    allow_negative_stock: Optional[bool] = None
    low_stock_threshold: Optional[int] = None

    @field_validator("financial_year_start")
    @classmethod
    def _check_fy_start(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        day, month = parse_day_month(value)
        return "{:02d}-{:02d}".format(day, month)


class ShopRead(ShopBase):
    id: int
    sale_invoice_counter: int
    purchase_bill_counter: int
    credit_note_counter: int
    debit_note_counter: int
    payment_in_counter: int
    payment_out_counter: int
    non_gst_sale_counter: int
    last_reset_fy: Optional[str]

    model_config = ConfigDict(from_attributes=True)
