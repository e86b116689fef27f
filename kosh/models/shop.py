from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, Integer, String

from kosh.database.base import Base


class Shop(Base):
    __tablename__ = "shop"

    id = Column(Integer, primary_key=True, default=1)

    shop_name = Column(String, nullable=False)
    owner_name = Column(String)
    contact_number = Column(String)
    email = Column(String)
    address_line1 = Column(String)
    address_line2 = Column(String)
    city = Column(String)
    state = Column(String)
    pincode = Column(String)
    country = Column(String, default="India")
    gstin = Column(String)
    gst_registration_type = Column(String)

    invoice_prefix = Column(String, default="INV")
    financial_year_start = Column(String, nullable=False, default="01-04", server_default="01-04")

    gst_enabled = Column(Boolean, nullable=False, default=True)
    inclusive_tax_pricing = Column(Boolean, nullable=False, default=True, server_default="1")
    default_gst_rate = Column(Float, default=18)
    default_payment_mode = Column(String, default="cash")
    allow_negative_stock = Column(Boolean, nullable=False, default=False, server_default="0")
    low_stock_threshold = Column(Integer, default=5)

    sale_invoice_counter = Column(Integer, nullable=False, default=0, server_default="0")
    purchase_bill_counter = Column(Integer, nullable=False, default=0, server_default="0")
    credit_note_counter = Column(Integer, nullable=False, default=0, server_default="0")
    debit_note_counter = Column(Integer, nullable=False, default=0, server_default="0")
    payment_in_counter = Column(Integer, nullable=False, default=0, server_default="0")
    payment_out_counter = Column(Integer, nullable=False, default=0, server_default="0")
    non_gst_sale_counter = Column(Integer, nullable=False, default=0, server_default="0")
    last_reset_fy = Column(String)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("id = 1", name="ck_shop_singleton"),
        CheckConstraint(
            "gst_registration_type IS NULL OR gst_registration_type IN ('regular','composition','unregistered')",
            name="ck_shop_gst_registration_type",
        ),
    )


__all__ = ["Shop"]
