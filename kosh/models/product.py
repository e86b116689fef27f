from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Index, Integer, String

from kosh.database.base import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    product_code = Column(String, nullable=False, unique=True)
    hsn = Column(String)
    gst_rate = Column(Float, nullable=False, default=0)
    mrp = Column(Float)
    mop = Column(Float)
    average_purchase_price = Column(Float, nullable=False, default=0)

    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"))
    subcategory_id = Column(Integer, ForeignKey("subcategories.id", ondelete="SET NULL"))
    storage_location = Column(String)

    # cached aggregate of batch/serial stock; source of truth for untracked products
    quantity = Column(Integer, nullable=False, default=0)
    tracking_type = Column(String(10), nullable=False, default="none", server_default="none")
    low_stock_threshold = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    description = Column(String)
    brand = Column(String)
    barcode = Column(String)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("tracking_type IN ('none', 'batch', 'serial')", name="ck_products_tracking_type"),
        Index("idx_products_barcode", "barcode"),
        Index("idx_products_name", "name"),
    )


__all__ = ["Product"]
