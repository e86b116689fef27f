from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from kosh.database.base import Base


class ProductBatch(Base):
    __tablename__ = "product_batches"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    # a batch outlives the purchase that created it
    purchase_id = Column(Integer, ForeignKey("purchases.id", ondelete="SET NULL"))

    batch_uid = Column(String, nullable=False, unique=True)
    batch_number = Column(String, nullable=False, default="DEFAULT")
    barcode = Column(String)
    expiry_date = Column(Date)
    mfg_date = Column(Date)

    mrp = Column(Float, nullable=False, default=0)
    cost_price = Column(Float, nullable=False, default=0)
    selling_price = Column(Float, nullable=False, default=0)
    margin = Column(Float, nullable=False, default=0)

    quantity = Column(Integer, nullable=False, default=0)
    location = Column(String, default="Store")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("idx_batches_product_active", "product_id", "is_active"),
        Index("idx_batches_batch_number", "batch_number"),
    )


class ProductSerial(Base):
    __tablename__ = "product_serials"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    batch_id = Column(Integer, ForeignKey("product_batches.id", ondelete="CASCADE"), nullable=False)
    serial_number = Column(String, nullable=False)
    status = Column(String(12), nullable=False, default="available")

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("product_id", "serial_number", name="uq_serials_product_serial"),
        CheckConstraint(
            "status IN ('available', 'sold', 'returned', 'defective', 'in_repair')",
            name="ck_serials_status",
        ),
        Index("idx_serials_batch_status", "batch_id", "status"),
        Index("idx_serials_serial_number", "serial_number"),
    )


__all__ = ["ProductBatch", "ProductSerial"]
