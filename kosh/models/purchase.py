import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from kosh.database.base import Base


def _new_item_id() -> str:
    return uuid.uuid4().hex


class Purchase(Base):
    __tablename__ = "purchases"

    # plain INTEGER PRIMARY KEY: rowid-assigned unless the caller supplies one
    id = Column(Integer, primary_key=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False)
    reference_no = Column(String, nullable=False)
    internal_ref_no = Column(String, nullable=False, unique=True)
    date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default="received")
    note = Column(String)
    total_amount = Column(Float, nullable=False)
    paid_amount = Column(Float, nullable=False, default=0)
    discount = Column(Float, nullable=False, default=0)
    payment_mode = Column(String, default="Cash")
    is_reverse_charge = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    items = relationship(
        "PurchaseItem",
        back_populates="purchase",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_purchases_supplier_id", "supplier_id"),
        Index("idx_purchases_date", "date"),
    )


class PurchaseItem(Base):
    __tablename__ = "purchase_items"

    id = Column(String(32), primary_key=True, default=_new_item_id)
    purchase_id = Column(Integer, ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    rate = Column(Float, nullable=False)
    gst_rate = Column(Float, nullable=False, default=0)
    discount = Column(Float, nullable=False, default=0)
    price = Column(Float, nullable=False, default=0)

    # receipt-time provenance for batch/serial materialization
    batch_uid = Column(String)
    batch_number = Column(String)
    serial_numbers = Column(Text)
    expiry_date = Column(Date)
    mfg_date = Column(Date)
    mrp = Column(Float)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    purchase = relationship("Purchase", back_populates="items")

    __table_args__ = (
        Index("idx_purchase_items_purchase_id", "purchase_id"),
    )


__all__ = ["Purchase", "PurchaseItem"]
