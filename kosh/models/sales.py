from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from kosh.database.base import Base


class Sale(Base):
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"))
    reference_no = Column(String, nullable=False, unique=True)
    payment_mode = Column(String, nullable=False, default="Cash")
    paid_amount = Column(Float, nullable=False, default=0)
    total_amount = Column(Float, nullable=False, default=0)
    discount = Column(Float, nullable=False, default=0)
    note = Column(String)
    status = Column(String, nullable=False, default="completed")

    is_reverse_charge = Column(Boolean, nullable=False, default=False)
    is_ecommerce_sale = Column(Boolean, nullable=False, default=False)
    is_quote = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    items = relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="SaleItem.id",
    )

    __table_args__ = (
        Index("idx_sales_customer_id", "customer_id"),
        Index("idx_sales_created_at", "created_at"),
    )


class SaleItem(Base):
    __tablename__ = "sales_items"

    id = Column(Integer, primary_key=True)
    sale_id = Column(Integer, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False)
    sr_no = Column(String, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    batch_id = Column(Integer, ForeignKey("product_batches.id", ondelete="SET NULL"))
    serial_id = Column(Integer, ForeignKey("product_serials.id", ondelete="SET NULL"))

    rate = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)
    gst_rate = Column(Float, nullable=False, default=0)
    discount = Column(Float, nullable=False, default=0)
    price = Column(Float, nullable=False)
    returned_quantity = Column(Integer, nullable=False, default=0, server_default="0")

    sale = relationship("Sale", back_populates="items")

    __table_args__ = (
        Index("idx_sales_items_sale_id", "sale_id"),
        Index("idx_sales_items_serial_id", "serial_id"),
    )


__all__ = ["Sale", "SaleItem"]
