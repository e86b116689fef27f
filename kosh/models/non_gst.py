from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from kosh.database.base import SecondaryBase


class NonGstSale(SecondaryBase):
    __tablename__ = "sales_non_gst"

    id = Column(Integer, primary_key=True)
    # customers/products live in the primary store; ids are not FK-enforced here
    customer_id = Column(Integer)
    reference_no = Column(String, nullable=False, unique=True)
    payment_mode = Column(String, nullable=False, default="Cash")
    paid_amount = Column(Float, nullable=False, default=0)
    total_amount = Column(Float, nullable=False, default=0)
    discount = Column(Float, nullable=False, default=0)
    note = Column(String)
    status = Column(String, nullable=False, default="completed")

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    items = relationship(
        "NonGstSaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="NonGstSaleItem.id",
    )

    __table_args__ = (
        Index("idx_sales_non_gst_created_at", "created_at"),
    )


class NonGstSaleItem(SecondaryBase):
    __tablename__ = "sales_items_non_gst"

    id = Column(Integer, primary_key=True)
    sale_id = Column(Integer, ForeignKey("sales_non_gst.id", ondelete="CASCADE"), nullable=False)
    sr_no = Column(String, nullable=False)
    product_id = Column(Integer, nullable=False)
    product_name = Column(String)
    rate = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)
    discount = Column(Float, nullable=False, default=0)
    price = Column(Float, nullable=False)

    sale = relationship("NonGstSale", back_populates="items")


__all__ = ["NonGstSale", "NonGstSaleItem"]
