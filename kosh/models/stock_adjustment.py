from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from kosh.database.base import Base


class StockAdjustment(Base):
    """Append-only audit trail of manual and return-driven stock changes."""

    __tablename__ = "stock_adjustments"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    batch_id = Column(Integer, ForeignKey("product_batches.id", ondelete="SET NULL"))
    serial_id = Column(Integer, ForeignKey("product_serials.id", ondelete="SET NULL"))

    category = Column(String, nullable=False)
    old_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    adjustment = Column(Integer, nullable=False)
    reason = Column(String)
    adjusted_by = Column(String, nullable=False, default="Admin")

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("idx_stock_adjustments_product", "product_id", "created_at"),
    )


__all__ = ["StockAdjustment"]
