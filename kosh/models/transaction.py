from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, Float, Index, Integer, String

from kosh.database.base import Base


class Transaction(Base):
    """Money movement against a bill or a customer/supplier account."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    reference_no = Column(String, nullable=False, unique=True)
    type = Column(String(20), nullable=False)

    bill_id = Column(Integer)
    bill_type = Column(String(20))

    entity_id = Column(Integer)
    entity_type = Column(String(20))

    transaction_date = Column(Date, nullable=False)
    amount = Column(Float, nullable=False, default=0)
    payment_mode = Column(String)
    status = Column(String, nullable=False, default="completed")
    note = Column(String)
    gst_amount = Column(Float, nullable=False, default=0)
    discount = Column(Float, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_transactions_entity", "entity_type", "entity_id", "transaction_date"),
        Index("idx_transactions_bill", "bill_type", "bill_id"),
    )


__all__ = ["Transaction"]
