from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from kosh.database.base import Base, SecondaryBase


class SchemaMigration(Base):
    __tablename__ = "schema_migrations"

    id = Column(String(80), primary_key=True)
    description = Column(String)
    applied_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class SecondarySchemaMigration(SecondaryBase):
    __tablename__ = "schema_migrations"

    id = Column(String(80), primary_key=True)
    description = Column(String)
    applied_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


__all__ = ["SchemaMigration", "SecondarySchemaMigration"]
