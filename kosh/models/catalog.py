from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint

from kosh.database.base import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    code = Column(String, nullable=False, unique=True)


class Subcategory(Base):
    __tablename__ = "subcategories"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    code = Column(String, nullable=False, unique=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"))

    __table_args__ = (
        UniqueConstraint("name", "category_id", name="uq_subcategories_name_category"),
    )


class StorageLocation(Base):
    __tablename__ = "storage_locations"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)


__all__ = ["Category", "StorageLocation", "Subcategory"]
