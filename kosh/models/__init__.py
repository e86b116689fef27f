from kosh.models.batch import ProductBatch, ProductSerial
from kosh.models.catalog import Category, StorageLocation, Subcategory
from kosh.models.non_gst import NonGstSale, NonGstSaleItem
from kosh.models.parties import Customer, Supplier
from kosh.models.product import Product
from kosh.models.purchase import Purchase, PurchaseItem
from kosh.models.sales import Sale, SaleItem
from kosh.models.schema_migration import SchemaMigration, SecondarySchemaMigration
from kosh.models.shop import Shop
from kosh.models.stock_adjustment import StockAdjustment
from kosh.models.transaction import Transaction
from kosh.models.user import User

__all__ = [
    "Category",
    "Customer",
    "NonGstSale",
    "NonGstSaleItem",
    "Product",
    "ProductBatch",
    "ProductSerial",
    "Purchase",
    "PurchaseItem",
    "Sale",
    "SaleItem",
    "SchemaMigration",
    "SecondarySchemaMigration",
    "Shop",
    "StockAdjustment",
    "StorageLocation",
    "Subcategory",
    "Supplier",
    "Transaction",
    "User",
]
