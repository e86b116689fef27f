import tempfile
import unittest
from pathlib import Path

from kosh.config import Settings
from kosh.database.engine import StoreContext
from kosh.schemas.party import CustomerCreate, SupplierCreate
from kosh.schemas.product import ProductCreate
from kosh.services.inventory_service import create_product
from kosh.services.party_service import create_customer, create_supplier


def make_settings(tmp_dir: str, **overrides) -> Settings:
    values = {
        "DATABASE_PATH": str(Path(tmp_dir) / "database.db"),
        "PASSWORD_PBKDF2_ROUNDS": 1000,
        "SQLITE_BUSY_TIMEOUT_SECONDS": 5,
    }
    values.update(overrides)
    return Settings(**values)


class StoreTestCase(unittest.TestCase):
    """Fresh primary/secondary store pair in a temporary directory per test."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.tmp_path = Path(self._tmp.name)
        self.settings = make_settings(self._tmp.name)
        self.store = StoreContext(self.settings).initialize()
        self.addCleanup(self.store.close)

    def add_product(self, code="P-1", tracking_type="none", quantity=0, **extra):
        with self.store.write_session() as db:
            product = create_product(
                db,
                ProductCreate(
                    name=extra.pop("name", "Item {}".format(code)),
                    product_code=code,
                    tracking_type=tracking_type,
                    quantity=quantity,
                    **extra,
                ),
            )
            return product.id

    def add_customer(self, name="Asha", phone=None):
        with self.store.write_session() as db:
            return create_customer(db, CustomerCreate(name=name, phone=phone)).id

    def add_supplier(self, name="Acme Traders"):
        with self.store.write_session() as db:
            return create_supplier(db, SupplierCreate(name=name)).id
