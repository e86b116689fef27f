import sqlite3
import tempfile
import unittest
from pathlib import Path

from sqlalchemy import create_engine

from kosh.database.engine import StoreContext
from kosh.database.migrations import PRIMARY_MIGRATIONS, ColumnMigration, run_migrations
from kosh.models.schema_migration import SchemaMigration
from store_case import make_settings


def _columns(conn, table):
    return {row[1] for row in conn.exec_driver_sql(f'PRAGMA table_info("{table}")').all()}


class MigrationTest(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.db_path = Path(self._tmp.name) / "database.db"

    def test_fresh_store_adopts_every_migration(self):
        store = StoreContext(make_settings(self._tmp.name)).initialize()
        self.addCleanup(store.close)

        with store.primary.connect() as conn:
            recorded = {row[0] for row in conn.exec_driver_sql("SELECT id FROM schema_migrations").all()}

        self.assertTrue({migration.id for migration in PRIMARY_MIGRATIONS} <= recorded)
        self.assertEqual(run_migrations(store.primary, PRIMARY_MIGRATIONS), [])

    def test_legacy_tables_gain_missing_columns(self):
        legacy = sqlite3.connect(str(self.db_path))
        legacy.executescript(
            """
            CREATE TABLE products (
                id INTEGER PRIMARY KEY,
                name VARCHAR NOT NULL,
                product_code VARCHAR NOT NULL UNIQUE,
                quantity INTEGER NOT NULL DEFAULT 0
            );
            CREATE TABLE product_batches (
                id INTEGER PRIMARY KEY,
                product_id INTEGER NOT NULL,
                batch_uid VARCHAR NOT NULL,
                mrp FLOAT NOT NULL DEFAULT 0,
                quantity INTEGER NOT NULL DEFAULT 0
            );
            INSERT INTO products (id, name, product_code, quantity) VALUES (1, 'Kettle', 'K-1', 4);
            INSERT INTO product_batches (id, product_id, batch_uid, mrp, quantity) VALUES (1, 1, 'BAT-1-0001', 99, 4);
            """
        )
        legacy.commit()
        legacy.close()

        store = StoreContext(make_settings(self._tmp.name)).initialize()
        self.addCleanup(store.close)

        with store.primary.connect() as conn:
            product_columns = _columns(conn, "products")
            batch_columns = _columns(conn, "product_batches")
            tracking, threshold = conn.exec_driver_sql(
                "SELECT tracking_type, low_stock_threshold FROM products WHERE id = 1"
            ).one()
            selling_price = conn.exec_driver_sql(
                "SELECT selling_price FROM product_batches WHERE id = 1"
            ).scalar()

        self.assertIn("tracking_type", product_columns)
        self.assertIn("low_stock_threshold", product_columns)
        self.assertTrue({"barcode", "margin", "selling_price"} <= batch_columns)
        self.assertEqual(tracking, "none")
        self.assertEqual(threshold, 0)
        self.assertEqual(selling_price, 99)

    def test_rerun_applies_nothing(self):
        engine = create_engine(f"sqlite:///{self.db_path}")
        self.addCleanup(engine.dispose)
        SchemaMigration.__table__.create(engine)
        with engine.begin() as conn:
            conn.exec_driver_sql("CREATE TABLE widgets (id INTEGER PRIMARY KEY)")
        migrations = (ColumnMigration("0001_widgets_colour", "widgets", "colour", "VARCHAR"),)

        self.assertEqual(run_migrations(engine, migrations), ["0001_widgets_colour"])
        self.assertEqual(run_migrations(engine, migrations), [])

    def test_failed_and_skipped_migrations_are_not_recorded(self):
        engine = create_engine(f"sqlite:///{self.db_path}")
        self.addCleanup(engine.dispose)
        SchemaMigration.__table__.create(engine)
        with engine.begin() as conn:
            conn.exec_driver_sql("CREATE TABLE widgets (id INTEGER PRIMARY KEY)")
        migrations = (
            ColumnMigration("0001_ghost_colour", "ghost", "colour", "VARCHAR"),
            ColumnMigration("0002_widgets_broken", "widgets", "broken", "INTEGER DEFAULT (("),
            ColumnMigration("0003_widgets_size", "widgets", "size", "INTEGER NOT NULL DEFAULT 1"),
        )

        with self.assertLogs("kosh.database.migrations", level="WARNING") as logs:
            applied = run_migrations(engine, migrations)

        self.assertEqual(applied, ["0003_widgets_size"])
        self.assertEqual(len(logs.records), 2)
        with engine.connect() as conn:
            recorded = {row[0] for row in conn.exec_driver_sql("SELECT id FROM schema_migrations").all()}
        self.assertEqual(recorded, {"0003_widgets_size"})


if __name__ == "__main__":
    unittest.main()
