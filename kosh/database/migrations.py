"""Schema creation and versioned additive column migrations.

Every table is created with ``create_all`` on startup. Columns introduced
after a database was first created are added by the ordered migration lists
below; applied ids are stored in ``schema_migrations`` so each one runs at
most once. A failed migration is logged and retried on the next start, it
never aborts startup.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import MetaData, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = "schema_migrations"


@dataclass(frozen=True)
class ColumnMigration:
    id: str
    table: str
    column: str
    ddl: str
    description: str = ""
    post_sql: Optional[str] = None


PRIMARY_MIGRATIONS: tuple[ColumnMigration, ...] = (
    ColumnMigration(
        "0001_products_tracking_type",
        "products",
        "tracking_type",
        "VARCHAR(10) NOT NULL DEFAULT 'none'",
        "Inventory tracking mode per product",
    ),
    ColumnMigration(
        "0002_products_low_stock_threshold",
        "products",
        "low_stock_threshold",
        "INTEGER NOT NULL DEFAULT 0",
    ),
    ColumnMigration(
        "0003_sales_items_batch_id",
        "sales_items",
        "batch_id",
        "INTEGER REFERENCES product_batches(id) ON DELETE SET NULL",
        "Batch consumed by a sale line",
    ),
    ColumnMigration(
        "0004_sales_items_serial_id",
        "sales_items",
        "serial_id",
        "INTEGER REFERENCES product_serials(id) ON DELETE SET NULL",
        "Serial consumed by a sale line",
    ),
    ColumnMigration(
        "0005_sales_items_returned_quantity",
        "sales_items",
        "returned_quantity",
        "INTEGER NOT NULL DEFAULT 0",
    ),
    ColumnMigration(
        "0006_stock_adjustments_batch_id",
        "stock_adjustments",
        "batch_id",
        "INTEGER REFERENCES product_batches(id) ON DELETE SET NULL",
    ),
    ColumnMigration(
        "0007_stock_adjustments_serial_id",
        "stock_adjustments",
        "serial_id",
        "INTEGER REFERENCES product_serials(id) ON DELETE SET NULL",
    ),
    ColumnMigration(
        "0008_product_batches_barcode",
        "product_batches",
        "barcode",
        "VARCHAR",
    ),
    ColumnMigration(
        "0009_product_batches_margin",
        "product_batches",
        "margin",
        "FLOAT NOT NULL DEFAULT 0",
    ),
    ColumnMigration(
        "0010_product_batches_selling_price",
        "product_batches",
        "selling_price",
        "FLOAT NOT NULL DEFAULT 0",
        "Lot selling price, seeded from MRP",
        post_sql="UPDATE product_batches SET selling_price = mrp WHERE selling_price = 0",
    ),
    ColumnMigration(
        "0011_shop_allow_negative_stock",
        "shop",
        "allow_negative_stock",
        "BOOLEAN NOT NULL DEFAULT 0",
    ),
    ColumnMigration(
        "0012_shop_inclusive_tax_pricing",
        "shop",
        "inclusive_tax_pricing",
        "BOOLEAN NOT NULL DEFAULT 1",
    ),
    ColumnMigration(
        "0013_shop_non_gst_sale_counter",
        "shop",
        "non_gst_sale_counter",
        "INTEGER NOT NULL DEFAULT 0",
    ),
    ColumnMigration(
        "0014_shop_last_reset_fy",
        "shop",
        "last_reset_fy",
        "VARCHAR",
    ),
    ColumnMigration(
        "0015_purchases_discount",
        "purchases",
        "discount",
        "FLOAT NOT NULL DEFAULT 0",
    ),
    ColumnMigration(
        "0016_purchase_items_batch_uid",
        "purchase_items",
        "batch_uid",
        "VARCHAR",
    ),
    ColumnMigration(
        "0017_purchase_items_batch_number",
        "purchase_items",
        "batch_number",
        "VARCHAR",
    ),
    ColumnMigration(
        "0018_purchase_items_serial_numbers",
        "purchase_items",
        "serial_numbers",
        "TEXT",
    ),
    ColumnMigration(
        "0019_purchase_items_expiry_date",
        "purchase_items",
        "expiry_date",
        "DATE",
    ),
    ColumnMigration(
        "0020_purchase_items_mfg_date",
        "purchase_items",
        "mfg_date",
        "DATE",
    ),
)

SECONDARY_MIGRATIONS: tuple[ColumnMigration, ...] = (
    ColumnMigration(
        "0001_sales_items_non_gst_product_name",
        "sales_items_non_gst",
        "product_name",
        "VARCHAR",
        "Product name snapshot for decoupled receipts",
    ),
)


def _escape_sqlite_identifier(value: str) -> str:
    return value.replace('"', '""')


def _get_sqlite_columns(conn: Connection, table_name: str) -> set[str]:
    escaped_table = _escape_sqlite_identifier(table_name)
    # noinspection SqlNoDataSourceInspection
    result = conn.exec_driver_sql(
        f'PRAGMA table_info("{escaped_table}")'
    ).mappings()
    return {row["name"] for row in result}


def _is_duplicate_column(exc: SQLAlchemyError) -> bool:
    return "duplicate column" in str(getattr(exc, "orig", exc)).lower()


def _applied_ids(conn: Connection) -> set[str]:
    # noinspection SqlNoDataSourceInspection
    rows = conn.exec_driver_sql(f"SELECT id FROM {MIGRATIONS_TABLE}").all()
    return {row[0] for row in rows}


def _record(conn: Connection, migration: ColumnMigration) -> None:
    conn.execute(
        text(
            f"INSERT OR IGNORE INTO {MIGRATIONS_TABLE} (id, description, applied_at) "
            "VALUES (:id, :description, :applied_at)"
        ),
        {
            "id": migration.id,
            "description": migration.description or "add {}.{}".format(migration.table, migration.column),
            "applied_at": datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f"),
        },
    )


def _apply(conn: Connection, migration: ColumnMigration) -> str:
    existing = _get_sqlite_columns(conn, migration.table)
    if not existing:
        return "missing_table"
    if migration.column in existing:
        _record(conn, migration)
        return "adopted"

    escaped_table = _escape_sqlite_identifier(migration.table)
    escaped_column = _escape_sqlite_identifier(migration.column)
    # noinspection SqlNoDataSourceInspection
    conn.exec_driver_sql(
        f'ALTER TABLE "{escaped_table}" ADD COLUMN "{escaped_column}" {migration.ddl}'
    )
    if migration.post_sql:
        conn.exec_driver_sql(migration.post_sql)
    _record(conn, migration)
    return "applied"


def create_schema(engine: Engine, metadata: MetaData) -> None:
    metadata.create_all(bind=engine)


def run_migrations(engine: Engine, migrations: Sequence[ColumnMigration]) -> list[str]:
    """Apply pending migrations in order; returns the ids applied by this call."""
    applied_now: list[str] = []
    with engine.connect() as conn:
        with conn.begin():
            applied = _applied_ids(conn)

        for migration in migrations:
            if migration.id in applied:
                continue
            try:
                with conn.begin():
                    outcome = _apply(conn, migration)
            except SQLAlchemyError as exc:
                if _is_duplicate_column(exc):
                    with conn.begin():
                        _record(conn, migration)
                    applied.add(migration.id)
                    continue
                logger.warning(
                    "Migration %s (%s.%s) failed; continuing without it: %s",
                    migration.id,
                    migration.table,
                    migration.column,
                    exc,
                )
                continue

            if outcome == "missing_table":
                logger.warning(
                    "Migration %s skipped: table %s does not exist.",
                    migration.id,
                    migration.table,
                )
                continue
            applied.add(migration.id)
            if outcome == "applied":
                applied_now.append(migration.id)
                logger.info("Applied migration %s", migration.id)
    return applied_now


__all__ = [
    "ColumnMigration",
    "PRIMARY_MIGRATIONS",
    "SECONDARY_MIGRATIONS",
    "create_schema",
    "run_migrations",
]
