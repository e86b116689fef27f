import argparse
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running this script directly.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from sqlalchemy.exc import SQLAlchemyError

from kosh.core.exceptions import StoreError
from kosh.core.logging import setup_logging
from kosh.database.engine import StoreContext
from kosh.services.inventory_service import verify_stock_consistency


def parse_args():
    parser = argparse.ArgumentParser(
        description="Create or migrate the inventory/ledger store and seed the default admin."
    )
    parser.add_argument("--path", default=None, help="Primary database file. Default: DATABASE_PATH.")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Also verify that cached stock quantities match batches and serials.",
    )
    return parser.parse_args()


def main():
    setup_logging()
    args = parse_args()
    store = StoreContext()
    try:
        store.initialize(args.path)
    except (OSError, SQLAlchemyError, StoreError) as exc:
        raise SystemExit(f"Store initialization failed: {exc}") from exc

    try:
        print(f"Primary store:   {store.db_path}")
        print(f"Secondary store: {store.secondary_db_path}")
        if args.check:
            with store.read_session() as db:
                mismatches = verify_stock_consistency(db)
            if mismatches:
                for mismatch in mismatches:
                    where = f"batch {mismatch.batch_id}" if mismatch.batch_id else "product total"
                    print(
                        f"product {mismatch.product_id} ({where}): "
                        f"recorded {mismatch.recorded}, expected {mismatch.expected}"
                    )
                raise SystemExit(1)
            print("Stock quantities are consistent.")
    finally:
        store.close()


if __name__ == "__main__":
    main()
