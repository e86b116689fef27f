import argparse
import sys
from datetime import datetime
from pathlib import Path

# Ensure repo root is on sys.path when running this script directly.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from sqlalchemy.exc import SQLAlchemyError

from kosh.core.exceptions import StoreError
from kosh.core.logging import setup_logging
from kosh.database.engine import StoreContext


def parse_args():
    parser = argparse.ArgumentParser(description="Take an online backup of the primary store.")
    parser.add_argument("--path", default=None, help="Primary database file. Default: DATABASE_PATH.")
    parser.add_argument(
        "--target",
        default=None,
        help="Backup file. Default: backups/database-<timestamp>.db next to the store.",
    )
    return parser.parse_args()


def main():
    setup_logging()
    args = parse_args()
    store = StoreContext()
    try:
        store.initialize(args.path)
        target = args.target
        if target is None:
            stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
            target = store.db_path.parent / "backups" / f"database-{stamp}.db"
        written = store.backup_to(target)
    except (OSError, SQLAlchemyError, StoreError) as exc:
        raise SystemExit(f"Backup failed: {exc}") from exc
    finally:
        store.close()
    print(f"Backup written to {written}")


if __name__ == "__main__":
    main()
