from kosh.database.base import Base, SecondaryBase
from kosh.database.engine import StoreContext, secondary_path_for
from kosh.database.migrations import PRIMARY_MIGRATIONS, SECONDARY_MIGRATIONS, run_migrations

__all__ = [
    "Base",
    "PRIMARY_MIGRATIONS",
    "SECONDARY_MIGRATIONS",
    "SecondaryBase",
    "StoreContext",
    "run_migrations",
    "secondary_path_for",
]
