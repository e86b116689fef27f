from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from kosh.database.engine import StoreContext
from kosh.dependencies import get_store

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(store: StoreContext = Depends(get_store)):
    settings = store.settings
    return {
        "status": "ok" if store.is_initialized else "starting",
        "app": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "store": str(store.db_path) if store.db_path else None,
        "time": datetime.now(timezone.utc).isoformat(),
    }
