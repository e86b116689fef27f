from kosh.routers.auth import router as auth_router
from kosh.routers.health import router as health_router
from kosh.routers.ledger import router as ledger_router
from kosh.routers.parties import router as parties_router
from kosh.routers.products import router as products_router
from kosh.routers.purchases import router as purchases_router
from kosh.routers.references import router as references_router
from kosh.routers.sales import router as sales_router
from kosh.routers.serials import router as serials_router
from kosh.routers.shop import router as shop_router

__all__ = [
    "auth_router",
    "health_router",
    "ledger_router",
    "parties_router",
    "products_router",
    "purchases_router",
    "references_router",
    "sales_router",
    "serials_router",
    "shop_router",
]
