import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from kosh.config import Settings, get_settings
from kosh.core.exceptions import (
    AuthenticationError,
    ConstraintViolation,
    InvariantViolation,
    NonGstSaleNotRecorded,
    NotFoundError,
    PermissionDenied,
    StoreNotInitializedError,
    StoreRejected,
)
from kosh.core.logging import setup_logging
from kosh.database.engine import StoreContext
from kosh.routers import (
    auth_router,
    health_router,
    ledger_router,
    parties_router,
    products_router,
    purchases_router,
    references_router,
    sales_router,
    serials_router,
    shop_router,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (StoreNotInitializedError, 503),
    (NotFoundError, 404),
    (ConstraintViolation, 409),
    (InvariantViolation, 422),
    (AuthenticationError, 401),
    (PermissionDenied, 403),
    (StoreRejected, 400),
)


def _error_response(status_code: int, exc: Exception, **extra) -> JSONResponse:
    body = {"detail": str(exc), "error": type(exc).__name__}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def _register_exception_handlers(app: FastAPI) -> None:
    for error_type, status_code in _STATUS_BY_ERROR:
        def handler(_request: Request, exc: Exception, status_code: int = status_code):
            return _error_response(status_code, exc)

        app.add_exception_handler(error_type, handler)

    @app.exception_handler(IntegrityError)
    def _integrity_error(_request: Request, exc: IntegrityError):
        return _error_response(409, ConstraintViolation(str(exc.orig), original=exc))

    @app.exception_handler(NonGstSaleNotRecorded)
    def _secondary_write_failed(_request: Request, exc: NonGstSaleNotRecorded):
        logger.error("Secondary store write failed for %s", exc.reference_no)
        return _error_response(500, exc, reference_no=exc.reference_no)


def create_app(store: Optional[StoreContext] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the local API over ``store``.

    A store handed in already initialized stays owned by the caller; otherwise
    the lifespan opens it from settings and closes it on shutdown.
    """
    settings = settings or get_settings()
    store = store or StoreContext(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        owns_store = not store.is_initialized
        if owns_store:
            store.initialize()
        try:
            yield
        finally:
            if owns_store:
                store.close()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.store = store
    _register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(references_router)
    app.include_router(products_router)
    app.include_router(serials_router)
    app.include_router(sales_router)
    app.include_router(purchases_router)
    app.include_router(ledger_router)
    app.include_router(parties_router)
    app.include_router(shop_router)
    app.include_router(auth_router)
    return app


def build_default_app() -> FastAPI:
    setup_logging()
    return create_app()


__all__ = ["build_default_app", "create_app"]
