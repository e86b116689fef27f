from typing import Iterator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from kosh.core.exceptions import StoreNotInitializedError
from kosh.database.engine import StoreContext


def get_store(request: Request) -> StoreContext:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise StoreNotInitializedError("primary")
    return store


def get_db(store: StoreContext = Depends(get_store)) -> Iterator[Session]:
    with store.read_session() as db:
        yield db


def get_write_db(store: StoreContext = Depends(get_store)) -> Iterator[Session]:
    with store.write_session() as db:
        yield db


__all__ = ["get_db", "get_store", "get_write_db"]
