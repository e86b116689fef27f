from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kosh.core.exceptions import ConstraintViolation


def flush_or_reject(db: Session, message: str) -> None:
    """Flush pending rows, turning unique/FK failures into ``ConstraintViolation``."""
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConstraintViolation("{}: {}".format(message, exc.orig), original=exc) from exc


__all__ = ["flush_or_reject"]
