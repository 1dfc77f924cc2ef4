import logging

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import StorageError

LOCK_CONFLICT_DETAIL = "Slot booking is in progress. Retry the request."
STORAGE_UNAVAILABLE_DETAIL = "Storage is unavailable. Retry the request."
PG_LOCK_NOT_AVAILABLE_SQLSTATE = "55P03"

logger = logging.getLogger("app.storage")


def is_postgresql_session(db: Session) -> bool:
    bind = db.get_bind()
    return bind is not None and bind.dialect.name == "postgresql"


def is_pg_lock_not_available(exc: OperationalError) -> bool:
    original_error = getattr(exc, "orig", None)
    if original_error is None:
        return False

    sqlstate = getattr(original_error, "sqlstate", None)
    if sqlstate is None:
        sqlstate = getattr(original_error, "pgcode", None)

    return sqlstate == PG_LOCK_NOT_AVAILABLE_SQLSTATE


def to_storage_error(db: Session, exc: SQLAlchemyError, operation: str) -> StorageError:
    """Roll back ``db`` and translate ``exc`` into a retryable StorageError."""
    db.rollback()
    if isinstance(exc, OperationalError) and is_pg_lock_not_available(exc):
        logger.warning("storage_lock_timeout operation=%s", operation)
        return StorageError(LOCK_CONFLICT_DETAIL)
    logger.error("storage_failed operation=%s error=%s", operation, exc.__class__.__name__)
    return StorageError(STORAGE_UNAVAILABLE_DETAIL)


def commit_or_raise(db: Session, operation: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        raise to_storage_error(db, exc, operation) from exc
