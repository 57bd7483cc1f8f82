# vetclinic/services/error_logger.py
import logging
import traceback
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vetclinic.models.error_log import UNHANDLED, ErrorLog

logger = logging.getLogger(__name__)


def format_exception(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def log_error(
    db: Session,
    *,
    description: str,
    kind: str = UNHANDLED,
    endpoint: Optional[str] = None,
    module: Optional[str] = None,
    function: Optional[str] = None,
    http_status: Optional[int] = None,
    user_id: Optional[int] = None,
    context: Optional[Dict[str, Any]] = None,
    exc: Optional[BaseException] = None,
) -> Optional[ErrorLog]:
    """
    Store one row in error_logs and commit it.

    Called after the caller's own transaction is settled (committed or
    rolled back). Returns None when the row itself cannot be stored; that
    case only reaches the application log.
    """
    row = ErrorLog(
        kind=kind,
        description=description[:1000],
        endpoint=endpoint,
        module=module,
        function=function,
        http_status=http_status,
        user_id=user_id,
        context=context,
        stack_trace=format_exception(exc) if exc is not None else None,
    )
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not store error log (%s): %s", kind, description)
        return None
    return row
