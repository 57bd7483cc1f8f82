# vetclinic/services/tx.py
import functools
import logging
from typing import Dict, List, Union

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def _db_message(e: SQLAlchemyError) -> str:
    orig = getattr(e, "orig", None)
    return str(orig or e).splitlines()[0]


def field_error(status_code: int, msg: str,
                **fields: Union[str, List[str]]) -> HTTPException:
    """HTTPException whose detail carries a {field: [messages]} map."""
    errors: Dict[str, List[str]] = {
        k: (v if isinstance(v, list) else [v])
        for k, v in fields.items()
    }
    return HTTPException(status_code=status_code,
                         detail={"msg": msg, "errors": errors})


def commit_or_500(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Commit failed while %s", what)
        raise HTTPException(status_code=500,
                            detail=f"Database error: {_db_message(e)}")


def rollback_on_error(fn):
    """
    Public service functions run as one transaction: any HTTPException or
    SQLAlchemyError raised inside rolls the whole unit back.
    """

    @functools.wraps(fn)
    def wrapper(db: Session, *args, **kwargs):
        try:
            return fn(db, *args, **kwargs)
        except HTTPException:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Database error in %s", fn.__name__)
            raise HTTPException(status_code=500,
                                detail=f"Database error: {_db_message(e)}")

    return wrapper
