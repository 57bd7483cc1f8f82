# vetclinic/api/exception_handlers.py
from __future__ import annotations

import logging
from typing import Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vetclinic.api.response import err
from vetclinic.db.session import SessionLocal
from vetclinic.services.error_logger import log_error

logger = logging.getLogger(__name__)


def _field_map(exc: RequestValidationError) -> Dict[str, List[str]]:
    fields: Dict[str, List[str]] = {}
    for e in exc.errors():
        # drop the "body"/"query"/"path" prefix
        loc = [str(p) for p in e.get("loc", ())[1:]] or ["__root__"]
        fields.setdefault(".".join(loc), []).append(e.get("msg", "Invalid value"))
    return fields


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # exc.detail can be str or {"msg": ..., "errors": {...}}
        details = None
        if isinstance(exc.detail, dict):
            msg = str(exc.detail.get("msg") or "Request failed")
            details = exc.detail.get("errors")
        elif isinstance(exc.detail, str):
            msg = exc.detail
        else:
            msg = "Request failed"
        if exc.status_code >= 500:
            logger.error("%s %s -> %s: %s", request.method, request.url.path,
                         exc.status_code, msg)
        return err(msg, status_code=exc.status_code, details=details)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return err("Validation error", status_code=422, details=_field_map(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        db = SessionLocal()
        try:
            log_error(
                db,
                description=str(exc) or type(exc).__name__,
                endpoint=f"{request.method} {request.url.path}",
                http_status=500,
                exc=exc,
            )
        finally:
            db.close()
        return err("Internal server error", status_code=500)
