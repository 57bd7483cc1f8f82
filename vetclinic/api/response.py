# vetclinic/api/response.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    422: "validation_error",
    500: "server_error",
}


def ok(data: Any = None, *, status_code: int = 200) -> JSONResponse:
    body: Dict[str, Any] = {"ok": True, "data": data}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def err(msg: str,
        *,
        status_code: int = 400,
        details: Optional[Dict[str, List[str]]] = None) -> JSONResponse:
    """
    Error envelope used by every exception handler:

        {"ok": false, "error": {"msg": ..., "code": ..., "details": ...}}

    `code` follows the HTTP status; `details` is the {field: [messages]}
    map of field errors, or null.
    """
    body = {
        "ok": False,
        "error": {
            "msg": msg,
            "code": ERROR_CODES.get(status_code, "error"),
            "details": details,
        },
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))
