# FILE: clinicore/api/response.py
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Type

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel


def _send(payload: Dict[str, Any], status_code: int) -> JSONResponse:
    # Decimal money goes out as a string ("10.00"), dates as ISO strings
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def ok(
    data: Any = None,
    *,
    meta: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
) -> JSONResponse:
    """
    Success envelope: {"ok": true, "data": ..., "meta": {...}}.
    "meta" is left out when not given.
    """
    payload: Dict[str, Any] = {"ok": True, "data": data}
    if meta is not None:
        payload["meta"] = meta
    return _send(payload, status_code)


def ok_list(
    rows: Iterable[Any],
    schema: Type[BaseModel],
    *,
    meta: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
) -> JSONResponse:
    """
    Serialise ORM rows through `schema` and wrap them; meta.total is the row count.
    """
    data = [schema.model_validate(r) for r in rows]
    return ok(data, meta={**(meta or {}), "total": len(data)}, status_code=status_code)


def err(
    msg: str = "Something went wrong",
    *,
    status_code: int = 400,
    code: Optional[str] = None,
    details: Any = None,
) -> JSONResponse:
    """Failure envelope: {"ok": false, "error": {"msg", "code", "details"}}."""
    return _send(
        {"ok": False, "error": {"msg": msg, "code": code, "details": details}},
        status_code,
    )
