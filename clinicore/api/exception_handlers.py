# FILE: clinicore/api/exception_handlers.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinicore.api.response import err
from clinicore.db.session import SessionLocal
from clinicore.services.error_logger import format_exception, log_error
from clinicore.utils.jwt import extract_tenant_from_request

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # exc.detail can be str/dict/list
        if isinstance(exc.detail, str):
            return err(msg=exc.detail, status_code=exc.status_code)
        return err(msg="Request failed", status_code=exc.status_code, details=exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return err(
            msg="Validation error",
            status_code=422,
            code="validation_error",
            details=jsonable_encoder(exc.errors(), custom_encoder={Exception: str}),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)

        db = SessionLocal()
        try:
            log_error(
                db,
                description=str(exc) or exc.__class__.__name__,
                error_source="backend",
                endpoint=str(request.url.path),
                module=type(exc).__module__,
                function=request.method,
                http_status=500,
                tenant_code=extract_tenant_from_request(request),
                stack_trace=format_exception(exc),
            )
        finally:
            db.close()

        return err(msg="Internal server error", status_code=500)
