import logging
import traceback
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from clinicore.models.error_log import ErrorLog

logger = logging.getLogger(__name__)


def log_error(
    db: Session,
    *,
    description: Optional[str] = None,
    error_source: str = "backend",  # "backend" | "frontend"
    endpoint: Optional[str] = None,
    module: Optional[str] = None,
    function: Optional[str] = None,
    http_status: Optional[int] = None,
    tenant_code: Optional[str] = None,
    request_payload: Optional[Dict[str, Any]] = None,
    response_payload: Optional[Dict[str, Any]] = None,
    stack_trace: Optional[str] = None,
) -> None:
    """
    Central helper to persist an error into error_logs.
    Never raises: a failing insert is only logged.
    """
    try:
        db.add(
            ErrorLog(
                error_source=error_source,
                description=(description or "")[:1000] or None,
                endpoint=endpoint,
                module=module,
                function=function,
                http_status=http_status,
                tenant_code=tenant_code,
                request_payload=request_payload,
                response_payload=response_payload,
                stack_trace=stack_trace,
            ))
        db.commit()
    except Exception:
        # last resort – never raise from logger
        db.rollback()
        logger.exception("Failed to persist error log")


def format_exception(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
