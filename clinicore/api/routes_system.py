from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.orm import Session

from clinicore import __version__
from clinicore.api.deps import get_db
from clinicore.api.response import ok
from clinicore.schemas.system import ClientErrorReportIn
from clinicore.services.error_logger import log_error

router = APIRouter()


@router.get("/health")
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return ok({"status": "ok", "version": __version__})


@router.post("/client-error")
async def report_client_error(
        payload: ClientErrorReportIn,
        request: Request,
        db: Session = Depends(get_db),
):
    """
    Frontend sends error details here. Stored in error_logs with source='frontend'.
    """
    tenant_code = payload.tenant_code or request.headers.get("X-Tenant-Code")
    ua = payload.user_agent or request.headers.get("user-agent")

    log_error(
        db,
        description=payload.message or "Frontend error",
        error_source="frontend",
        endpoint=payload.page_url,
        module=payload.module,
        function=payload.function_name,
        http_status=payload.http_status,
        tenant_code=tenant_code,
        request_payload={
            "request_url": payload.request_url,
            "request_method": payload.request_method,
            "request_payload": payload.request_payload,
            "user_agent": ua,
            "extra": payload.extra,
        },
        response_payload={"response_payload": payload.response_payload},
        stack_trace=payload.stack_trace,
    )

    return ok({"status": "ok"})
