from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinicore.api.deps import current_user, get_db
from clinicore.api.response import ok, ok_list
from clinicore.core.rbac import require_roles
from clinicore.models.billing import CustomerType, InvoiceStatus
from clinicore.models.user import User, UserRole
from clinicore.schemas.billing import InvoiceCreate, InvoiceOut, InvoiceUpdate
from clinicore.services import invoices as svc

router = APIRouter()

BILLING_ROLES = [UserRole.CLINIC_ADMIN, UserRole.FINANCE_ADMIN, UserRole.STAFF]


@router.post("")
def create_invoice(
        payload: InvoiceCreate,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, BILLING_ROLES)
    inv = svc.create_invoice(db, tenant_id=user.tenant_id, payload=payload, user=user)
    return ok(InvoiceOut.model_validate(inv), status_code=201)


@router.get("")
def list_invoices(
        clinic_id: Optional[int] = Query(None),
        status: Optional[InvoiceStatus] = Query(None),
        customer_type: Optional[CustomerType] = Query(None),
        start_date: Optional[date] = Query(None),
        end_date: Optional[date] = Query(None),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, BILLING_ROLES)
    rows = svc.find_all(
        db,
        tenant_id=user.tenant_id,
        clinic_id=clinic_id,
        status=status,
        customer_type=customer_type,
        start_date=start_date,
        end_date=end_date,
    )
    return ok_list(rows, InvoiceOut)


@router.get("/overdue")
def overdue(
        clinic_id: Optional[int] = Query(None),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, BILLING_ROLES)
    rows = svc.overdue_invoices(db, tenant_id=user.tenant_id, clinic_id=clinic_id)
    return ok_list(rows, InvoiceOut)


@router.get("/stats")
def stats(
        clinic_id: Optional[int] = Query(None),
        start_date: Optional[date] = Query(None),
        end_date: Optional[date] = Query(None),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, BILLING_ROLES)
    return ok(
        svc.invoice_stats(
            db,
            tenant_id=user.tenant_id,
            clinic_id=clinic_id,
            start_date=start_date,
            end_date=end_date,
        ))


@router.get("/{invoice_id}")
def get_invoice(invoice_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    require_roles(user, BILLING_ROLES)
    return ok(InvoiceOut.model_validate(svc.find_one(db, invoice_id, tenant_id=user.tenant_id)))


@router.patch("/{invoice_id}")
def update_invoice(
        invoice_id: int,
        payload: InvoiceUpdate,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_roles(user, BILLING_ROLES)
    inv = svc.update_invoice(db, invoice_id, tenant_id=user.tenant_id, payload=payload)
    return ok(InvoiceOut.model_validate(inv))


@router.delete("/{invoice_id}")
def remove_invoice(invoice_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    require_roles(user, [UserRole.CLINIC_ADMIN, UserRole.FINANCE_ADMIN])
    svc.remove_invoice(db, invoice_id, tenant_id=user.tenant_id)
    return ok({"message": "Invoice deleted"})


@router.post("/{invoice_id}/send")
def send_invoice(invoice_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    require_roles(user, BILLING_ROLES)
    return ok(InvoiceOut.model_validate(svc.send_invoice(db, invoice_id, tenant_id=user.tenant_id)))


@router.post("/{invoice_id}/cancel")
def cancel_invoice(invoice_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    require_roles(user, [UserRole.CLINIC_ADMIN, UserRole.FINANCE_ADMIN])
    return ok(InvoiceOut.model_validate(svc.cancel_invoice(db, invoice_id, tenant_id=user.tenant_id)))
