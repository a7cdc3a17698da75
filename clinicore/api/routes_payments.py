# FILE: clinicore/api/routes_payments.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from clinicore.api.deps import current_user, get_db, request_meta
from clinicore.api.response import ok, ok_list
from clinicore.core.rbac import is_payment_reviewer, require_payment_reviewer
from clinicore.models.billing import Payment, PaymentProvider, PaymentStatus
from clinicore.models.user import User
from clinicore.schemas.payments import (
    ConfirmPaymentIn,
    ManualPaymentCreate,
    ManualPaymentUpdate,
    PaymentAuditOut,
    PaymentFilters,
    PaymentInstructionsOut,
    PaymentOut,
    RejectPaymentIn,
)
from clinicore.services import manual_payments as svc
from clinicore.services.manual_payments import RequestMeta
from clinicore.services.payment_validation import (
    MOBILE_WALLET_PROVIDERS,
    RECEIPT_THRESHOLDS,
    payment_instructions,
    provider_method,
)

router = APIRouter()


def _filters(
    provider: Optional[PaymentProvider] = Query(None),
    status: Optional[PaymentStatus] = Query(None),
    payer_name: Optional[str] = Query(None),
    reference_id: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
) -> PaymentFilters:
    return PaymentFilters(
        provider=provider,
        status=status,
        payer_name=payer_name,
        reference_id=reference_id,
        start_date=start_date,
        end_date=end_date,
    )


def _ensure_can_view(user: User, payment: Payment) -> None:
    if payment.created_by != user.id and not is_payment_reviewer(user):
        raise HTTPException(status_code=403, detail="You can only view your own payments")


# =========================================================
# Payer side
# =========================================================
@router.post("")
def submit_payment(
        payload: ManualPaymentCreate,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
        meta: RequestMeta = Depends(request_meta),
):
    payment = svc.create_payment(db, tenant_id=user.tenant_id, payload=payload, user=user, meta=meta)
    return ok(PaymentOut.model_validate(payment), status_code=201)


@router.get("")
def list_payments(
        filters: PaymentFilters = Depends(_filters),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    return ok_list(svc.list_payments(db, tenant_id=user.tenant_id, filters=filters, user=user), PaymentOut)


@router.get("/instructions/{provider}")
def instructions(provider: PaymentProvider, user: User = Depends(current_user)):
    return ok(
        PaymentInstructionsOut(
            provider=provider,
            payment_method=provider_method(provider),
            instructions=payment_instructions(provider),
            receipt_threshold=RECEIPT_THRESHOLDS.get(provider),
            wallet_phone_required=provider in MOBILE_WALLET_PROVIDERS,
        ))


# =========================================================
# Reviewer side (/payments/admin/*)
# =========================================================
@router.get("/admin/pending")
def pending_payments(
        filters: PaymentFilters = Depends(_filters),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    require_payment_reviewer(user, "view pending")
    return ok_list(svc.get_pending_payments(db, tenant_id=user.tenant_id, filters=filters), PaymentOut)


@router.post("/admin/{payment_id}/confirm")
def confirm_payment(
        payment_id: int,
        payload: Optional[ConfirmPaymentIn] = None,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
        meta: RequestMeta = Depends(request_meta),
):
    payment = svc.confirm_payment(
        db,
        payment_id,
        tenant_id=user.tenant_id,
        reviewer=user,
        admin_notes=payload.admin_notes if payload else None,
        meta=meta,
    )
    return ok(PaymentOut.model_validate(payment))


@router.post("/admin/{payment_id}/reject")
def reject_payment(
        payment_id: int,
        payload: RejectPaymentIn,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
        meta: RequestMeta = Depends(request_meta),
):
    payment = svc.reject_payment(
        db,
        payment_id,
        tenant_id=user.tenant_id,
        reviewer=user,
        reason=payload.reason,
        meta=meta,
    )
    return ok(PaymentOut.model_validate(payment))


# =========================================================
# Single payment
# =========================================================
@router.get("/{payment_id}")
def get_payment(payment_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    payment = svc.get_payment(db, payment_id, tenant_id=user.tenant_id)
    _ensure_can_view(user, payment)
    return ok(PaymentOut.model_validate(payment))


@router.patch("/{payment_id}")
def update_payment(
        payment_id: int,
        payload: ManualPaymentUpdate,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
        meta: RequestMeta = Depends(request_meta),
):
    payment = svc.update_payment(
        db,
        payment_id,
        tenant_id=user.tenant_id,
        payload=payload,
        user=user,
        meta=meta,
    )
    return ok(PaymentOut.model_validate(payment))


@router.get("/{payment_id}/audit-log")
def audit_log(payment_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    payment = svc.get_payment(db, payment_id, tenant_id=user.tenant_id)
    _ensure_can_view(user, payment)
    rows = svc.get_payment_audit_log(db, payment_id, tenant_id=user.tenant_id)
    return ok_list(rows, PaymentAuditOut)
