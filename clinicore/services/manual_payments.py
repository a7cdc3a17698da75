# FILE: clinicore/services/manual_payments.py
"""
Manual (off-platform) payment confirmation.

A payer reports a bank transfer / wallet / cash payment against an invoice;
it sits in PENDING until a finance reviewer confirms or rejects it.
Invoice money only moves on confirmation, and every transition writes one
PaymentAuditLog row in the same DB transaction.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from clinicore.core.rbac import is_payment_reviewer, require_payment_reviewer
from clinicore.models.billing import (
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentAuditAction,
    PaymentAuditLog,
    PaymentStatus,
)
from clinicore.models.user import User
from clinicore.schemas.payments import ManualPaymentCreate, ManualPaymentUpdate, PaymentFilters
from clinicore.services import invoices as invoice_service
from clinicore.services.billing_numbers import next_payment_number
from clinicore.services.payment_validation import provider_method, validate_payment_submission
from clinicore.utils.money import d, q2

logger = logging.getLogger(__name__)


class RequestMeta:
    """Client details recorded on every audit row."""

    def __init__(self, ip_address: Optional[str] = None, user_agent: Optional[str] = None):
        self.ip_address = ip_address
        self.user_agent = (user_agent or "")[:255] or None


def _audit(
    db: Session,
    *,
    payment: Payment,
    action: PaymentAuditAction,
    user: User,
    meta: Optional[RequestMeta],
    previous_status: Optional[PaymentStatus] = None,
    new_status: Optional[PaymentStatus] = None,
    changes: Optional[Dict[str, Any]] = None,
    notes: Optional[str] = None,
) -> PaymentAuditLog:
    row = PaymentAuditLog(
        tenant_id=payment.tenant_id,
        payment_id=payment.id,
        action=action,
        performed_by=user.id,
        previous_status=previous_status.value if previous_status else None,
        new_status=new_status.value if new_status else None,
        ip_address=getattr(meta, "ip_address", None),
        user_agent=getattr(meta, "user_agent", None),
        changes=changes,
        notes=notes,
    )
    db.add(row)
    return row


def _json_safe(v: Any) -> Any:
    if hasattr(v, "value"):
        return v.value
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if v is not None and not isinstance(v, (str, int, float, bool)):
        return str(v)
    return v


def _load_pending(db: Session, payment_id: int, *, tenant_id: int, verb: str) -> Payment:
    payment = (db.query(Payment).filter(
        Payment.id == payment_id,
        Payment.tenant_id == tenant_id,
    ).with_for_update().first())
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    if payment.payment_status != PaymentStatus.PENDING:
        raise HTTPException(
            status_code=409,
            detail=f"Payment cannot be {verb}. Current status: {payment.payment_status.value}",
        )
    return payment


def _ensure_unique_reference(
    db: Session,
    *,
    tenant_id: int,
    provider,
    reference_id: str,
    exclude_payment_id: Optional[int] = None,
) -> None:
    q = db.query(Payment.id).filter(
        Payment.tenant_id == tenant_id,
        Payment.provider == provider,
        Payment.reference_id == reference_id,
        Payment.payment_status.notin_([PaymentStatus.REJECTED, PaymentStatus.CANCELLED]),
    )
    if exclude_payment_id:
        q = q.filter(Payment.id != exclude_payment_id)
    if q.first() is not None:
        raise HTTPException(status_code=409,
                            detail="A payment with this transaction reference was already submitted")


# ============================================================
# Payer side
# ============================================================
def create_payment(
    db: Session,
    *,
    tenant_id: int,
    payload: ManualPaymentCreate,
    user: User,
    meta: Optional[RequestMeta] = None,
) -> Payment:
    validate_payment_submission(
        payload.provider,
        payload.reference_id,
        payload.amount,
        payload.wallet_phone,
        payload.receipt_url,
    )

    invoice = invoice_service.find_one(db, payload.invoice_id, tenant_id=tenant_id, lock=True)
    if invoice.status not in invoice_service.PAYABLE_STATUSES:
        raise HTTPException(status_code=409,
                            detail=f"Invoice is not payable (status={invoice.status.value})")

    amount = q2(payload.amount)
    balance = q2(invoice.balance_amount)
    if amount > balance:
        raise HTTPException(
            status_code=400,
            detail=f"Payment amount ({amount}) exceeds invoice balance ({balance})",
        )

    _ensure_unique_reference(db,
                             tenant_id=tenant_id,
                             provider=payload.provider,
                             reference_id=payload.reference_id)

    payment = Payment(
        tenant_id=tenant_id,
        invoice_id=invoice.id,
        payment_number=next_payment_number(db, tenant_id=tenant_id),
        payment_date=date.today(),
        payment_method=provider_method(payload.provider),
        amount=amount,
        processing_fee=q2(0),
        payment_status=PaymentStatus.PENDING,
        provider=payload.provider,
        reference_id=payload.reference_id,
        payer_name=payload.payer_name,
        wallet_phone=payload.wallet_phone,
        receipt_url=payload.receipt_url,
        notes=payload.notes,
        created_by=user.id,
    )
    db.add(payment)
    db.flush()

    invoice.status = InvoiceStatus.PENDING

    _audit(
        db,
        payment=payment,
        action=PaymentAuditAction.CREATED,
        user=user,
        meta=meta,
        new_status=PaymentStatus.PENDING,
        changes={
            "provider": payload.provider.value,
            "amount": str(amount),
            "reference_id": payload.reference_id,
        },
        notes="Payment created by user",
    )
    db.commit()
    db.refresh(payment)

    logger.info("manual payment submitted %s tenant=%s invoice=%s provider=%s amount=%s",
                payment.payment_number, tenant_id, invoice.invoice_number,
                payload.provider.value, amount)
    return payment


def get_payment(db: Session, payment_id: int, *, tenant_id: int) -> Payment:
    payment = (db.query(Payment).filter(
        Payment.id == payment_id,
        Payment.tenant_id == tenant_id,
    ).first())
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return payment


def update_payment(
    db: Session,
    payment_id: int,
    *,
    tenant_id: int,
    payload: ManualPaymentUpdate,
    user: User,
    meta: Optional[RequestMeta] = None,
) -> Payment:
    payment = _load_pending(db, payment_id, tenant_id=tenant_id, verb="updated")
    if payment.created_by != user.id and not is_payment_reviewer(user):
        raise HTTPException(status_code=403, detail="Only the submitter can edit this payment")

    data = payload.model_dump(exclude_unset=True)
    changes: Dict[str, Any] = {}
    for k, v in data.items():
        old = getattr(payment, k)
        if k == "amount" and v is not None:
            v = q2(v)
        if old != v:
            changes[k] = {"from": _json_safe(old), "to": _json_safe(v)}
            setattr(payment, k, v)

    if not changes:
        return payment

    try:
        validate_payment_submission(
            payment.provider,
            payment.reference_id,
            payment.amount,
            payment.wallet_phone,
            payment.receipt_url,
        )
        if "reference_id" in changes:
            _ensure_unique_reference(db,
                                     tenant_id=tenant_id,
                                     provider=payment.provider,
                                     reference_id=payment.reference_id,
                                     exclude_payment_id=payment.id)
        if "amount" in changes and payment.invoice is not None:
            balance = q2(payment.invoice.balance_amount)
            if q2(payment.amount) > balance:
                raise HTTPException(
                    status_code=400,
                    detail=f"Payment amount ({q2(payment.amount)}) exceeds invoice balance ({balance})",
                )

        _audit(
            db,
            payment=payment,
            action=PaymentAuditAction.UPDATED,
            user=user,
            meta=meta,
            previous_status=payment.payment_status,
            new_status=payment.payment_status,
            changes=changes,
            notes="Payment details updated",
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    return payment


def _filtered(db: Session, tenant_id: int, filters: Optional[PaymentFilters]):
    q = db.query(Payment).filter(Payment.tenant_id == tenant_id)
    if not filters:
        return q
    if filters.provider:
        q = q.filter(Payment.provider == filters.provider)
    if filters.status:
        q = q.filter(Payment.payment_status == filters.status)
    if filters.payer_name:
        q = q.filter(Payment.payer_name.ilike(f"%{filters.payer_name}%"))
    if filters.reference_id:
        q = q.filter(Payment.reference_id == filters.reference_id)
    if filters.start_date:
        q = q.filter(Payment.payment_date >= filters.start_date)
    if filters.end_date:
        q = q.filter(Payment.payment_date <= filters.end_date)
    return q


def list_payments(
    db: Session,
    *,
    tenant_id: int,
    filters: Optional[PaymentFilters] = None,
    user: Optional[User] = None,
) -> List[Payment]:
    """
    Reviewers see every payment of the tenant; other users only their own.
    """
    q = _filtered(db, tenant_id, filters)
    if user is not None and not is_payment_reviewer(user):
        q = q.filter(Payment.created_by == user.id)
    return q.order_by(Payment.created_at.desc(), Payment.id.desc()).all()


def get_payment_audit_log(db: Session, payment_id: int, *, tenant_id: int) -> List[PaymentAuditLog]:
    get_payment(db, payment_id, tenant_id=tenant_id)
    return (db.query(PaymentAuditLog).filter(
        PaymentAuditLog.payment_id == payment_id,
        PaymentAuditLog.tenant_id == tenant_id,
    ).order_by(PaymentAuditLog.created_at.desc(), PaymentAuditLog.id.desc()).all())


# ============================================================
# Reviewer side
# ============================================================
def get_pending_payments(
    db: Session,
    *,
    tenant_id: int,
    filters: Optional[PaymentFilters] = None,
) -> List[Payment]:
    q = _filtered(db, tenant_id, filters).filter(Payment.payment_status == PaymentStatus.PENDING)
    return q.order_by(Payment.created_at.asc(), Payment.id.asc()).all()


def confirm_payment(
    db: Session,
    payment_id: int,
    *,
    tenant_id: int,
    reviewer: User,
    admin_notes: Optional[str] = None,
    meta: Optional[RequestMeta] = None,
) -> Payment:
    require_payment_reviewer(reviewer, "confirm")

    try:
        payment = _load_pending(db, payment_id, tenant_id=tenant_id, verb="confirmed")
        previous = payment.payment_status
        now = datetime.utcnow()

        invoice: Optional[Invoice] = None
        if payment.invoice_id:
            invoice = invoice_service.find_one(db, payment.invoice_id, tenant_id=tenant_id, lock=True)
            amount = q2(payment.amount)
            if amount > q2(invoice.balance_amount):
                raise HTTPException(
                    status_code=409,
                    detail=f"Payment amount ({amount}) exceeds current invoice balance "
                    f"({q2(invoice.balance_amount)})",
                )
            invoice.paid_amount = q2(d(invoice.paid_amount) + amount)
            invoice.balance_amount = q2(d(invoice.balance_amount) - amount)
            if invoice.balance_amount <= 0:
                invoice.status = InvoiceStatus.PAID
                invoice.paid_date = now.date()
            else:
                invoice.status = InvoiceStatus.PARTIALLY_PAID

        payment.payment_status = PaymentStatus.CONFIRMED
        payment.reviewed_by = reviewer.id
        payment.reviewed_at = now
        payment.admin_notes = admin_notes or ""

        _audit(
            db,
            payment=payment,
            action=PaymentAuditAction.CONFIRMED,
            user=reviewer,
            meta=meta,
            previous_status=previous,
            new_status=PaymentStatus.CONFIRMED,
            changes={
                "reviewed_by": reviewer.id,
                "reviewed_at": now.isoformat(),
            },
            notes=admin_notes or "Payment confirmed by admin",
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    logger.info("manual payment confirmed %s tenant=%s reviewer=%s invoice_status=%s",
                payment.payment_number, tenant_id, reviewer.id,
                invoice.status.value if invoice is not None else None)
    return payment


def reject_payment(
    db: Session,
    payment_id: int,
    *,
    tenant_id: int,
    reviewer: User,
    reason: str,
    meta: Optional[RequestMeta] = None,
) -> Payment:
    require_payment_reviewer(reviewer, "reject")
    if not (reason or "").strip():
        raise HTTPException(status_code=400, detail="A rejection reason is required")

    try:
        payment = _load_pending(db, payment_id, tenant_id=tenant_id, verb="rejected")
        previous = payment.payment_status
        now = datetime.utcnow()

        payment.payment_status = PaymentStatus.REJECTED
        payment.reviewed_by = reviewer.id
        payment.reviewed_at = now
        payment.admin_notes = reason

        if payment.invoice_id:
            invoice = invoice_service.find_one(db, payment.invoice_id, tenant_id=tenant_id, lock=True)
            if (invoice.status == InvoiceStatus.PENDING and not invoice_service.has_pending_payments(
                    db, invoice.id, exclude_payment_id=payment.id)):
                invoice.status = (InvoiceStatus.PARTIALLY_PAID
                                  if d(invoice.paid_amount) > 0 else InvoiceStatus.SENT)

        _audit(
            db,
            payment=payment,
            action=PaymentAuditAction.REJECTED,
            user=reviewer,
            meta=meta,
            previous_status=previous,
            new_status=PaymentStatus.REJECTED,
            changes={
                "reviewed_by": reviewer.id,
                "reviewed_at": now.isoformat(),
            },
            notes=reason,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    logger.info("manual payment rejected %s tenant=%s reviewer=%s",
                payment.payment_number, tenant_id, reviewer.id)
    return payment
