# FILE: clinicore/services/invoices.py
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from clinicore.models.billing import (
    CustomerType,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    Payment,
    PaymentStatus,
)
from clinicore.models.user import User
from clinicore.schemas.billing import InvoiceCreate, InvoiceStatsOut, InvoiceUpdate
from clinicore.services.billing_numbers import next_invoice_number
from clinicore.utils.money import d, q2

logger = logging.getLogger(__name__)

# invoice states a payer may still report a payment against
PAYABLE_STATUSES = {
    InvoiceStatus.SENT,
    InvoiceStatus.PENDING,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
}
CLOSED_STATUSES = {InvoiceStatus.PAID, InvoiceStatus.CANCELLED}


def create_invoice(
    db: Session,
    *,
    tenant_id: int,
    payload: InvoiceCreate,
    user: User,
    today: Optional[date] = None,
) -> Invoice:
    today = today or date.today()
    clinic_id = payload.clinic_id or getattr(user, "clinic_id", None)
    if not clinic_id:
        raise HTTPException(status_code=400, detail="clinic_id is required")

    subtotal = Decimal("0")
    total_tax = Decimal("0")
    rows: List[InvoiceItem] = []
    for it in payload.items:
        line_total = q2(d(it.unit_price) * it.quantity)
        line_tax = q2(line_total * d(it.tax_rate) / 100)
        subtotal += line_total
        total_tax += line_tax
        rows.append(
            InvoiceItem(
                description=it.description,
                quantity=it.quantity,
                unit_price=q2(it.unit_price),
                total_price=line_total,
                item_type=it.item_type,
                reference_id=it.reference_id,
                tax_rate=it.tax_rate,
                tax_amount=line_tax,
            ))

    discount = q2(payload.discount_amount)
    total = q2(subtotal + total_tax - discount)
    if total < 0:
        raise HTTPException(status_code=400, detail="Discount exceeds invoice total")

    inv = Invoice(
        tenant_id=tenant_id,
        clinic_id=int(clinic_id),
        invoice_number=next_invoice_number(db, tenant_id=tenant_id),
        invoice_date=today,
        due_date=payload.due_date or (today + timedelta(days=payload.payment_terms)),
        customer_type=payload.customer_type,
        customer_id=payload.customer_id,
        customer_info=payload.customer_info,
        subtotal=q2(subtotal),
        tax_amount=q2(total_tax),
        discount_amount=discount,
        total_amount=total,
        paid_amount=Decimal("0.00"),
        balance_amount=total,
        status=InvoiceStatus.DRAFT,
        payment_terms=payload.payment_terms,
        notes=payload.notes,
        terms_and_conditions=payload.terms_and_conditions,
        created_by=getattr(user, "id", None),
        items=rows,
    )
    db.add(inv)
    db.commit()
    db.refresh(inv)
    logger.info("invoice created %s tenant=%s total=%s", inv.invoice_number, tenant_id, total)
    return inv


def _scoped(db: Session, tenant_id: int):
    return db.query(Invoice).filter(Invoice.tenant_id == tenant_id, Invoice.deleted_at.is_(None))


def find_all(
    db: Session,
    *,
    tenant_id: int,
    clinic_id: Optional[int] = None,
    status: Optional[InvoiceStatus] = None,
    customer_type: Optional[CustomerType] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[Invoice]:
    q = _scoped(db, tenant_id).options(selectinload(Invoice.items))
    if clinic_id:
        q = q.filter(Invoice.clinic_id == clinic_id)
    if status:
        q = q.filter(Invoice.status == status)
    if customer_type:
        q = q.filter(Invoice.customer_type == customer_type)
    if start_date:
        q = q.filter(Invoice.invoice_date >= start_date)
    if end_date:
        q = q.filter(Invoice.invoice_date <= end_date)
    return q.order_by(Invoice.invoice_date.desc(), Invoice.id.desc()).all()


def find_one(db: Session, invoice_id: int, *, tenant_id: int, lock: bool = False) -> Invoice:
    q = _scoped(db, tenant_id).filter(Invoice.id == invoice_id)
    if lock:
        q = q.with_for_update()
    inv = q.first()
    if not inv:
        raise HTTPException(status_code=404, detail=f"Invoice with ID {invoice_id} not found")
    return inv


def update_invoice(db: Session, invoice_id: int, *, tenant_id: int, payload: InvoiceUpdate) -> Invoice:
    inv = find_one(db, invoice_id, tenant_id=tenant_id)
    if inv.status in CLOSED_STATUSES:
        raise HTTPException(status_code=409, detail=f"Invoice is {inv.status.value}")
    for k, v in payload.model_dump(exclude_unset=True).items():
        setattr(inv, k, v)
    db.commit()
    db.refresh(inv)
    return inv


def remove_invoice(db: Session, invoice_id: int, *, tenant_id: int) -> None:
    inv = find_one(db, invoice_id, tenant_id=tenant_id)
    if inv.status != InvoiceStatus.DRAFT:
        raise HTTPException(status_code=400, detail="Can only delete draft invoices")
    inv.deleted_at = datetime.utcnow()
    db.commit()


def send_invoice(db: Session, invoice_id: int, *, tenant_id: int) -> Invoice:
    inv = find_one(db, invoice_id, tenant_id=tenant_id)
    if inv.status != InvoiceStatus.DRAFT:
        raise HTTPException(status_code=400, detail="Can only send draft invoices")
    inv.status = InvoiceStatus.SENT
    db.commit()
    db.refresh(inv)
    logger.info("invoice sent %s tenant=%s", inv.invoice_number, tenant_id)
    return inv


def cancel_invoice(db: Session, invoice_id: int, *, tenant_id: int) -> Invoice:
    inv = find_one(db, invoice_id, tenant_id=tenant_id, lock=True)
    if inv.status in CLOSED_STATUSES:
        raise HTTPException(status_code=409, detail=f"Invoice is already {inv.status.value}")
    if d(inv.paid_amount) > 0:
        raise HTTPException(status_code=409, detail="Cannot cancel an invoice with confirmed payments")
    if has_pending_payments(db, inv.id):
        raise HTTPException(status_code=409, detail="Cannot cancel an invoice with pending payments")
    inv.status = InvoiceStatus.CANCELLED
    db.commit()
    db.refresh(inv)
    return inv


def has_pending_payments(db: Session, invoice_id: int, *, exclude_payment_id: Optional[int] = None) -> bool:
    q = db.query(Payment.id).filter(
        Payment.invoice_id == invoice_id,
        Payment.payment_status == PaymentStatus.PENDING,
    )
    if exclude_payment_id:
        q = q.filter(Payment.id != exclude_payment_id)
    return q.first() is not None


def overdue_invoices(
    db: Session,
    *,
    tenant_id: int,
    clinic_id: Optional[int] = None,
    today: Optional[date] = None,
) -> List[Invoice]:
    today = today or date.today()
    q = _scoped(db, tenant_id).filter(
        Invoice.due_date < today,
        Invoice.status.notin_([InvoiceStatus.DRAFT, *CLOSED_STATUSES]),
    )
    if clinic_id:
        q = q.filter(Invoice.clinic_id == clinic_id)
    return q.order_by(Invoice.due_date.asc(), Invoice.id.asc()).all()


def invoice_stats(
    db: Session,
    *,
    tenant_id: int,
    clinic_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> InvoiceStatsOut:
    q = _scoped(db, tenant_id)
    if clinic_id:
        q = q.filter(Invoice.clinic_id == clinic_id)
    if start_date:
        q = q.filter(Invoice.invoice_date >= start_date)
    if end_date:
        q = q.filter(Invoice.invoice_date <= end_date)

    total = q.count()

    status_counts: Dict[str, int] = {}
    for st, cnt in q.with_entities(Invoice.status, func.count(Invoice.id)).group_by(Invoice.status).all():
        status_counts[st.value if hasattr(st, "value") else str(st)] = int(cnt)

    revenue = q.filter(Invoice.status == InvoiceStatus.PAID).with_entities(
        func.coalesce(func.sum(Invoice.total_amount), 0)).scalar()
    outstanding = q.filter(
        Invoice.balance_amount > 0,
        Invoice.status.notin_([InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED]),
    ).with_entities(func.coalesce(func.sum(Invoice.balance_amount), 0)).scalar()

    revenue = q2(revenue)
    return InvoiceStatsOut(
        total_invoices=total,
        status_counts=status_counts,
        total_revenue=revenue,
        outstanding_amount=q2(outstanding),
        average_invoice_value=q2(revenue / total) if total else Decimal("0.00"),
    )
