from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from clinicore.models.billing import NumberDocType, NumberResetPeriod, NumberSeries


def _period_key(dt: datetime, reset: NumberResetPeriod) -> str | None:
    if reset == NumberResetPeriod.NONE:
        return None
    if reset == NumberResetPeriod.YEAR:
        return dt.strftime("%Y")
    return dt.strftime("%Y-%m")  # MONTH


def next_sequence(
    db: Session,
    *,
    tenant_id: int,
    doc_type: NumberDocType,
    reset_period: NumberResetPeriod = NumberResetPeriod.NONE,
    padding: int = 6,
    now: Optional[datetime] = None,
) -> str:
    """
    Next zero-padded counter for (tenant, doc_type).
    The series row is locked so two requests never get the same number.
    """
    now = now or datetime.utcnow()
    pk = _period_key(now, reset_period)

    row = (db.query(NumberSeries).filter(
        NumberSeries.tenant_id == tenant_id,
        NumberSeries.doc_type == doc_type,
        NumberSeries.is_active.is_(True),
    ).with_for_update().first())

    if not row:
        row = NumberSeries(
            tenant_id=tenant_id,
            doc_type=doc_type,
            reset_period=reset_period,
            padding=padding,
            next_number=1,
            last_period_key=pk,
            is_active=True,
        )
        db.add(row)
        db.flush()

    # reset logic
    if row.reset_period != NumberResetPeriod.NONE and row.last_period_key != pk:
        row.last_period_key = pk
        row.next_number = 1

    n = int(row.next_number or 1)
    row.next_number = n + 1
    db.flush()

    return str(n).zfill(int(row.padding or padding))


def next_invoice_number(db: Session, *, tenant_id: int, now: Optional[datetime] = None) -> str:
    """INV-2026-000001 (yearly reset)."""
    now = now or datetime.utcnow()
    seq = next_sequence(db,
                        tenant_id=tenant_id,
                        doc_type=NumberDocType.INVOICE,
                        reset_period=NumberResetPeriod.YEAR,
                        now=now)
    return f"INV-{now:%Y}-{seq}"


def next_payment_number(db: Session, *, tenant_id: int, now: Optional[datetime] = None) -> str:
    """PAY-2610-000001 (year+month stamp, tenant-wide counter)."""
    now = now or datetime.utcnow()
    seq = next_sequence(db, tenant_id=tenant_id, doc_type=NumberDocType.PAYMENT, now=now)
    return f"PAY-{now:%y%m}-{seq}"
