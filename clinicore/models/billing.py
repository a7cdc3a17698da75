# FILE: clinicore/models/billing.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Boolean,
    Date,
    DateTime,
    Index,
    ForeignKey,
    UniqueConstraint,
    Text,
    JSON,
    Enum,
)
from sqlalchemy.orm import relationship

from clinicore.db.base import Base

Money = Numeric(14, 2)


# -------------------------
# Enums
# -------------------------
class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    PENDING = "pending"  # a manual payment is waiting for review
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class CustomerType(str, enum.Enum):
    PATIENT = "patient"
    INSURANCE = "insurance"
    THIRD_PARTY = "third_party"


class ItemType(str, enum.Enum):
    SERVICE = "service"
    PRODUCT = "product"
    TREATMENT = "treatment"
    PROCEDURE = "procedure"
    CONSULTATION = "consultation"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    INSURANCE = "insurance"
    ONLINE = "online"
    MOBILE_WALLET = "mobile_wallet"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class PaymentProvider(str, enum.Enum):
    """Sudan banks / wallets / cash channels a payer can report."""
    BANK_OF_KHARTOUM = "BankOfKhartoum"
    FAISAL_ISLAMIC_BANK = "FaisalIslamicBank"
    OMDURMAN_NATIONAL_BANK = "OmdurmanNationalBank"
    ZAIN_BEDE = "ZainBede"
    CASHI = "Cashi"
    CASH_ON_DELIVERY = "CashOnDelivery"
    CASH_AT_BRANCH = "CashAtBranch"
    OTHER = "Other"


class PaymentAuditAction(str, enum.Enum):
    CREATED = "created"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    REFUNDED = "refunded"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"


class NumberDocType(str, enum.Enum):
    INVOICE = "INVOICE"
    PAYMENT = "PAYMENT"


class NumberResetPeriod(str, enum.Enum):
    NONE = "NONE"
    YEAR = "YEAR"
    MONTH = "MONTH"


# -------------------------
# Invoices
# -------------------------
class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
        Index("ix_invoices_tenant_status", "tenant_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    clinic_id = Column(Integer, nullable=False)

    invoice_number = Column(String(100), nullable=False)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)

    customer_type = Column(Enum(CustomerType, name="invoice_customer_type"), nullable=False)
    customer_id = Column(String(64), nullable=True)  # patient / insurer id
    customer_info = Column(JSON, nullable=False, default=dict)  # name, address, contact

    subtotal = Column(Money, nullable=False, default=0)
    tax_amount = Column(Money, nullable=False, default=0)
    discount_amount = Column(Money, nullable=False, default=0)
    total_amount = Column(Money, nullable=False, default=0)
    paid_amount = Column(Money, nullable=False, default=0)
    balance_amount = Column(Money, nullable=False, default=0)

    status = Column(Enum(InvoiceStatus, name="invoice_status"),
                    default=InvoiceStatus.DRAFT,
                    nullable=False)
    payment_terms = Column(Integer, nullable=False, default=30)  # days
    paid_date = Column(Date, nullable=True)

    notes = Column(Text, nullable=True)
    terms_and_conditions = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    items = relationship("InvoiceItem",
                         back_populates="invoice",
                         cascade="all, delete-orphan",
                         order_by="InvoiceItem.id")
    payments = relationship("Payment", back_populates="invoice", order_by="Payment.id")


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)

    description = Column(Text, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Money, nullable=False)
    total_price = Column(Money, nullable=False)

    item_type = Column(Enum(ItemType, name="invoice_item_type"), nullable=True)
    reference_id = Column(String(64), nullable=True)  # appointment / product / ...

    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    tax_amount = Column(Money, nullable=False, default=0)

    invoice = relationship("Invoice", back_populates="items")


# -------------------------
# Manual payments
# -------------------------
class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("tenant_id", "payment_number", name="uq_payments_tenant_number"),
        Index("ix_payments_tenant_status", "tenant_id", "payment_status"),
        Index("ix_payments_tenant_provider_ref", "tenant_id", "provider", "reference_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True)

    payment_number = Column(String(100), nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False)
    amount = Column(Money, nullable=False)
    processing_fee = Column(Money, nullable=False, default=0)

    payment_status = Column(Enum(PaymentStatus, name="payment_status"),
                            default=PaymentStatus.PENDING,
                            nullable=False)

    # what the payer reported
    provider = Column(Enum(PaymentProvider, name="payment_provider"), nullable=True)
    reference_id = Column(String(100), nullable=True)  # bank ref / wallet txn id / agent code
    payer_name = Column(String(255), nullable=True)
    wallet_phone = Column(String(20), nullable=True)
    receipt_url = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)

    # manual review
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    admin_notes = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    invoice = relationship("Invoice", back_populates="payments")
    created_by_user = relationship("User", foreign_keys=[created_by])
    reviewed_by_user = relationship("User", foreign_keys=[reviewed_by])
    audit_entries = relationship("PaymentAuditLog", back_populates="payment")


class PaymentAuditLog(Base):
    """
    One row per payment state change / edit. Never updated.
    """
    __tablename__ = "payment_audit_log"
    __table_args__ = (
        Index("ix_payment_audit_tenant_payment", "tenant_id", "payment_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False)

    action = Column(Enum(PaymentAuditAction, name="payment_audit_action"), nullable=False)
    performed_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    previous_status = Column(String(50), nullable=True)
    new_status = Column(String(50), nullable=True)

    ip_address = Column(String(45), nullable=True)  # IPv4/IPv6
    user_agent = Column(String(255), nullable=True)

    changes = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    payment = relationship("Payment", back_populates="audit_entries")
    performed_by_user = relationship("User")


# -------------------------
# Safe number generator
# -------------------------
class NumberSeries(Base):
    __tablename__ = "number_series"
    __table_args__ = (
        UniqueConstraint("tenant_id", "doc_type", name="uq_number_series_tenant_doc"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    doc_type = Column(Enum(NumberDocType, name="number_doc_type"), nullable=False)
    reset_period = Column(Enum(NumberResetPeriod, name="number_reset_period"),
                          nullable=False,
                          default=NumberResetPeriod.NONE)
    padding = Column(Integer, nullable=False, default=6)
    next_number = Column(Integer, nullable=False, default=1)
    last_period_key = Column(String(10), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
