# clinicore/models/user.py
import enum
from datetime import datetime

from sqlalchemy import (Column, Integer, String, Boolean, DateTime, ForeignKey,
                        Enum, UniqueConstraint)
from sqlalchemy.orm import relationship

from clinicore.db.base import Base


class UserRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    CLINIC_ADMIN = "clinic_admin"
    FINANCE_ADMIN = "finance_admin"
    STAFF = "staff"
    PATIENT = "patient"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
        {
            "mysql_engine": "InnoDB",
            "mysql_charset": "utf8mb4",
            "mysql_collate": "utf8mb4_unicode_ci",
        },
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    # clinic the user works at (inventory defaults to it)
    clinic_id = Column(Integer, nullable=True)

    name = Column(String(120), nullable=False)
    email = Column(String(191), nullable=False)  # <= 191, unique per tenant
    password_hash = Column(String(255), nullable=False)

    role = Column(Enum(UserRole, name="user_role"),
                  default=UserRole.STAFF,
                  nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", back_populates="users")
