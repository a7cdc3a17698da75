# clinicore/models/tenant.py
import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, JSON, Enum
from sqlalchemy.orm import relationship

from clinicore.db.base import Base


class TenantStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class Tenant(Base):
    __tablename__ = "tenants"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(191), nullable=False)
    code = Column(String(64), nullable=False, unique=True, index=True)
    subdomain = Column(String(100), nullable=True, unique=True)
    contact_email = Column(String(191), nullable=True)

    status = Column(Enum(TenantStatus, name="tenant_status"),
                    default=TenantStatus.ACTIVE,
                    nullable=False)
    config = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    users = relationship("User", back_populates="tenant")

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} code={self.code} name={self.name}>"
