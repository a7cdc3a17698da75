from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Text,
    JSON,
)

from clinicore.db.base import Base


class ErrorLog(Base):
    """
    Centralized error / exception log.
    Stores both backend + frontend error reports.
    """
    __tablename__ = "error_logs"
    __table_args__ = {
        "mysql_engine": "InnoDB",
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id = Column(Integer, primary_key=True, index=True)

    # backend / frontend
    error_source = Column(String(50), nullable=False, default="backend")

    description = Column(String(1000), nullable=True)

    # where it happened
    endpoint = Column(String(255), nullable=True)  # e.g. "POST /api/payments"
    module = Column(String(255), nullable=True)
    function = Column(String(255), nullable=True)

    http_status = Column(Integer, nullable=True)
    tenant_code = Column(String(64), nullable=True)

    request_payload = Column(JSON, nullable=True)
    response_payload = Column(JSON, nullable=True)
    stack_trace = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
