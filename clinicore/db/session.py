# clinicore/db/session.py
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clinicore.core.config import settings


def _engine_kwargs(db_uri: str) -> Dict[str, Any]:
    if db_uri.startswith("sqlite"):
        # single shared in-memory connection (tests, local runs)
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_pre_ping": True,
        "pool_recycle": 280,
        "pool_size": 10,
        "max_overflow": 20,
    }


def build_engine(db_uri: str) -> Engine:
    return create_engine(
        db_uri,
        echo=settings.SQL_ECHO,
        future=True,
        **_engine_kwargs(db_uri),
    )


engine: Engine = build_engine(settings.SQLALCHEMY_DATABASE_URI)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
    future=True,
)
