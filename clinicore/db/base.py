# clinicore/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All tables (tenants, users, inventory, billing, ...) inherit from this."""
    pass


def import_models() -> None:
    """Import every model module so metadata is complete for create_all()."""
    from clinicore.models import (  # noqa: F401
        tenant,
        user,
        marketplace,
        inventory,
        billing,
        error_log,
    )
