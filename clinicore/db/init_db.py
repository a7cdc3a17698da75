# clinicore/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from clinicore.core.logging import configure_logging
from clinicore.db.base import Base, import_models
from clinicore.db.session import SessionLocal, engine

logger = logging.getLogger(__name__)


def run(fresh: bool = False) -> None:
    import_models()

    if fresh:
        logger.warning("Dropping ALL tables (dev only) ...")
        Base.metadata.drop_all(bind=engine)

    logger.info("Creating all missing tables ...")
    Base.metadata.create_all(bind=engine)
    logger.info("Existing tables: %s", sorted(inspect(engine).get_table_names()))


def seed_tenant(
    *,
    tenant_name: str,
    tenant_code: str,
    admin_name: str,
    admin_email: str,
    admin_password: str,
) -> None:
    from clinicore.services.tenant_provisioning import provision_tenant_with_admin

    db = SessionLocal()
    try:
        tenant = provision_tenant_with_admin(
            db,
            tenant_name=tenant_name,
            tenant_code=tenant_code,
            subdomain=None,
            admin_name=admin_name,
            admin_email=admin_email,
            admin_password=admin_password,
        )
        logger.info("Seeded tenant %s (id=%s) with admin %s", tenant.code, tenant.id, admin_email)
    except ValueError as e:
        logger.warning("Tenant not seeded: %s", e)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Seeding failed")
        raise
    finally:
        db.close()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Initialize DB (create tables, optionally seed a tenant).")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    parser.add_argument("--tenant-name", help="Seed a tenant with this name")
    parser.add_argument("--tenant-code", help="Code of the seeded tenant (e.g. KRT001)")
    parser.add_argument("--admin-name", default="Administrator")
    parser.add_argument("--admin-email")
    parser.add_argument("--admin-password")
    args = parser.parse_args(argv)

    configure_logging()
    run(fresh=args.fresh)

    if args.tenant_name:
        if not (args.admin_email and args.admin_password):
            parser.error("--admin-email and --admin-password are required with --tenant-name")
        seed_tenant(
            tenant_name=args.tenant_name,
            tenant_code=args.tenant_code or args.tenant_name.replace(" ", "").upper(),
            admin_name=args.admin_name,
            admin_email=args.admin_email,
            admin_password=args.admin_password,
        )


if __name__ == "__main__":
    main()
