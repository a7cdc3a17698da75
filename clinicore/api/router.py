# clinicore/api/router.py
from fastapi import APIRouter

from clinicore.api import (
    routes_auth,
    routes_inventory,
    routes_invoices,
    routes_marketplace,
    routes_payments,
    routes_system,
)

api_router = APIRouter()

api_router.include_router(routes_auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(routes_marketplace.suppliers_router,
                          prefix="/suppliers",
                          tags=["suppliers"])
api_router.include_router(routes_marketplace.products_router,
                          prefix="/products",
                          tags=["products"])
api_router.include_router(routes_inventory.router,
                          prefix="/inventory",
                          tags=["inventory"])
api_router.include_router(routes_invoices.router,
                          prefix="/invoices",
                          tags=["invoices"])
api_router.include_router(routes_payments.router,
                          prefix="/payments",
                          tags=["payments"])
api_router.include_router(routes_system.router, prefix="/system", tags=["system"])
