# vetclinic/api/router.py
from fastapi import APIRouter

from vetclinic.api import (
    routes_auth,
    routes_invoices,
    routes_payments,
    routes_inventory,
    routes_clinical_records,
    routes_account,
)

api_router = APIRouter()

# Auth
api_router.include_router(routes_auth.router)

# Billing
api_router.include_router(routes_invoices.router)
api_router.include_router(routes_payments.router)

# Inventory
api_router.include_router(routes_inventory.router)

# Clinical
api_router.include_router(routes_clinical_records.router)

# Client account pages
api_router.include_router(routes_account.router)
