from fastapi import APIRouter

from revsplit.api.v1.endpoints import (
    # Commission configuration
    commission_rules,
    # Order processing
    commissions,
    # Ledger journal
    ledger,
    # Creator payouts
    payouts,
    # Audit
    reconciliation,
)


api_router = APIRouter(prefix="/api/v1")

api_router.include_router(
    commission_rules.router,
    prefix="/commission-rules",
    tags=["Commission Rules"]
)
api_router.include_router(
    commissions.router,
    prefix="/commissions",
    tags=["Commissions"]
)
api_router.include_router(
    ledger.router,
    prefix="/ledger",
    tags=["Ledger"]
)
api_router.include_router(
    payouts.router,
    prefix="/payouts",
    tags=["Payouts"]
)
api_router.include_router(
    reconciliation.router,
    prefix="/reconciliation",
    tags=["Reconciliation"]
)
