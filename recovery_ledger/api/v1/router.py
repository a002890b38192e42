from fastapi import APIRouter
from recovery_ledger.api.v1.endpoints import cases, transactions, establishments

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(cases.router, prefix="/cases", tags=["Cases"])
api_router.include_router(transactions.router, prefix="/transactions", tags=["Transactions"])
api_router.include_router(establishments.router, prefix="/establishments", tags=["Establishments"])

__all__ = ["api_router"]
