from fastapi import APIRouter

from bonstay.app.api.v1.endpoints import accounts, auth, tickets

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(accounts.router, prefix="/accounts", tags=["accounts"])
api_router.include_router(tickets.router, prefix="/tickets", tags=["tickets"])
