from fastapi import APIRouter

api_router = APIRouter()

# Import route modules here
from spendsync.routes import sync, transactions, analytics

api_router.include_router(sync.router)
api_router.include_router(transactions.router)
api_router.include_router(analytics.router)
