from fastapi import APIRouter
from app.api.v1 import (
    auth,
    checkout,
    orders,
    payments,
    reservations,
    settings,
    stats,
    tables
)

api_router = APIRouter()

api_router.include_router(checkout.router)
api_router.include_router(orders.router)
api_router.include_router(tables.router)
api_router.include_router(reservations.router)
api_router.include_router(settings.router)
api_router.include_router(stats.router)
api_router.include_router(auth.router)
api_router.include_router(payments.router)
