"""Quote Engine - API Routers"""
from .quotes import router as quotes_router
from .compliance import router as compliance_router
from .admin import router as admin_router
from .payments import router as payments_router

__all__ = [
    "quotes_router",
    "compliance_router",
    "admin_router",
    "payments_router",
]
