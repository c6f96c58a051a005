"""
API Routers
"""
from .alerts import router as alerts_router

__all__ = ["alerts_router"]
