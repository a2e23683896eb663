# backend/tradesim/routers/__init__.py
"""
API routers.

Each router is a thin HTTP layer over one service: it parses the request,
calls the service and maps internal types to response schemas. Service
exceptions are converted to HTTP responses by the global handlers in main.py.
"""

from tradesim.routers.portfolio import router as portfolio_router
from tradesim.routers.quotes import router as quotes_router
from tradesim.routers.transactions import router as transactions_router
from tradesim.routers.users import router as users_router

__all__ = [
    "portfolio_router",
    "quotes_router",
    "transactions_router",
    "users_router",
]
