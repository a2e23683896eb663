# backend/tradesim/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.

This package contains all Pydantic schemas organized by domain:
- errors: Error response formats
- users: Registration and profile
- transactions: Order placement and ledger listing
- portfolio: Portfolio snapshot (camelCase fields)
- quotes: Normalized quote lookups

Usage:
    from tradesim.schemas import UserCreate, UserResponse
    from tradesim.schemas import OrderCreate, OrderConfirmation
    from tradesim.schemas import PortfolioSnapshotResponse
    from tradesim.schemas import QuotesResponse
    from tradesim.schemas import ErrorDetail
"""

from tradesim.schemas.errors import ErrorDetail, ValidationErrorDetail
from tradesim.schemas.portfolio import (
    HoldingResponse,
    PortfolioSnapshotResponse,
    SnapshotDiagnostics,
)
from tradesim.schemas.quotes import (
    QuoteFailure,
    QuoteResponse,
    QuotesResponse,
    SearchResponse,
    SearchResultResponse,
)
from tradesim.schemas.transactions import (
    OrderConfirmation,
    OrderCreate,
    TransactionListResponse,
    TransactionResponse,
)
from tradesim.schemas.users import UserCreate, UserResponse

__all__ = [
    # Errors
    "ErrorDetail",
    "ValidationErrorDetail",
    # Users
    "UserCreate",
    "UserResponse",
    # Transactions
    "OrderCreate",
    "OrderConfirmation",
    "TransactionResponse",
    "TransactionListResponse",
    # Portfolio
    "HoldingResponse",
    "SnapshotDiagnostics",
    "PortfolioSnapshotResponse",
    # Quotes
    "QuoteResponse",
    "QuoteFailure",
    "QuotesResponse",
    "SearchResultResponse",
    "SearchResponse",
]
