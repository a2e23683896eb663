# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- Mock quote provider
- API client with dependency overrides
- Sample data factories
"""

import os

# Must be set before tradesim.config is imported anywhere
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("APP_NAME", "Test App")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tradesim.models import Base, Transaction, TransactionType, User
from tradesim.services.exceptions import TickerNotFoundError, ValidationError
from tradesim.services.market_data.base import (
    Quote,
    QuoteBatchResult,
    QuoteProvider,
    SearchResult,
)
from tradesim.services.symbols import canonicalize_symbol


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(db_engine) -> Iterator[Session]:
    """Create a database session for testing."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# MOCK QUOTE PROVIDER
# =============================================================================

class MockQuoteProvider(QuoteProvider):
    """
    Mock implementation of QuoteProvider for testing.

    Allows configuring quotes for specific symbols, per-symbol errors, a
    provider-wide error raised from get_quotes() and search(), and a small
    searchable listing.
    """

    def __init__(self):
        self._quotes: dict[str, Quote] = {}
        self._errors: dict[str, Exception] = {}
        self._raise: Exception | None = None
        self._listings: list[SearchResult] = []
        self.calls: list[list[str]] = []

    @property
    def name(self) -> str:
        return "mock"

    def add_quote(
            self,
            symbol: str,
            price: Decimal | str | None,
            currency: str = "GBp",
            name: str | None = None,
    ) -> None:
        """Configure a quote for a symbol."""
        symbol = canonicalize_symbol(symbol)
        self._quotes[symbol] = Quote(
            symbol=symbol,
            price=Decimal(price) if price is not None else None,
            currency=currency,
            as_of=datetime(2026, 1, 2, 16, 30, tzinfo=timezone.utc),
            name=name,
        )

    def add_error(self, symbol: str, error: Exception) -> None:
        """Configure a per-symbol failure."""
        self._errors[canonicalize_symbol(symbol)] = error

    def add_listing(self, symbol: str, name: str, exchange: str = "LSE") -> None:
        """Configure an instrument that search() can find."""
        self._listings.append(SearchResult(
            symbol=symbol, name=name, exchange=exchange, quote_type="EQUITY",
        ))

    def fail_with(self, error: Exception | None) -> None:
        """Make every get_quotes() and search() call raise error (None to stop)."""
        self._raise = error

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def get_quotes(self, symbols: Iterable[str]) -> QuoteBatchResult:
        requested = [canonicalize_symbol(s) for s in symbols]
        self.calls.append(requested)

        if self._raise is not None:
            raise self._raise

        result = QuoteBatchResult()
        for symbol in requested:
            if symbol in self._errors:
                result.failed[symbol] = self._errors[symbol]
            elif symbol in self._quotes:
                result.successful[symbol] = self._quotes[symbol]
            else:
                result.failed[symbol] = TickerNotFoundError(symbol=symbol, provider=self.name)
        return result

    def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        if not query.strip():
            raise ValidationError("Search query is required", field="q")
        if self._raise is not None:
            raise self._raise

        needle = query.strip().lower()
        matches = [
            listing for listing in self._listings
            if needle in listing.symbol.lower() or needle in listing.name.lower()
        ]
        return matches[:limit]


@pytest.fixture
def mock_provider() -> MockQuoteProvider:
    """Create a fresh mock provider for each test."""
    return MockQuoteProvider()


# =============================================================================
# API CLIENT
# =============================================================================

@pytest.fixture(scope="function")
def client(db: Session, mock_provider: MockQuoteProvider) -> Iterator[TestClient]:
    """
    TestClient with the database and quote provider overridden.

    Service singletons are cleared around each test so no state leaks.
    """
    from tradesim.database import get_db
    from tradesim.dependencies import clear_service_caches, get_quote_provider
    from tradesim.main import app

    def override_get_db():
        try:
            yield db
        finally:
            pass

    clear_service_caches()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_quote_provider] = lambda: mock_provider

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
    clear_service_caches()


# =============================================================================
# SAMPLE DATA FACTORIES
# =============================================================================

def create_user(
        db: Session,
        username: str = "alice",
        email: str = "alice@example.com",
        cash_balance: Decimal = Decimal("10000.00"),
) -> User:
    """Factory function for creating User entities in the database."""
    user = User(username=username, email=email, cash_balance=cash_balance)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_transaction(
        db: Session,
        user: User,
        symbol: str = "BARC.L",
        kind: TransactionType = TransactionType.BUY,
        quantity: int = 10,
        price: Decimal = Decimal("2.00"),
        timestamp: datetime | None = None,
) -> Transaction:
    """Factory function for writing a ledger row directly (bypassing validation)."""
    txn = Transaction(
        user_id=user.id,
        symbol=symbol,
        transaction_type=kind,
        quantity=quantity,
        price=price,
        timestamp=timestamp or datetime.now(timezone.utc),
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)
    return txn


def minutes_ago(minutes: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=minutes)


@pytest.fixture
def sample_user(db: Session) -> User:
    """Provide a sample User for tests."""
    return create_user(db)
