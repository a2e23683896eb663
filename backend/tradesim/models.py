# backend/tradesim/models.py
import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Enum, Integer, Numeric, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# Enums help enforce data integrity at the database level
class TransactionType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String, unique=True, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)

    # Virtual cash in the base currency (GBP). Adjusted in the same database
    # transaction that appends a trade to the ledger.
    cash_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    transactions: Mapped[list["Transaction"]] = relationship(back_populates="user")


class Transaction(Base):
    """
    One accepted trade in a user's append-only ledger.

    Rows are inserted once and never updated or deleted. Holdings, cost
    basis and valuations are always derived by replaying these rows in
    (timestamp, id) order.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        # Ledger replay query: "all transactions for user X, oldest first"
        # id breaks ties between trades recorded in the same instant
        Index('ix_transaction_user_timestamp_id', 'user_id', 'timestamp', 'id'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)

    # Canonical upper-case symbol with exchange suffix, e.g. "BARC.L"
    symbol: Mapped[str] = mapped_column(String, index=True)
    transaction_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType))

    # Whole shares only
    quantity: Mapped[int] = mapped_column(Integer)
    # Fill price per share in the base currency (already normalized from pence)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 8))

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    user: Mapped["User"] = relationship(back_populates="transactions")
