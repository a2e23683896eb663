# backend/tradesim/schemas/users.py
"""
Pydantic schemas for user accounts.

Uniqueness and email format are enforced by AccountService, which raises
domain errors mapped to 409/400 by the global handlers.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class UserCreate(BaseModel):
    """Registration request."""

    username: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Unique username (stored lower-case)",
        examples=["alice"]
    )
    email: str = Field(
        ...,
        min_length=3,
        max_length=254,
        description="Unique email address",
        examples=["alice@example.com"]
    )


class UserResponse(BaseModel):
    """User profile with current virtual cash."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    cash_balance: Decimal = Field(
        ...,
        description="Available cash in the base currency"
    )
    created_at: datetime | None = None
