# backend/tradesim/services/accounts.py
"""
User account registration and lookup.

Handles:
- Registration with a starting virtual cash balance
- Lookup by id

Usernames and emails are unique (case-insensitive; stored lower-case).
"""

import logging
import re
from decimal import Decimal

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradesim.models import User
from tradesim.services.constants import CURRENCY_PRECISION, DEFAULT_STARTING_CASH_BALANCE
from tradesim.services.exceptions import (
    UserExistsError,
    UserNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# local@domain.tld: exactly one "@", dotted domain, no whitespace
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s.]+(\.[^@\s.]+)+$")
USERNAME_MAX_LENGTH = 50


class AccountService:
    """Registers users and loads their profiles."""

    def __init__(self, starting_cash_balance: Decimal = DEFAULT_STARTING_CASH_BALANCE) -> None:
        """
        Args:
            starting_cash_balance: Virtual cash credited to new users
        """
        if starting_cash_balance < 0:
            raise ValueError("starting_cash_balance cannot be negative")
        self._starting_cash_balance = Decimal(starting_cash_balance).quantize(CURRENCY_PRECISION)

    def register(self, db: Session, username: str, email: str) -> User:
        """
        Register a new user.

        Args:
            db: Database session
            username: Display/login name (unique)
            email: Email address (unique)

        Returns:
            The created User object

        Raises:
            ValidationError: If username or email is malformed
            UserExistsError: If username or email is already registered
        """
        username = (username or "").strip().lower()
        email = (email or "").strip().lower()

        if not username:
            raise ValidationError("Username is required", field="username")
        if len(username) > USERNAME_MAX_LENGTH:
            raise ValidationError(
                f"Username must be at most {USERNAME_MAX_LENGTH} characters",
                field="username",
            )
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Email address is not valid", field="email")

        existing_user = db.execute(
            select(User).where(or_(User.username == username, User.email == email))
        ).scalars().first()

        if existing_user:
            if existing_user.username == username:
                raise UserExistsError("username", username)
            raise UserExistsError("email", email)

        user = User(
            username=username,
            email=email,
            cash_balance=self._starting_cash_balance,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent registration
            db.rollback()
            logger.warning(f"Registration conflict for {username}: {e.orig}")
            raise UserExistsError("username", username) from e
        db.refresh(user)

        logger.info(f"User registered: {user.username} (id={user.id})")
        return user

    def get_user(self, db: Session, user_id: int) -> User:
        """
        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user
