# backend/tradesim/routers/users.py
"""
User account endpoints.

- POST /users          Register a user with the starting cash balance
- GET  /users/{id}     Profile with current cash balance

There is no authentication: the simulator identifies users by id.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from tradesim.database import get_db
from tradesim.dependencies import get_account_service
from tradesim.middleware import limiter, RATE_LIMIT_DEFAULT
from tradesim.models import User
from tradesim.schemas.users import UserCreate, UserResponse
from tradesim.services.accounts import AccountService
from tradesim.utils import set_user_id

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["Users"],
)


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
    description="Create a trading account credited with the starting virtual cash balance.",
)
@limiter.limit(RATE_LIMIT_DEFAULT)
def register_user(
    request: Request,  # Required for rate limiter
    data: UserCreate,
    db: Annotated[Session, Depends(get_db)],
    account_service: Annotated[AccountService, Depends(get_account_service)],
) -> User:
    """
    Register a new user.

    Raises **409** if the username or email is taken, **400** if the email
    is malformed.
    """
    user = account_service.register(db=db, username=data.username, email=data.email)
    set_user_id(user.id)
    return user


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get user profile",
)
@limiter.limit(RATE_LIMIT_DEFAULT)
def get_user(
    request: Request,  # Required for rate limiter
    user_id: int,
    db: Annotated[Session, Depends(get_db)],
    account_service: Annotated[AccountService, Depends(get_account_service)],
) -> User:
    """Return a user's profile and cash balance. Raises **404** if unknown."""
    set_user_id(user_id)
    return account_service.get_user(db, user_id)
