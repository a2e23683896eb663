# backend/tradesim/schemas/errors.py
"""
Error bodies returned by the global exception handlers in main.py.

Every non-2xx response carries `error` (the exception class name, which
clients switch on) and `message`. `details` holds structured context such
as the offending field or the cash shortfall of a rejected order.
"""

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """Body of every 4xx/5xx response except request-shape errors."""

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": "InsufficientFundsError",
            "message": "Insufficient funds to buy BARC.L: requires 2157.50, available 1000.00",
            "details": {"symbol": "BARC.L", "required": "2157.50", "available": "1000.00"},
        }
    })

    error: str = Field(..., description="Exception class name, e.g. 'InsufficientSharesError'")
    message: str
    details: dict | None = None


class FieldError(BaseModel):
    field: str = Field(..., description="Dotted location, e.g. 'body.quantity'")
    message: str
    type: str


class ValidationErrorDetail(BaseModel):
    """Body of a 422: the request did not match the endpoint's schema."""

    error: str = "ValidationError"
    message: str = "Request validation failed"
    details: list[FieldError]
