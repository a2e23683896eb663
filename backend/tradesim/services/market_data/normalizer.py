# backend/tradesim/services/market_data/normalizer.py
"""
Quote normalization into the base currency.

Yahoo Finance reports most London listings in pence ("GBp"), some in
pounds ("GBP"). Holdings are valued in pounds, so every quote passes
through QuoteNormalizer before it meets a holding:

    215.75 GBp  ->  2.1575 GBP
    2.50 GBP    ->  2.50 GBP (unchanged)
    None        ->  0 with no_data=True

The normalizer never raises. Anything that is not a usable positive
number becomes a zero price flagged no_data, and the valuation engine
treats it as a missing quote.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from tradesim.services.constants import (
    DEFAULT_BASE_CURRENCY,
    DEFAULT_MINOR_UNIT_CURRENCIES,
    DEFAULT_MINOR_UNIT_FACTOR,
    SHARE_PRECISION,
    ZERO,
)
from tradesim.services.market_data.base import Quote

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedPrice:
    """
    A price expressed in the base currency.

    Attributes:
        price: Price per share in the base currency (0 when no_data)
        currency: Currency label after normalization
        no_data: True when the raw price was missing or unusable
        converted: True when a minor-unit conversion was applied
    """

    price: Decimal
    currency: str
    no_data: bool = False
    converted: bool = False


class QuoteNormalizer:
    """
    Converts raw provider prices into the base currency.

    Minor-unit codes are compared case-sensitively: "GBp" is pence while
    "GBP" is pounds.
    """

    def __init__(
            self,
            base_currency: str = DEFAULT_BASE_CURRENCY,
            minor_unit_currencies: Iterable[str] = DEFAULT_MINOR_UNIT_CURRENCIES,
            minor_unit_factor: int = DEFAULT_MINOR_UNIT_FACTOR,
    ) -> None:
        if minor_unit_factor <= 0:
            raise ValueError("minor_unit_factor must be positive")

        self._base_currency = base_currency
        self._minor_unit_currencies = frozenset(minor_unit_currencies)
        self._minor_unit_factor = Decimal(minor_unit_factor)

    @property
    def base_currency(self) -> str:
        return self._base_currency

    def is_minor_unit(self, currency: str | None) -> bool:
        return currency is not None and currency in self._minor_unit_currencies

    def normalize(self, price: Any, currency: str | None) -> NormalizedPrice:
        """
        Normalize a raw (price, currency) pair.

        Args:
            price: Raw price in provider units (any numeric-like value)
            currency: Provider currency code

        Returns:
            NormalizedPrice, flagged no_data when price is unusable
        """
        is_minor = self.is_minor_unit(currency)
        label = self._base_currency if is_minor else (currency or self._base_currency)

        value = self._parse_price(price)
        if value is None:
            return NormalizedPrice(price=ZERO, currency=label, no_data=True)

        if is_minor:
            value = value / self._minor_unit_factor

        return NormalizedPrice(
            price=value.quantize(SHARE_PRECISION),
            currency=label,
            converted=is_minor,
        )

    def normalize_quote(self, quote: Quote | None) -> NormalizedPrice:
        """Normalize a provider Quote (None is treated as no data)."""
        if quote is None:
            return NormalizedPrice(price=ZERO, currency=self._base_currency, no_data=True)
        return self.normalize(quote.price, quote.currency)

    @staticmethod
    def _parse_price(price: Any) -> Decimal | None:
        """Return a positive finite Decimal, or None when price is unusable."""
        if price is None or isinstance(price, bool):
            return None
        try:
            value = price if isinstance(price, Decimal) else Decimal(str(price).strip())
        except (InvalidOperation, ValueError, TypeError):
            logger.debug(f"Non-numeric quote price: {price!r}")
            return None
        if not value.is_finite() or value <= ZERO:
            return None
        return value
