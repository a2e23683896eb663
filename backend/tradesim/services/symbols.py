# backend/tradesim/services/symbols.py
"""
Ticker symbol canonicalization.

Every symbol entering the system (order placement, quote requests, quote
responses) goes through canonicalize_symbol() once, so holdings and quotes
key on the same string:

    "barc"     -> "BARC.L"
    " hsba.l " -> "HSBA.L"
    "VOD.L"    -> "VOD.L"

Bare tickers get the default exchange suffix (".L", London Stock Exchange).
Symbols that already carry an exchange suffix keep it.
"""

from tradesim.services.constants import DEFAULT_EXCHANGE_SUFFIX
from tradesim.services.exceptions import ValidationError


def canonicalize_symbol(raw: str | None, suffix: str = DEFAULT_EXCHANGE_SUFFIX) -> str:
    """
    Return the canonical upper-case form of a symbol.

    Args:
        raw: Symbol as typed by a user or returned by a provider
        suffix: Exchange suffix appended to bare tickers

    Returns:
        Canonical symbol, e.g. "BARC.L"

    Raises:
        ValidationError: If the symbol is missing or blank
    """
    if raw is None or not isinstance(raw, str) or not raw.strip():
        raise ValidationError("Symbol is required", field="symbol")

    symbol = raw.strip().upper()
    if "." not in symbol:
        symbol = f"{symbol}{suffix.upper()}"
    return symbol


def strip_exchange_suffix(symbol: str, suffix: str = DEFAULT_EXCHANGE_SUFFIX) -> str:
    """Remove the default exchange suffix ("BARC.L" -> "BARC")."""
    suffix = suffix.upper()
    upper = symbol.strip().upper()
    if upper.endswith(suffix) and len(upper) > len(suffix):
        return upper[: -len(suffix)]
    return upper


def symbol_variants(symbol: str, suffix: str = DEFAULT_EXCHANGE_SUFFIX) -> tuple[str, ...]:
    """
    Lookup candidates for matching a symbol against quote keys.

    Ordered: the symbol as given, its canonical form, then the suffix-less
    form. Duplicates are removed.
    """
    candidates = [symbol]
    try:
        candidates.append(canonicalize_symbol(symbol, suffix))
    except ValidationError:
        return tuple(candidates)
    candidates.append(strip_exchange_suffix(symbol, suffix))
    return tuple(dict.fromkeys(candidates))
