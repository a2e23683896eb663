# backend/tradesim/services/constants.py
"""
Centralized constants for TradeSim services.

Single source of truth for business constants shared across the ledger,
valuation and market data layers. Values that operators are expected to
tune per deployment live in tradesim.config.Settings instead; the defaults
here are what services fall back to when constructed without settings
(unit tests, scripts).

Usage:
    from tradesim.services.constants import (
        CURRENCY_PRECISION,
        MissingQuotePolicy,
    )
"""

import enum
from decimal import Decimal


# =============================================================================
# DECIMAL PRECISION CONSTANTS
# =============================================================================

# Currency amounts: 2 decimal places (e.g., £1234.56)
# Used for: cost basis, market value, P&L amounts, cash balances
CURRENCY_PRECISION: Decimal = Decimal("0.01")

# Per-share prices: 8 decimal places
# Used for: average cost per share, normalized quote prices (215.75p -> £2.1575)
SHARE_PRECISION: Decimal = Decimal("0.00000001")

# Display percentage: 2 decimal places (e.g., 12.34%)
# Used for: per-holding and portfolio return percentages
DISPLAY_PERCENTAGE_PRECISION: Decimal = Decimal("0.01")

ZERO: Decimal = Decimal("0")
ONE_HUNDRED: Decimal = Decimal("100")


# =============================================================================
# CURRENCY & SYMBOL DEFAULTS
# =============================================================================

DEFAULT_BASE_CURRENCY: str = "GBP"

# Quote currencies denominated in pence rather than pounds.
# Compared case-sensitively: "GBp" is pence, "GBP" is pounds.
DEFAULT_MINOR_UNIT_CURRENCIES: frozenset[str] = frozenset({"GBp", "GBX", "GBx"})

# Minor units per base unit (100 pence = 1 pound)
DEFAULT_MINOR_UNIT_FACTOR: int = 100

# London Stock Exchange suffix used by Yahoo Finance
DEFAULT_EXCHANGE_SUFFIX: str = ".L"


# =============================================================================
# VALUATION POLICY
# =============================================================================

class MissingQuotePolicy(str, enum.Enum):
    """
    How a holding with no resolvable quote is valued.

    PESSIMISTIC: treated as a total loss (market value 0, return -100%)
    OPTIMISTIC: carried at cost (market value = total cost, return 0%)
    """
    PESSIMISTIC = "pessimistic"
    OPTIMISTIC = "optimistic"


DEFAULT_MISSING_QUOTE_POLICY: MissingQuotePolicy = MissingQuotePolicy.PESSIMISTIC


# =============================================================================
# ACCOUNT DEFAULTS
# =============================================================================

# Virtual cash credited to each new user
DEFAULT_STARTING_CASH_BALANCE: Decimal = Decimal("1000000.00")


# =============================================================================
# SNAPSHOT REFRESH SETTINGS
# =============================================================================

# Upper bound on the batched quote fetch inside one snapshot computation.
# After this many seconds the snapshot is returned degraded.
DEFAULT_QUOTE_TIMEOUT_SECONDS: float = 5.0

# Worker threads available for bounded quote fetches
QUOTE_FETCH_MAX_WORKERS: int = 4

# Minimum interval between scheduled refreshes of the same user's snapshot
MIN_POLL_INTERVAL_SECONDS: float = 10.0


# =============================================================================
# CIRCUIT BREAKER SETTINGS
# =============================================================================

# Number of failures before circuit opens and blocks requests
CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5

# Seconds to wait before testing if the provider has recovered
CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = 60.0

# Maximum calls allowed in half-open state to test recovery
CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS: int = 3

# Time window (seconds) for counting failures (0 = count all failures)
CIRCUIT_BREAKER_FAILURE_WINDOW: float = 300.0


# =============================================================================
# RATE LIMITS (slowapi format)
# =============================================================================

# Ledger reads and account endpoints
RATE_LIMIT_DEFAULT: str = "100/minute"

# Endpoints that trigger a quote fetch (portfolio snapshot, quotes)
RATE_LIMIT_QUOTES: str = "30/minute"

# Order placement
RATE_LIMIT_TRADE: str = "30/minute"

# Health probes
RATE_LIMIT_HEALTH: str = "300/minute"

RATE_LIMIT_RETRY_AFTER_SECONDS: int = 60
