"""Billing period parsing and ranking utilities.

Parses the ISO 8601 durations used in the product catalog and ranks
canonical billing periods for upgrade/downgrade classification.
"""

import re
from datetime import timedelta
from typing import Optional

from entitlement_engine.models.subscription import BillingPeriod

# Calendar units are fixed-length: a month is 30 days, a year 365
MILLIS_PER_SECOND = 1000
MILLIS_PER_MINUTE = 60 * MILLIS_PER_SECOND
MILLIS_PER_HOUR = 60 * MILLIS_PER_MINUTE
MILLIS_PER_DAY = 24 * MILLIS_PER_HOUR
MILLIS_PER_WEEK = 7 * MILLIS_PER_DAY
MILLIS_PER_MONTH = 30 * MILLIS_PER_DAY
MILLIS_PER_YEAR = 365 * MILLIS_PER_DAY

# Trial sits below every paid period
TRIAL_RANK = 0
PERIOD_RANKS = {
    BillingPeriod.MONTHLY: 1,
    BillingPeriod.ANNUAL: 2,
    BillingPeriod.LIFETIME: 3,
}

_PACKAGE_TYPES = {
    "ANNUAL": BillingPeriod.ANNUAL,
    "LIFETIME": BillingPeriod.LIFETIME,
}

_PRODUCT_ID_HINTS = (
    (re.compile(r"lifetime|forever|permanent"), BillingPeriod.LIFETIME),
    (re.compile(r"annual|yearly|year|12m|p1y"), BillingPeriod.ANNUAL),
    (re.compile(r"monthly|month|p1m"), BillingPeriod.MONTHLY),
)

_DURATION = re.compile(r"^P(\d+)?([DWMY])$")

_UNIT_MILLIS = {
    "D": MILLIS_PER_DAY,
    "W": MILLIS_PER_WEEK,
    "M": MILLIS_PER_MONTH,
    "Y": MILLIS_PER_YEAR,
}


def parse_billing_period(period: str) -> int:
    """Parse a catalog duration (P[n]D, P[n]W, P[n]M, P[n]Y) to milliseconds.

    Months count as 30 days and years as 365, so renewal dates produced by
    the mock engine are predictable.

    Raises:
        ValueError: If the period is not one of the supported forms

    Examples:
        >>> parse_billing_period("P7D")
        604800000

        >>> parse_billing_period("P1M")
        2592000000
    """
    if not isinstance(period, str) or not period.strip():
        raise ValueError("Period must be a non-empty string")

    normalized = period.strip().upper()
    match = _DURATION.match(normalized)
    if match is None:
        raise ValueError(
            f"Unsupported period format: '{normalized}'. Supported formats: P[n]D, P[n]W, P[n]M, P[n]Y"
        )

    count, unit = match.groups()
    count = int(count) if count else 1
    if count <= 0:
        raise ValueError(f"Period number must be positive, got: {count}")
    return count * _UNIT_MILLIS[unit]


def billing_period_to_timedelta(period: str) -> timedelta:
    return timedelta(milliseconds=parse_billing_period(period))


def validate_billing_period(period: str) -> bool:
    """Return True if ``period`` is a supported ISO 8601 duration."""
    try:
        parse_billing_period(period)
        return True
    except (ValueError, TypeError):
        return False


def billing_period_from_package_type(package_type: Optional[str]) -> BillingPeriod:
    """Map an SDK packageType (ANNUAL, MONTHLY, LIFETIME, ...) to a billing period.

    Unknown or custom package types are treated as monthly.
    """
    return _PACKAGE_TYPES.get((package_type or "").upper(), BillingPeriod.MONTHLY)


def infer_billing_period(product_id: Optional[str]) -> Optional[BillingPeriod]:
    """Guess the billing period from a store product identifier.

    Examples:
        >>> infer_billing_period("pro_annual")
        <BillingPeriod.ANNUAL: 'annual'>

        >>> infer_billing_period("premium") is None
        True
    """
    if not product_id:
        return None
    lowered = product_id.lower()
    for pattern, period in _PRODUCT_ID_HINTS:
        if pattern.search(lowered):
            return period
    return None


def rank_billing_period(period: Optional[BillingPeriod], is_trial: bool = False) -> int:
    """Rank a billing period: trial < monthly < annual < lifetime.

    Unknown periods rank with monthly.
    """
    if is_trial:
        return TRIAL_RANK
    if period is None:
        return PERIOD_RANKS[BillingPeriod.MONTHLY]
    return PERIOD_RANKS[period]
