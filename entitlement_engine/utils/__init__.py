"""Utility functions and helpers for the entitlement engine."""

from entitlement_engine.utils.billing_period import (
    billing_period_from_package_type,
    billing_period_to_timedelta,
    infer_billing_period,
    parse_billing_period,
    rank_billing_period,
    validate_billing_period,
)
from entitlement_engine.utils.observers import (
    ListenerRegistry,
    Subscription,
)

__all__ = [
    # Billing period parsing
    "parse_billing_period",
    "billing_period_to_timedelta",
    "validate_billing_period",
    # Billing period classification
    "billing_period_from_package_type",
    "infer_billing_period",
    "rank_billing_period",
    # Observers
    "ListenerRegistry",
    "Subscription",
]
