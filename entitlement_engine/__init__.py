"""Subscription entitlement engine for mobile, web and mock billing backends."""

__version__ = "0.1.0"
