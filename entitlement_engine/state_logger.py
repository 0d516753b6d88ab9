"""Simple state change logging for entitlements.

Tracks state transitions with before/after values for debugging and auditing.
"""

from typing import Any, Optional

from entitlement_engine.logging_config import get_logger

logger = get_logger(__name__)


def _short_id(user_id: Optional[str]) -> Optional[str]:
    if user_id is None:
        return None
    return user_id[:20] + "..." if len(user_id) > 20 else user_id


def log_entitlement_change(
    user_id: Optional[str],
    entitlement_id: str,
    old_active: bool,
    new_active: bool,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log entitlement grant or loss.

    Args:
        user_id: App user ID (anonymous IDs are truncated)
        entitlement_id: Entitlement identifier (e.g. "pro")
        old_active: Previous entitlement flag
        new_active: New entitlement flag
        reason: Reason for change (purchase, expired, push, ...)
        **extra_context: Additional context (product_id, expiry, etc.)
    """
    logger.info(
        "entitlement_changed",
        user_id=_short_id(user_id),
        entitlement_id=entitlement_id,
        old_active=old_active,
        new_active=new_active,
        reason=reason,
        **extra_context,
    )


def log_status_change(
    platform: Any,
    old_status: Any,
    new_status: Any,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log subscription status change.

    Args:
        platform: Billing platform of the snapshot
        old_status: Previous status value (None when there was no snapshot)
        new_status: New status value
        reason: Reason for state change
        **extra_context: Additional context
    """
    logger.info(
        "subscription_status_changed",
        platform=str(getattr(platform, "value", platform)),
        old_status=str(getattr(old_status, "value", old_status)),
        new_status=str(getattr(new_status, "value", new_status)),
        reason=reason,
        **extra_context,
    )


def log_expiry_change(
    product_id: Optional[str],
    old_expiry: Optional[str],
    new_expiry: Optional[str],
    reason: str,
    **extra_context: Any,
) -> None:
    """Log entitlement expiry date change.

    Args:
        product_id: Entitling product ID
        old_expiry: Previous ISO-8601 expiry
        new_expiry: New ISO-8601 expiry
        reason: Reason for change (renewal, upgrade, etc.)
        **extra_context: Additional context
    """
    logger.info(
        "expiry_changed",
        product_id=product_id,
        old_expiry=old_expiry,
        new_expiry=new_expiry,
        reason=reason,
        **extra_context,
    )
