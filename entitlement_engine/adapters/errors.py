"""Typed billing errors raised and reported by subscription adapters.

SDK failures are classified once, at the adapter boundary, into these
types. Callers dispatch on the exception class and never inspect messages.
"""

from typing import Optional

from entitlement_engine.adapters.sdk import PurchasesError, PurchasesErrorCode


class BillingError(Exception):
    """Base exception for billing adapter errors."""

    user_cancelled = False
    retryable = False

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(message)


class PurchaseCancelledError(BillingError):
    """The user dismissed the purchase sheet. A normal outcome, not a failure."""

    user_cancelled = True


class CatalogEmptyError(BillingError):
    """No products are configured upstream. Expected during setup."""

    pass


class BillingNetworkError(BillingError):
    """Transient network or backend failure."""

    retryable = True


class PaymentFailedError(BillingError):
    """The store rejected the payment."""

    retryable = True


class AnonymousIdentityError(BillingError):
    """Operation is illegal for an anonymous billing identity (e.g. log out)."""

    pass


class BillingNotConfiguredError(BillingError):
    """The SDK has not been configured for the current user."""

    pass


class BillingConfigurationError(BillingError):
    """Invalid credentials or SDK configuration."""

    pass


# SDK messages that mean "the catalog is empty" when no error code is given
CATALOG_EMPTY_MARKERS = (
    "no products registered",
    "there are no products",
    "doesn't have any products set up",
    "why-are-offerings-empty",
    "error fetching offerings",
)

ALREADY_CONFIGURED_MARKERS = (
    "already set",
    "already configured",
)

NOT_CONFIGURED_MARKERS = (
    "has not been configured",
    "not configured",
)

_CODE_TO_ERROR = {
    PurchasesErrorCode.PURCHASE_CANCELLED: PurchaseCancelledError,
    PurchasesErrorCode.STORE_PROBLEM: PaymentFailedError,
    PurchasesErrorCode.PURCHASE_NOT_ALLOWED: PaymentFailedError,
    PurchasesErrorCode.PURCHASE_INVALID: PaymentFailedError,
    PurchasesErrorCode.PAYMENT_PENDING: PaymentFailedError,
    PurchasesErrorCode.NETWORK_ERROR: BillingNetworkError,
    PurchasesErrorCode.UNEXPECTED_BACKEND_RESPONSE: BillingNetworkError,
    PurchasesErrorCode.UNKNOWN_BACKEND_ERROR: BillingNetworkError,
    PurchasesErrorCode.INVALID_CREDENTIALS: BillingConfigurationError,
    PurchasesErrorCode.LOG_OUT_ANONYMOUS_USER: AnonymousIdentityError,
    PurchasesErrorCode.CONFIGURATION_ERROR: CatalogEmptyError,
}


def is_already_configured(exc: BaseException) -> bool:
    """Whether a configure() failure only reports a previous configuration."""
    message = str(exc).lower()
    return any(marker in message for marker in ALREADY_CONFIGURED_MARKERS)


def classify_sdk_error(exc: BaseException) -> BillingError:
    """Translate an SDK exception into a typed ``BillingError``.

    SDK error codes are authoritative. Message text is only consulted for
    errors that carry no usable code, which is how some SDK versions report
    an empty product catalog.
    """
    if isinstance(exc, BillingError):
        return exc

    message = str(exc) or type(exc).__name__

    if getattr(exc, "user_cancelled", False) is True:
        return PurchaseCancelledError(message, cause=exc)

    if isinstance(exc, PurchasesError):
        error_class = _CODE_TO_ERROR.get(exc.code)
        if error_class is not None:
            return error_class(message, cause=exc)

    lowered = message.lower()
    if any(marker in lowered for marker in CATALOG_EMPTY_MARKERS):
        return CatalogEmptyError(message, cause=exc)
    if "anonymous" in lowered:
        return AnonymousIdentityError(message, cause=exc)
    if any(marker in lowered for marker in NOT_CONFIGURED_MARKERS):
        return BillingNotConfiguredError(message, cause=exc)
    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return BillingNetworkError(message, cause=exc)

    return BillingError(message, cause=exc)
