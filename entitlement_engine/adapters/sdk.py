"""Contracts for the platform billing SDKs the adapters wrap.

The SDKs are opaque collaborators. These protocols name only the calls the
adapters make; payloads come back as plain dictionaries in the SDK's own
camelCase JSON shape.
"""

from enum import IntEnum
from typing import Any, Callable, Optional, Protocol

CustomerInfoPayload = dict[str, Any]
OfferingsPayload = dict[str, Any]
CustomerInfoListener = Callable[[CustomerInfoPayload], None]


class PurchasesErrorCode(IntEnum):
    """Error codes reported by the RevenueCat SDKs."""

    UNKNOWN_ERROR = 0
    PURCHASE_CANCELLED = 1
    STORE_PROBLEM = 2
    PURCHASE_NOT_ALLOWED = 3
    PURCHASE_INVALID = 4
    PRODUCT_NOT_AVAILABLE_FOR_PURCHASE = 5
    PRODUCT_ALREADY_PURCHASED = 6
    RECEIPT_ALREADY_IN_USE = 7
    INVALID_RECEIPT = 8
    MISSING_RECEIPT = 9
    NETWORK_ERROR = 10
    INVALID_CREDENTIALS = 11
    UNEXPECTED_BACKEND_RESPONSE = 12
    INVALID_APP_USER_ID = 14
    OPERATION_ALREADY_IN_PROGRESS = 15
    UNKNOWN_BACKEND_ERROR = 16
    PAYMENT_PENDING = 20
    LOG_OUT_ANONYMOUS_USER = 22
    CONFIGURATION_ERROR = 23


class PurchasesError(Exception):
    """Error raised by a billing SDK call."""

    def __init__(
        self,
        message: str,
        code: PurchasesErrorCode = PurchasesErrorCode.UNKNOWN_ERROR,
        user_cancelled: Optional[bool] = None,
    ) -> None:
        self.code = code
        self.user_cancelled = (
            user_cancelled if user_cancelled is not None else code == PurchasesErrorCode.PURCHASE_CANCELLED
        )
        super().__init__(message)


class MobilePurchasesSDK(Protocol):
    """Native mobile billing SDK (react-native-purchases style)."""

    async def configure(self, api_key: str, app_user_id: Optional[str] = None) -> None: ...

    async def log_in(self, app_user_id: str) -> dict[str, Any]:
        """Returns ``{"customerInfo": {...}, "created": bool}``."""
        ...

    async def log_out(self) -> CustomerInfoPayload: ...

    async def is_anonymous(self) -> bool: ...

    async def get_customer_info(self) -> CustomerInfoPayload: ...

    async def get_offerings(self) -> OfferingsPayload: ...

    async def purchase_package(self, package: dict[str, Any]) -> dict[str, Any]:
        """Returns ``{"customerInfo": {...}, "productIdentifier": str}``."""
        ...

    async def restore_purchases(self) -> CustomerInfoPayload: ...

    def add_customer_info_update_listener(self, listener: CustomerInfoListener) -> None: ...

    def remove_customer_info_update_listener(self, listener: CustomerInfoListener) -> None: ...


class WebPurchasesInstance(Protocol):
    """Configured per-user web billing client."""

    async def get_customer_info(self) -> CustomerInfoPayload: ...

    async def get_offerings(self) -> OfferingsPayload: ...

    async def purchase(self, rc_package: dict[str, Any]) -> dict[str, Any]:
        """Returns ``{"customerInfo": {...}}`` once checkout completes."""
        ...


class WebPurchasesSDK(Protocol):
    """Web billing SDK entry point; configured per user."""

    def configure(self, api_key: str, app_user_id: str) -> WebPurchasesInstance: ...
