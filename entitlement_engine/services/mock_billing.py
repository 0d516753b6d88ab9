"""In-memory billing backend for development and tests.

Responsibilities:
- Speak the mobile purchases SDK contract with SDK-shaped payloads
- Keep one customer record per app user id, plus the anonymous one
- Grant entitlements on purchase (trials for products that offer one)
- Renew or expire entitlements when the virtual clock is advanced
- Deterministic failure injection for exercising adapter error paths
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from entitlement_engine.adapters.sdk import PurchasesError, PurchasesErrorCode
from entitlement_engine.logging_config import get_logger
from entitlement_engine.models import (
    CustomerInfo,
    EntitlementInfo,
    EntitlementInfos,
    MockBillingConfig,
    Offering,
    Offerings,
    Package,
    ProductDefinition,
    StoreProduct,
    WebBillingPrice,
    WebBillingProduct,
)
from entitlement_engine.repositories.product_repository import ProductRepository
from entitlement_engine.services.time_controller import VirtualClock
from entitlement_engine.state_logger import log_entitlement_change
from entitlement_engine.utils.billing_period import parse_billing_period
from entitlement_engine.utils.observers import ListenerRegistry, Subscription

logger = get_logger(__name__)

ANONYMOUS_ID_PREFIX = "$RCAnonymousID:"

# Operations that accept a queued failure via fail_next()
OPERATIONS = (
    "configure",
    "log_in",
    "log_out",
    "get_customer_info",
    "get_offerings",
    "purchase_package",
    "restore_purchases",
)

CATALOG_EMPTY_MESSAGE = (
    "There are no products registered in the RevenueCat dashboard for your offerings. "
    "See https://rev.cat/why-are-offerings-empty"
)


def _iso(millis: Optional[int]) -> Optional[str]:
    if millis is None:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).isoformat()


def _anonymous_id() -> str:
    return f"{ANONYMOUS_ID_PREFIX}{uuid4().hex}"


class MockEntitlementGrant(BaseModel):
    """Most recent entitlement granted to a mock customer."""

    product_id: str = Field(..., description="Product that granted the entitlement")
    purchased_at_millis: int = Field(..., description="Purchase time (virtual clock)")
    expires_at_millis: Optional[int] = Field(None, description="Expiry; None for lifetime")
    will_renew: bool = Field(default=True, description="Auto-renew enabled")
    period_type: str = Field(default="NORMAL", description="NORMAL or TRIAL")
    unsubscribe_detected_at_millis: Optional[int] = Field(None, description="When auto-renew was turned off")
    revoked: bool = Field(default=False, description="Access removed before expiry")
    lapsed: bool = Field(default=False, description="Expiry already processed")

    def is_active_at(self, now_millis: int) -> bool:
        if self.revoked or self.lapsed:
            return False
        return self.expires_at_millis is None or self.expires_at_millis > now_millis


class MockCustomer(BaseModel):
    """Billing record of one app user."""

    app_user_id: str
    first_seen_millis: int
    grant: Optional[MockEntitlementGrant] = None
    purchase_dates: dict[str, int] = Field(default_factory=dict)
    expiration_dates: dict[str, Optional[int]] = Field(default_factory=dict)
    trials_used: list[str] = Field(default_factory=list)


class MockBillingEngine:
    """In-memory stand-in for the mobile purchases SDK.

    Args:
        settings: Mock behavior and catalog
        entitlement_id: Entitlement granted by every catalog product
        products: Catalog repository; built from ``settings.products`` when omitted
        clock: Virtual clock; a fresh wall-clock based one when omitted
    """

    def __init__(
        self,
        settings: Optional[MockBillingConfig] = None,
        entitlement_id: str = "pro",
        products: Optional[ProductRepository] = None,
        clock: Optional[VirtualClock] = None,
    ) -> None:
        self._settings = settings or MockBillingConfig()
        self.entitlement_id = entitlement_id
        if products is None:
            products = ProductRepository(products=self._settings.products)
        self._products = products
        self.clock = clock or VirtualClock()

        self._listeners = ListenerRegistry("mock-customer-info")
        self._listener_handles: dict[Callable[..., Any], Subscription] = {}
        self._failures: dict[str, BaseException] = {}
        self._configured = False
        self._catalog_empty = self._settings.catalog_empty
        self._customers: dict[str, MockCustomer] = {}
        self._current_user_id = self._new_customer(_anonymous_id()).app_user_id

        logger.info(
            "mock_billing_engine_initialized",
            products=len(self._products),
            entitlement_id=entitlement_id,
            catalog_empty=self._catalog_empty,
        )

    # ------------------------------------------------------------------
    # SDK contract
    # ------------------------------------------------------------------

    async def configure(self, api_key: str, app_user_id: Optional[str] = None) -> None:
        await self._simulate_call("configure")
        if not api_key:
            raise PurchasesError("Invalid API key", PurchasesErrorCode.INVALID_CREDENTIALS)
        if self._configured:
            raise PurchasesError("Purchases instance already set; configure was called more than once")

        self._configured = True
        if app_user_id:
            self._switch_user(app_user_id)
        logger.info("mock_billing_configured", app_user_id=self._current_user_id)

    async def log_in(self, app_user_id: str) -> dict[str, Any]:
        await self._simulate_call("log_in")
        self._require_configured()
        if not app_user_id:
            raise PurchasesError("Invalid app user id", PurchasesErrorCode.INVALID_APP_USER_ID)

        previous_user_id = self._current_user_id
        created = self._switch_user(app_user_id)
        logger.info("mock_user_logged_in", app_user_id=app_user_id, created=created)
        if previous_user_id != app_user_id:
            self._notify()
        return {"customerInfo": self._payload(), "created": created}

    async def log_out(self) -> dict[str, Any]:
        await self._simulate_call("log_out")
        self._require_configured()
        if self._is_anonymous():
            raise PurchasesError(
                "Called logOut but the current user is anonymous.",
                PurchasesErrorCode.LOG_OUT_ANONYMOUS_USER,
            )

        logger.info("mock_user_logged_out", app_user_id=self._current_user_id)
        self._current_user_id = self._new_customer(_anonymous_id()).app_user_id
        self._notify()
        return self._payload()

    async def is_anonymous(self) -> bool:
        return self._is_anonymous()

    async def get_customer_info(self) -> dict[str, Any]:
        await self._simulate_call("get_customer_info")
        self._require_configured()
        return self._payload()

    async def get_offerings(self) -> dict[str, Any]:
        await self._simulate_call("get_offerings")
        self._require_configured()
        if self._catalog_empty or not len(self._products):
            raise PurchasesError(CATALOG_EMPTY_MESSAGE, PurchasesErrorCode.CONFIGURATION_ERROR)

        offering = Offering(
            identifier="default",
            available_packages=[self._to_package(product) for product in self._products.get_all()],
        )
        return Offerings(current=offering, all={offering.identifier: offering}).to_payload()

    async def purchase_package(self, package: dict[str, Any]) -> dict[str, Any]:
        await self._simulate_call("purchase_package")
        self._require_configured()

        product = self._resolve_product(package)
        customer = self._current_customer()
        now = self.clock.now_millis()
        previous_active = self._is_active(customer)

        if customer.grant and customer.grant.product_id == product.id and previous_active:
            logger.info("mock_purchase_already_owned", product_id=product.id)
        else:
            customer.grant = self._grant_for(product, customer, now)
            customer.purchase_dates[product.id] = now
            customer.expiration_dates[product.id] = customer.grant.expires_at_millis
            log_entitlement_change(
                customer.app_user_id,
                self.entitlement_id,
                previous_active,
                True,
                reason="purchase",
                product_id=product.id,
                period_type=customer.grant.period_type,
                expires_at=_iso(customer.grant.expires_at_millis),
            )
            self._notify()

        return {
            "customerInfo": self._payload(),
            "productIdentifier": product.id,
            "transaction": {
                "transactionIdentifier": f"mock-transaction-{uuid4().hex[:12]}",
                "productIdentifier": product.id,
                "purchaseDate": _iso(now),
            },
        }

    async def restore_purchases(self) -> dict[str, Any]:
        await self._simulate_call("restore_purchases")
        self._require_configured()
        logger.info("mock_purchases_restored", is_pro=self.get_is_pro())
        return self._payload()

    def add_customer_info_update_listener(self, listener: Callable[[dict[str, Any]], None]) -> None:
        """Register a listener; it is called right away with the current customer."""
        if listener in self._listener_handles:
            return
        self._listener_handles[listener] = self._listeners.add(listener)
        try:
            listener(self._payload())
        except Exception as e:
            logger.error(
                "listener_failed",
                registry=self._listeners.name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    def remove_customer_info_update_listener(self, listener: Callable[[dict[str, Any]], None]) -> None:
        handle = self._listener_handles.pop(listener, None)
        if handle is not None:
            handle.unsubscribe()

    async def get_management_url(self) -> Optional[str]:
        return self._settings.management_url

    # ------------------------------------------------------------------
    # Developer controls
    # ------------------------------------------------------------------

    @property
    def current_user_id(self) -> str:
        return self._current_user_id

    @property
    def products(self) -> ProductRepository:
        return self._products

    @property
    def is_configured(self) -> bool:
        return self._configured

    def get_is_pro(self) -> bool:
        """Whether the current customer holds an active entitlement."""
        return self._is_active(self._current_customer())

    def set_pro_status(self, is_pro: bool) -> None:
        """Grant or revoke the entitlement without going through a purchase.

        Granting uses the default (monthly) product. Revoking keeps the
        original expiry date so the customer reads as cancelled early.
        """
        customer = self._current_customer()
        was_active = self._is_active(customer)
        now = self.clock.now_millis()

        if is_pro:
            product = self._products.default_product()
            customer.grant = MockEntitlementGrant(
                product_id=product.id,
                purchased_at_millis=now,
                expires_at_millis=self._expiry_after(product.billing_period, now),
                will_renew=product.billing_period is not None,
            )
            customer.purchase_dates[product.id] = now
            customer.expiration_dates[product.id] = customer.grant.expires_at_millis
        elif customer.grant is not None:
            customer.grant.revoked = True
            customer.grant.will_renew = False

        log_entitlement_change(customer.app_user_id, self.entitlement_id, was_active, is_pro, reason="set_pro_status")
        self._notify()

    def set_will_renew(self, will_renew: bool) -> bool:
        """Toggle auto-renew on the active entitlement.

        Returns:
            True if there was an active entitlement to change
        """
        customer = self._current_customer()
        if not self._is_active(customer) or customer.grant.expires_at_millis is None:
            logger.warning("mock_renewal_toggle_ignored", reason="no renewable entitlement")
            return False

        grant = customer.grant
        grant.will_renew = will_renew
        grant.unsubscribe_detected_at_millis = None if will_renew else self.clock.now_millis()
        logger.info("mock_auto_renew_changed", product_id=grant.product_id, will_renew=will_renew)
        self._notify()
        return True

    def set_catalog_empty(self, empty: bool) -> None:
        """Simulate a billing dashboard with no products."""
        self._catalog_empty = empty
        logger.info("mock_catalog_empty_changed", catalog_empty=empty)

    def fail_next(self, operation: str, error: Optional[BaseException] = None) -> None:
        """Make the next call to ``operation`` raise ``error``.

        Raises:
            ValueError: If ``operation`` is not an SDK operation
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}. Valid operations: {list(OPERATIONS)}")
        self._failures[operation] = error or PurchasesError(
            f"Simulated {operation} failure", PurchasesErrorCode.NETWORK_ERROR
        )
        logger.debug("mock_failure_queued", operation=operation, error_type=type(self._failures[operation]).__name__)

    def cancel_next_purchase(self) -> None:
        """Make the next purchase behave as if the user dismissed the sheet."""
        self.fail_next(
            "purchase_package",
            PurchasesError("Purchase was cancelled.", PurchasesErrorCode.PURCHASE_CANCELLED, user_cancelled=True),
        )

    def advance_time(self, days: int = 0, hours: int = 0, minutes: int = 0) -> dict[str, Any]:
        """Advance the virtual clock and process what became due.

        Auto-renewing entitlements are renewed (trials convert to paid), the
        rest expire. Listeners are notified when the current customer changed.

        Returns:
            Dictionary with old/new times and the app user ids renewed or expired
        """
        old_time, new_time = self.clock.advance(days=days, hours=hours, minutes=minutes)
        renewed, expired = self._process_due(new_time)

        if self._current_user_id in renewed or self._current_user_id in expired:
            self._notify()

        return {
            "old_time_millis": old_time,
            "new_time_millis": new_time,
            "time_advanced_millis": new_time - old_time,
            "renewals_processed": renewed,
            "expirations_processed": expired,
        }

    def reset(self) -> None:
        """Forget every customer, queued failure and configuration.

        Listeners stay registered.
        """
        self._customers.clear()
        self._failures.clear()
        self._configured = False
        self._catalog_empty = self._settings.catalog_empty
        self.clock.reset()
        self._current_user_id = self._new_customer(_anonymous_id()).app_user_id
        logger.info("mock_billing_reset")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _simulate_call(self, operation: str) -> None:
        if self._settings.latency_ms:
            await asyncio.sleep(self._settings.latency_ms / 1000)
        failure = self._failures.pop(operation, None)
        if failure is not None:
            logger.info("mock_failure_injected", operation=operation, error_type=type(failure).__name__)
            raise failure

    def _require_configured(self) -> None:
        if not self._configured:
            raise PurchasesError("Purchases has not been configured. Call configure() first.")

    def _is_anonymous(self) -> bool:
        return self._current_user_id.startswith(ANONYMOUS_ID_PREFIX)

    def _new_customer(self, app_user_id: str) -> MockCustomer:
        customer = MockCustomer(app_user_id=app_user_id, first_seen_millis=self.clock.now_millis())
        self._customers[app_user_id] = customer
        return customer

    def _current_customer(self) -> MockCustomer:
        return self._customers[self._current_user_id]

    def _switch_user(self, app_user_id: str) -> bool:
        """Make ``app_user_id`` current. Returns True if the customer is new.

        A new user logging in from an anonymous session inherits the
        anonymous purchases, as the real backend aliases the two ids.
        """
        if app_user_id == self._current_user_id:
            return False
        if app_user_id in self._customers:
            self._current_user_id = app_user_id
            return False

        if self._is_anonymous():
            customer = self._customers.pop(self._current_user_id)
            customer.app_user_id = app_user_id
            self._customers[app_user_id] = customer
        else:
            self._new_customer(app_user_id)
        self._current_user_id = app_user_id
        return True

    def _is_active(self, customer: MockCustomer) -> bool:
        return customer.grant is not None and customer.grant.is_active_at(self.clock.now_millis())

    def _resolve_product(self, package: Any) -> ProductDefinition:
        package = package or {}
        product_id = (package.get("product") or {}).get("identifier") or (
            package.get("rcBillingProduct") or {}
        ).get("identifier")
        product = self._products.find_by_id(product_id) if product_id else None
        if product is None and package.get("identifier"):
            product = self._products.find_by_package(package["identifier"])
        if product is None:
            raise PurchasesError(
                "The product is not available for purchase.",
                PurchasesErrorCode.PRODUCT_NOT_AVAILABLE_FOR_PURCHASE,
            )
        return product

    def _expiry_after(self, period: Optional[str], start_millis: int) -> Optional[int]:
        if period is None:
            return None
        return start_millis + parse_billing_period(period)

    def _grant_for(self, product: ProductDefinition, customer: MockCustomer, now: int) -> MockEntitlementGrant:
        if product.package_type == "LIFETIME" or product.billing_period is None:
            return MockEntitlementGrant(
                product_id=product.id,
                purchased_at_millis=now,
                expires_at_millis=None,
                will_renew=False,
            )

        # Trials go to customers who never bought anything
        if product.trial_period and not customer.purchase_dates and product.id not in customer.trials_used:
            customer.trials_used.append(product.id)
            return MockEntitlementGrant(
                product_id=product.id,
                purchased_at_millis=now,
                expires_at_millis=self._expiry_after(product.trial_period, now),
                will_renew=True,
                period_type="TRIAL",
            )

        return MockEntitlementGrant(
            product_id=product.id,
            purchased_at_millis=now,
            expires_at_millis=self._expiry_after(product.billing_period, now),
            will_renew=True,
        )

    def _process_due(self, now_millis: int) -> tuple[list[str], list[str]]:
        renewed: list[str] = []
        expired: list[str] = []

        for customer in self._customers.values():
            grant = customer.grant
            if grant is None or grant.revoked or grant.lapsed or grant.expires_at_millis is None:
                continue
            if grant.expires_at_millis > now_millis:
                continue

            if grant.will_renew and self._settings.auto_renew_enabled:
                product = self._products.find_by_id(grant.product_id)
                step = parse_billing_period(product.billing_period if product and product.billing_period else "P1M")
                expires_at = grant.expires_at_millis
                while expires_at <= now_millis:
                    expires_at += step
                grant.expires_at_millis = expires_at
                grant.period_type = "NORMAL"
                customer.expiration_dates[grant.product_id] = expires_at
                renewed.append(customer.app_user_id)
                logger.info(
                    "mock_entitlement_renewed",
                    app_user_id=customer.app_user_id,
                    product_id=grant.product_id,
                    expires_at=_iso(expires_at),
                )
            else:
                grant.lapsed = True
                grant.will_renew = False
                expired.append(customer.app_user_id)
                log_entitlement_change(
                    customer.app_user_id,
                    self.entitlement_id,
                    True,
                    False,
                    reason="expired",
                    product_id=grant.product_id,
                )

        if renewed or expired:
            logger.info("mock_due_processed", renewed=len(renewed), expired=len(expired))
        return renewed, expired

    def _to_package(self, product: ProductDefinition) -> Package:
        return Package(
            identifier=product.package_identifier,
            package_type=product.package_type,
            product=StoreProduct(
                identifier=product.id,
                title=product.title,
                description=product.description,
                price=product.price,
                price_string=product.price_string,
                currency_code=product.currency,
            ),
            rc_billing_product=WebBillingProduct(
                identifier=product.id,
                display_name=product.title,
                description=product.description,
                current_price=WebBillingPrice(
                    amount_micros=product.price_micros,
                    formatted_price=product.price_string,
                    currency=product.currency,
                ),
            ),
        )

    def _customer_info(self, customer: MockCustomer) -> CustomerInfo:
        now = self.clock.now_millis()
        active: dict[str, EntitlementInfo] = {}
        all_entitlements: dict[str, EntitlementInfo] = {}
        active_subscriptions: list[str] = []

        grant = customer.grant
        if grant is not None:
            is_active = grant.is_active_at(now)
            entitlement = EntitlementInfo(
                identifier=self.entitlement_id,
                is_active=is_active,
                will_renew=is_active and grant.will_renew,
                period_type=grant.period_type,
                latest_purchase_date=_iso(grant.purchased_at_millis),
                expiration_date=_iso(grant.expires_at_millis),
                product_identifier=grant.product_id,
                unsubscribe_detected_at=_iso(grant.unsubscribe_detected_at_millis),
            )
            all_entitlements[self.entitlement_id] = entitlement
            if is_active:
                active[self.entitlement_id] = entitlement
                if grant.expires_at_millis is not None:
                    active_subscriptions.append(grant.product_id)

        expirations = [value for value in customer.expiration_dates.values() if value is not None]
        return CustomerInfo(
            entitlements=EntitlementInfos(
                active=active,
                all=all_entitlements,
                verification="VERIFIED" if grant else "NOT_REQUESTED",
            ),
            active_subscriptions=active_subscriptions,
            all_purchased_product_identifiers=list(customer.purchase_dates),
            latest_expiration_date=_iso(max(expirations)) if expirations else None,
            original_app_user_id=customer.app_user_id,
            request_date=_iso(now),
            first_seen=_iso(customer.first_seen_millis),
            management_url=self._settings.management_url,
            all_expiration_dates={pid: _iso(value) for pid, value in customer.expiration_dates.items()},
            all_purchase_dates={pid: _iso(value) for pid, value in customer.purchase_dates.items()},
        )

    def _payload(self) -> dict[str, Any]:
        return self._customer_info(self._current_customer()).to_payload()

    def _notify(self) -> None:
        if len(self._listeners):
            self._listeners.notify(self._payload())

    def __repr__(self) -> str:
        return (
            f"MockBillingEngine(user={self._current_user_id!r}, is_pro={self.get_is_pro()}, "
            f"products={len(self._products)})"
        )
