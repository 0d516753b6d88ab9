"""Subscription store - single source of entitlement truth for the app.

Responsibilities:
- Initialize entitlement state for the current identity
- Commit canonical snapshots through the platform setters
- Run lifecycle detection and notify lifecycle listeners
- Derive the ``is_pro`` flag from the runtime platform's snapshot
- Persist and rehydrate the safe subset of state
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field, ValidationError

from entitlement_engine.adapters.base import SubscriptionResult, SubscriptionService
from entitlement_engine.adapters.errors import BillingError, CatalogEmptyError, classify_sdk_error
from entitlement_engine.logging_config import get_logger
from entitlement_engine.models import (
    BillingPeriod,
    LifecycleEvent,
    PricingPackage,
    SubscriptionInfo,
    SubscriptionPlatform,
)
from entitlement_engine.repositories.storage import KeyValueStorage
from entitlement_engine.services.identity import IdentitySource
from entitlement_engine.services.lifecycle import PeriodResolver, detect
from entitlement_engine.state_logger import log_entitlement_change, log_expiry_change, log_status_change
from entitlement_engine.utils.observers import ListenerRegistry, Subscription

logger = get_logger(__name__)

DEFAULT_STORAGE_KEY = "subscription-storage"

LifecycleListener = Callable[[LifecycleEvent], None]


class StorePhase(str, Enum):
    """Store lifecycle phase."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class OperationResult(BaseModel):
    """Outcome of a purchase or restore; no error means success or user cancellation."""

    error: Optional[BillingError] = Field(None, description="Failure surfaced to the caller")

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> dict[str, Any]:
        """``{}`` on success, ``{"error": ...}`` on failure."""
        if self.error is None:
            return {}
        return {"error": {"type": type(self.error).__name__, "message": str(self.error)}}

    class Config:
        frozen = True
        arbitrary_types_allowed = True


class PersistedSubscriptionState(BaseModel):
    """Subset of store state written to storage."""

    is_pro: bool = Field(default=False, alias="isPro")
    platform: SubscriptionPlatform
    customer_info: Optional[SubscriptionInfo] = Field(None, alias="customerInfo")
    web_subscription_info: Optional[SubscriptionInfo] = Field(None, alias="webSubscriptionInfo")

    class Config:
        frozen = True
        populate_by_name = True


class StoreSnapshot(BaseModel):
    """Read-only view of the store."""

    is_pro: bool = Field(..., alias="isPro")
    platform: SubscriptionPlatform
    entitlement_id: str = Field(..., alias="entitlementId")
    customer_info: Optional[SubscriptionInfo] = Field(None, alias="customerInfo")
    web_subscription_info: Optional[SubscriptionInfo] = Field(None, alias="webSubscriptionInfo")
    packages: list[PricingPackage] = Field(default_factory=list)
    loading: bool = False
    phase: StorePhase = StorePhase.UNINITIALIZED

    @property
    def active_info(self) -> Optional[SubscriptionInfo]:
        """Snapshot for the runtime platform."""
        if self.platform == SubscriptionPlatform.WEB:
            return self.web_subscription_info
        return self.customer_info

    class Config:
        frozen = True
        populate_by_name = True


class SubscriptionStore:
    """Entitlement state for one app runtime.

    Args:
        service: Adapter selected for this runtime
        platform: Runtime platform (mobile-billing or web-billing); decides
            which snapshot slot is authoritative
        storage: Key-value storage for the persisted subset; None disables persistence
        identity: Identity source followed via ``bind_identity``
        storage_key: Key the persisted subset is stored under
        entitlement_id: Entitlement reported by the selectors
    """

    def __init__(
        self,
        service: SubscriptionService,
        platform: SubscriptionPlatform,
        storage: Optional[KeyValueStorage] = None,
        identity: Optional[IdentitySource] = None,
        storage_key: str = DEFAULT_STORAGE_KEY,
        entitlement_id: Optional[str] = None,
    ):
        if platform == SubscriptionPlatform.MOCK:
            raise ValueError("Store platform must be the runtime platform (mobile-billing or web-billing)")

        self._service = service
        self._platform = platform
        self._storage = storage
        self._storage_key = storage_key
        self._entitlement_id = entitlement_id or service.entitlement_id

        self._is_pro = False
        self._customer_info: Optional[SubscriptionInfo] = None
        self._web_subscription_info: Optional[SubscriptionInfo] = None
        self._packages: list[PricingPackage] = []
        self._loading = False
        self._phase = StorePhase.UNINITIALIZED

        self._lifecycle_listeners = ListenerRegistry("lifecycle")
        self._push_subscription: Optional[Subscription] = None
        self._identity: Optional[IdentitySource] = None
        self._identity_subscription: Optional[Subscription] = None
        self._bound_user_id: Optional[str] = None

        self._pending_writes: set[asyncio.Task] = set()
        self._dirty = False

        if identity is not None:
            self.bind_identity(identity)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def service(self) -> SubscriptionService:
        return self._service

    @property
    def platform(self) -> SubscriptionPlatform:
        return self._platform

    @property
    def is_pro(self) -> bool:
        return self._is_pro

    @property
    def customer_info(self) -> Optional[SubscriptionInfo]:
        return self._customer_info

    @property
    def web_subscription_info(self) -> Optional[SubscriptionInfo]:
        return self._web_subscription_info

    @property
    def active_info(self) -> Optional[SubscriptionInfo]:
        """Snapshot for the runtime platform."""
        if self._platform == SubscriptionPlatform.WEB:
            return self._web_subscription_info
        return self._customer_info

    @property
    def packages(self) -> list[PricingPackage]:
        return list(self._packages)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def phase(self) -> StorePhase:
        return self._phase

    def snapshot(self) -> StoreSnapshot:
        """Read-only copy of the current state."""
        return StoreSnapshot(
            is_pro=self._is_pro,
            platform=self._platform,
            entitlement_id=self._entitlement_id,
            customer_info=self._customer_info,
            web_subscription_info=self._web_subscription_info,
            packages=list(self._packages),
            loading=self._loading,
            phase=self._phase,
        )

    def persisted_state(self) -> PersistedSubscriptionState:
        return PersistedSubscriptionState(
            is_pro=self._is_pro,
            platform=self._platform,
            customer_info=self._customer_info,
            web_subscription_info=self._web_subscription_info,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load entitlement state for the current identity. Never raises.

        Signed-in users go through ``log_in``; anonymous sessions only fetch
        (never ``log_out``). A failed fetch commits the empty snapshot.
        """
        self._phase = StorePhase.INITIALIZING
        user_id = self._identity.current_user_id if self._identity is not None else None
        logger.info("store_initializing", platform=self._platform.value, signed_in=user_id is not None)

        try:
            await self._service.configure()
        except Exception as e:
            logger.error(
                "billing_configure_failed",
                platform=self._platform.value,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

        if user_id is not None:
            info = await self._log_in(user_id)
        else:
            info = await self._fetch_anonymous()
        self._commit(info)

        await self.fetch_packages()
        self._register_push_listener()

        self._phase = StorePhase.READY
        logger.info(
            "store_ready",
            platform=self._platform.value,
            is_pro=self._is_pro,
            packages=len(self._packages),
        )

    async def _log_in(self, user_id: str) -> SubscriptionInfo:
        try:
            result = await self._service.log_in(user_id)
        except Exception as e:
            logger.warning(
                "store_login_failed",
                platform=self._platform.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return SubscriptionInfo.empty(self._service.platform)
        if result.error is not None:
            logger.warning(
                "store_login_degraded",
                platform=self._platform.value,
                error=str(result.error),
                error_type=type(result.error).__name__,
            )
            # A snapshot next to a login error may belong to the previous user
            return SubscriptionInfo.empty(self._service.platform)
        return result.subscription_info or SubscriptionInfo.empty(self._service.platform)

    async def _fetch_anonymous(self) -> SubscriptionInfo:
        try:
            return await self._service.get_subscription_info()
        except Exception as e:
            logger.warning(
                "store_anonymous_fetch_failed",
                platform=self._platform.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return SubscriptionInfo.empty(self._service.platform)

    def _register_push_listener(self) -> None:
        if not self._service.supports_update_listener:
            return
        if self._push_subscription is not None:
            self._push_subscription.unsubscribe()
        self._push_subscription = self._service.add_subscription_update_listener(self._on_subscription_pushed)
        logger.debug("push_listener_registered", platform=self._platform.value)

    def _on_subscription_pushed(self, info: SubscriptionInfo) -> None:
        logger.debug("subscription_push_received", platform=self._platform.value, status=info.status.value)
        self._commit(info)

    async def dispose(self) -> None:
        """Detach from the adapter and identity, flush writes, drop listeners."""
        if self._push_subscription is not None:
            self._push_subscription.unsubscribe()
            self._push_subscription = None
        if self._identity_subscription is not None:
            self._identity_subscription.unsubscribe()
            self._identity_subscription = None
        self._identity = None
        self._lifecycle_listeners.clear()
        await self.flush()
        self._phase = StorePhase.UNINITIALIZED
        logger.info("store_disposed", platform=self._platform.value)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def bind_identity(self, identity: IdentitySource) -> Subscription:
        """Follow ``identity``: every user id change re-runs ``initialize``."""
        if self._identity_subscription is not None:
            self._identity_subscription.unsubscribe()
        self._identity = identity
        self._bound_user_id = identity.current_user_id
        self._identity_subscription = identity.subscribe(self._on_identity_changed)
        return self._identity_subscription

    async def _on_identity_changed(self, user_id: Optional[str]) -> None:
        previous_user_id = self._bound_user_id
        if user_id == previous_user_id:
            return
        self._bound_user_id = user_id
        logger.info(
            "store_identity_changed",
            platform=self._platform.value,
            signed_in=user_id is not None,
            was_signed_in=previous_user_id is not None,
        )

        # Snapshots of a different user are not a baseline for lifecycle events.
        # Cleared first because the SDK may push the new identity during log_out.
        self._customer_info = None
        self._web_subscription_info = None
        self.check_pro_status(reason="identity_changed")

        if user_id is None and previous_user_id is not None:
            try:
                await self._service.log_out()
            except Exception as e:
                logger.warning(
                    "billing_logout_failed",
                    platform=self._platform.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        await self.initialize()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def check_pro_status(self, reason: Optional[str] = None) -> bool:
        """Recompute ``is_pro`` from the runtime platform's snapshot. No I/O."""
        info = self.active_info
        is_pro = info is not None and info.is_active
        if is_pro != self._is_pro:
            log_entitlement_change(
                self._bound_user_id,
                self._entitlement_id,
                self._is_pro,
                is_pro,
                reason=reason,
                platform=self._platform.value,
            )
        self._is_pro = is_pro
        return is_pro

    def set_customer_info(self, info: Optional[SubscriptionInfo]) -> Optional[LifecycleEvent]:
        """Commit the mobile snapshot slot."""
        return self._apply("customer_info", info)

    def set_web_subscription_info(self, info: Optional[SubscriptionInfo]) -> Optional[LifecycleEvent]:
        """Commit the web snapshot slot."""
        return self._apply("web_subscription_info", info)

    def _commit(self, info: SubscriptionInfo) -> Optional[LifecycleEvent]:
        # Mock snapshots land in the slot of the runtime platform they stand in for
        if self._platform == SubscriptionPlatform.WEB:
            return self.set_web_subscription_info(info)
        return self.set_customer_info(info)

    def _apply(self, slot: str, info: Optional[SubscriptionInfo]) -> Optional[LifecycleEvent]:
        attribute = f"_{slot}"
        previous: Optional[SubscriptionInfo] = getattr(self, attribute)

        event = detect(previous, info, self._period_of) if info is not None else None
        if event is not None:
            logger.info(
                "lifecycle_event_detected",
                lifecycle_event=event.event.value,
                platform=self._platform.value,
                product_id=info.product_id,
            )
            self._lifecycle_listeners.notify(event)

        setattr(self, attribute, info)
        self._log_transition(previous, info)
        self.check_pro_status(reason=event.event.value if event else slot)
        self._schedule_persist()
        return event

    def _log_transition(self, previous: Optional[SubscriptionInfo], current: Optional[SubscriptionInfo]) -> None:
        if current is None or previous == current:
            return
        if previous is None or previous.status != current.status:
            log_status_change(
                current.platform,
                previous.status if previous is not None else None,
                current.status,
                reason="commit",
                product_id=current.product_id,
            )
        elif previous.expiration_date != current.expiration_date:
            log_expiry_change(
                current.product_id,
                previous.expiration_date,
                current.expiration_date,
                reason="commit",
            )

    def _period_of(self, product_id: Optional[str]) -> Optional[BillingPeriod]:
        for package in self._packages:
            if package.product_id is not None and package.product_id == product_id:
                return package.billing_period
        return None

    def add_lifecycle_listener(self, listener: LifecycleListener) -> Subscription:
        """Register a listener for detected lifecycle events.

        Listeners are called synchronously before the snapshot is committed.
        A listener that raises is logged and does not affect the others.
        """
        return self._lifecycle_listeners.add(listener)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def fetch_packages(self) -> list[PricingPackage]:
        """Refresh the package list. Never raises; keeps the last list on failure."""
        try:
            packages = await self._service.get_packages()
        except Exception as e:
            error = classify_sdk_error(e)
            if isinstance(error, CatalogEmptyError):
                logger.info("catalog_empty", platform=self._platform.value, detail=str(error))
            else:
                logger.error(
                    "packages_fetch_failed",
                    platform=self._platform.value,
                    error=str(error),
                    error_type=type(error).__name__,
                    exc_info=True,
                )
            return list(self._packages)

        self._packages = list(packages)
        logger.debug("packages_updated", platform=self._platform.value, count=len(self._packages))
        return list(self._packages)

    async def purchase_package(self, package: PricingPackage) -> OperationResult:
        """Purchase ``package`` and commit the resulting snapshot.

        User cancellation resolves to a clean result with no error. Callers
        gate repeat invocations on ``loading``.
        """
        logger.info("purchase_started", platform=self._platform.value, package_id=package.identifier)
        self._loading = True
        try:
            result = await self._service.purchase_package(package)
            self._commit_result(result, "purchase_package")
        except Exception as e:
            return self._operation_failed(e, "purchase_package")
        finally:
            self._loading = False

        return self._operation_result(result.error, "purchase_package")

    async def restore_purchases(self) -> OperationResult:
        """Re-synchronize entitlement; always resolves."""
        logger.info("restore_started", platform=self._platform.value)
        self._loading = True
        try:
            result = await self._service.restore_purchases()
            self._commit_result(result, "restore_purchases")
        except Exception as e:
            return self._operation_failed(e, "restore_purchases")
        finally:
            self._loading = False

        return self._operation_result(result.error, "restore_purchases")

    def _commit_result(self, result: SubscriptionResult, operation: str) -> None:
        if result.subscription_info is None:
            logger.info("snapshot_unchanged", platform=self._platform.value, operation=operation, is_pro=self._is_pro)
            return
        self._commit(result.subscription_info)

    def _operation_result(self, error: Optional[BillingError], operation: str) -> OperationResult:
        if error is None:
            logger.info("operation_succeeded", operation=operation, is_pro=self._is_pro)
            return OperationResult()
        if error.user_cancelled:
            logger.info("operation_cancelled_by_user", operation=operation)
            return OperationResult()
        logger.warning(
            "operation_failed",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            retryable=error.retryable,
        )
        return OperationResult(error=error)

    def _operation_failed(self, exc: Exception, operation: str) -> OperationResult:
        error = classify_sdk_error(exc)
        if error.user_cancelled:
            logger.info("operation_cancelled_by_user", operation=operation)
            return OperationResult()
        logger.error(
            "operation_raised",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            exc_info=True,
        )
        return OperationResult(error=error)

    async def get_management_url(self) -> Optional[str]:
        return await self._service.get_management_url()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def hydrate(self) -> bool:
        """Restore the persisted subset.

        Entries written by a different runtime platform and unreadable
        payloads are ignored.

        Returns:
            True if state was restored
        """
        if self._storage is None:
            return False

        try:
            raw = await self._storage.get(self._storage_key)
        except Exception as e:
            logger.warning(
                "persisted_state_unavailable",
                key=self._storage_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        if raw is None:
            return False

        try:
            state = PersistedSubscriptionState.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "persisted_state_corrupt",
                key=self._storage_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if state.platform != self._platform:
            logger.info(
                "persisted_state_platform_mismatch",
                key=self._storage_key,
                stored_platform=state.platform.value,
                platform=self._platform.value,
            )
            return False

        self._customer_info = state.customer_info
        self._web_subscription_info = state.web_subscription_info
        self.check_pro_status(reason="hydrate")
        if self._is_pro != state.is_pro:
            logger.warning("persisted_is_pro_mismatch", stored=state.is_pro, derived=self._is_pro)
        logger.info("persisted_state_hydrated", platform=self._platform.value, is_pro=self._is_pro)
        return True

    async def persist(self) -> None:
        """Write the persisted subset now."""
        if self._storage is None:
            return
        self._dirty = False
        payload = self.persisted_state().model_dump_json(by_alias=True)
        await self._storage.set(self._storage_key, payload)
        logger.debug("persisted_state_written", key=self._storage_key, is_pro=self._is_pro)

    def _schedule_persist(self) -> None:
        if self._storage is None:
            return
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Written on the next flush()
            return
        task = loop.create_task(self._persist_quietly())
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _persist_quietly(self) -> None:
        try:
            await self.persist()
        except Exception as e:
            logger.error(
                "persist_failed",
                key=self._storage_key,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    async def flush(self) -> None:
        """Wait for scheduled writes, then write anything still pending."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes))
        if self._dirty:
            await self._persist_quietly()

    def __repr__(self) -> str:
        return (
            f"SubscriptionStore(platform={self._platform.value}, phase={self._phase.value}, "
            f"is_pro={self._is_pro})"
        )
