"""Control API for driving the mock billing backend during development.

Implements:
- GET  /mock/state - Store snapshot, selectors and mock engine state
- GET  /mock/packages - Packages of the current offering
- POST /mock/purchase - Purchase a package through the store
- POST /mock/restore - Restore purchases through the store
- POST /mock/pro - Grant or revoke the entitlement directly
- POST /mock/renewal - Toggle auto-renew (cancel / resubscribe)
- POST /mock/time/advance - Fast-forward the virtual clock
- POST /mock/identity - Sign a user in or out
- POST /mock/failures - Queue an SDK failure
- POST /mock/catalog - Simulate an empty catalog
- POST /mock/reset - Reset all state
- GET  /mock/events - Lifecycle events observed by the store
"""

from collections import deque
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request

from entitlement_engine.adapters.mock import MockSubscriptionService
from entitlement_engine.adapters.sdk import PurchasesError
from entitlement_engine.config import Config
from entitlement_engine.logging_config import get_logger
from entitlement_engine.models import LifecycleEvent
from entitlement_engine.models.api_request import (
    AdvanceTimeRequest,
    AdvanceTimeResponse,
    CatalogRequest,
    FailNextRequest,
    OperationResponse,
    PurchaseRequest,
    ResetResponse,
    SetIdentityRequest,
    SetProRequest,
    SetRenewalRequest,
    StateResponse,
)
from entitlement_engine.repositories.storage import InMemoryStorage, JsonFileStorage, KeyValueStorage
from entitlement_engine.services.identity import AuthIdentity
from entitlement_engine.services.mock_billing import OPERATIONS, MockBillingEngine
from entitlement_engine.services.selectors import select_subscription_state
from entitlement_engine.services.subscription_store import OperationResult, SubscriptionStore

logger = get_logger(__name__)
router = APIRouter(tags=["Mock Control API"], prefix="/mock")

MAX_RECORDED_EVENTS = 100


class MockRuntime:
    """A store wired to the mock billing engine, plus what the routes need.

    Args:
        config: Engine configuration (runtime platform, mock catalog, storage)
        storage: Storage override; defaults to the configured JSON file, or memory
    """

    def __init__(self, config: Config, storage: Optional[KeyValueStorage] = None):
        self.config = config
        self.engine = MockBillingEngine(config.mock_settings, entitlement_id=config.entitlement_id)
        self.service = MockSubscriptionService(self.engine, config.entitlement_id)
        if storage is None:
            storage_path = config.engine.storage_path
            storage = JsonFileStorage(storage_path) if storage_path else InMemoryStorage()
        self.storage = storage
        self.events: deque[LifecycleEvent] = deque(maxlen=MAX_RECORDED_EVENTS)
        self.identity = AuthIdentity()
        self.store = self._build_store()

    def _build_store(self) -> SubscriptionStore:
        store = SubscriptionStore(
            self.service,
            self.config.platform,
            storage=self.storage,
            identity=self.identity,
            storage_key=self.config.storage_key,
            entitlement_id=self.config.entitlement_id,
        )
        store.add_lifecycle_listener(self.events.append)
        return store

    async def start(self) -> None:
        await self.store.hydrate()
        await self.store.initialize()

    async def stop(self) -> None:
        await self.store.dispose()
        self.service.close()

    async def reset(self) -> None:
        """Forget every customer, event and persisted entry, then re-initialize."""
        await self.store.dispose()
        await self.storage.remove(self.config.storage_key)
        self.service.close()
        self.engine.reset()
        self.events.clear()

        self.service = MockSubscriptionService(self.engine, self.config.entitlement_id)
        self.identity = AuthIdentity()
        self.store = self._build_store()
        await self.store.initialize()


def get_runtime(request: Request) -> MockRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail={"error": "Not ready", "message": "Runtime not started"})
    return runtime


def _state_payload(runtime: MockRuntime) -> dict[str, Any]:
    return runtime.store.snapshot().model_dump(by_alias=True, mode="json")


def _operation_response(runtime: MockRuntime, result: OperationResult) -> OperationResponse:
    payload = result.to_payload()
    return OperationResponse(success=result.ok, error=payload.get("error"), state=_state_payload(runtime))


@router.get("/state", response_model=StateResponse, summary="Get store state")
async def get_state(request: Request) -> StateResponse:
    runtime = get_runtime(request)
    return StateResponse(
        store=_state_payload(runtime),
        selectors=select_subscription_state(runtime.store.snapshot()),
        user_id=runtime.identity.current_user_id,
        billing_user_id=runtime.engine.current_user_id,
        virtual_time_millis=runtime.engine.clock.now_millis(),
        management_url=await runtime.store.get_management_url(),
    )


@router.get("/packages", summary="List packages")
async def get_packages(request: Request) -> list[dict[str, Any]]:
    runtime = get_runtime(request)
    packages = await runtime.store.fetch_packages()
    return [package.model_dump(by_alias=True, mode="json") for package in packages]


@router.post("/purchase", response_model=OperationResponse, summary="Purchase a package")
async def purchase(payload: PurchaseRequest, request: Request) -> OperationResponse:
    """Purchase a package of the current offering through the store.

    Raises:
        404: Package not in the current offering
        409: Another purchase or restore is in flight
    """
    runtime = get_runtime(request)
    logger.info("control_purchase_request", package_identifier=payload.package_identifier)

    if runtime.store.loading:
        raise HTTPException(
            status_code=409,
            detail={"error": "Busy", "message": "A purchase or restore is already in progress"},
        )

    packages = runtime.store.packages or await runtime.store.fetch_packages()
    package = next((p for p in packages if p.identifier == payload.package_identifier), None)
    if package is None:
        logger.warning("package_not_found", package_identifier=payload.package_identifier)
        raise HTTPException(
            status_code=404,
            detail={
                "error": "Package not found",
                "message": f"Package '{payload.package_identifier}' is not in the current offering",
            },
        )

    result = await runtime.store.purchase_package(package)
    return _operation_response(runtime, result)


@router.post("/restore", response_model=OperationResponse, summary="Restore purchases")
async def restore(request: Request) -> OperationResponse:
    runtime = get_runtime(request)
    result = await runtime.store.restore_purchases()
    return _operation_response(runtime, result)


@router.post("/pro", summary="Grant or revoke the entitlement")
async def set_pro(payload: SetProRequest, request: Request) -> dict[str, Any]:
    runtime = get_runtime(request)
    logger.info("control_set_pro_request", is_pro=payload.is_pro)
    runtime.engine.set_pro_status(payload.is_pro)
    return _state_payload(runtime)


@router.post("/renewal", summary="Toggle auto-renew")
async def set_renewal(payload: SetRenewalRequest, request: Request) -> dict[str, Any]:
    """Turn auto-renew off (user cancels) or back on.

    Raises:
        409: No renewable entitlement is active
    """
    runtime = get_runtime(request)
    if not runtime.engine.set_will_renew(payload.will_renew):
        raise HTTPException(
            status_code=409,
            detail={"error": "No renewable entitlement", "message": "Purchase a subscription first"},
        )
    return _state_payload(runtime)


@router.post("/time/advance", response_model=AdvanceTimeResponse, summary="Advance virtual time")
async def advance_time(payload: AdvanceTimeRequest, request: Request) -> AdvanceTimeResponse:
    """Fast-forward the virtual clock; due entitlements renew or expire."""
    runtime = get_runtime(request)
    logger.info("control_advance_time_request", days=payload.days, hours=payload.hours, minutes=payload.minutes)
    try:
        result = runtime.engine.advance_time(days=payload.days, hours=payload.hours, minutes=payload.minutes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": "Invalid request", "message": str(e)})
    return AdvanceTimeResponse(**result, state=_state_payload(runtime))


@router.post("/identity", summary="Sign in or out")
async def set_identity(payload: SetIdentityRequest, request: Request) -> dict[str, Any]:
    runtime = get_runtime(request)
    changed = await runtime.identity.set_user_id(payload.user_id)
    logger.info("control_identity_request", signed_in=payload.user_id is not None, changed=changed)
    return {"changed": changed, "state": _state_payload(runtime)}


@router.post("/failures", summary="Queue an SDK failure")
async def fail_next(payload: FailNextRequest, request: Request) -> dict[str, Any]:
    """Make the next call of an SDK operation raise.

    Raises:
        400: Unknown operation
    """
    runtime = get_runtime(request)
    if payload.operation not in OPERATIONS:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid request", "message": f"Unknown operation: {payload.operation}"},
        )
    error = PurchasesError(payload.message or f"Simulated {payload.operation} failure", payload.code)
    runtime.engine.fail_next(payload.operation, error)
    return {"operation": payload.operation, "code": int(payload.code)}


@router.post("/catalog", summary="Simulate an empty catalog")
async def set_catalog(payload: CatalogRequest, request: Request) -> dict[str, Any]:
    runtime = get_runtime(request)
    runtime.engine.set_catalog_empty(payload.empty)
    packages = await runtime.store.fetch_packages()
    return {"empty": payload.empty, "packages": len(packages)}


@router.post("/reset", response_model=ResetResponse, summary="Reset all state")
async def reset(request: Request) -> ResetResponse:
    runtime = get_runtime(request)
    await runtime.reset()
    logger.info("control_reset_completed")
    return ResetResponse(success=True, message="Mock billing state reset")


@router.get("/events", summary="List lifecycle events")
async def get_events(request: Request) -> list[dict[str, Any]]:
    runtime = get_runtime(request)
    return [event.model_dump(by_alias=True, mode="json") for event in runtime.events]
