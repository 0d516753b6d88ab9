"""Adapter for the in-memory mock billing engine.

The engine speaks the mobile SDK contract, so the mock adapter is the
mobile adapter pointed at it. Snapshots are tagged with the ``mock``
platform and expiry decisions follow the engine's virtual clock.
"""

from datetime import datetime
from typing import Optional

from entitlement_engine.adapters.mobile import MobileSubscriptionService
from entitlement_engine.adapters.revenuecat import DEFAULT_ENTITLEMENT_ID
from entitlement_engine.models import SubscriptionPlatform
from entitlement_engine.services.mock_billing import MockBillingEngine

MOCK_API_KEY = "mock-api-key"


class MockSubscriptionService(MobileSubscriptionService):
    """Subscription service backed by ``MockBillingEngine``."""

    platform = SubscriptionPlatform.MOCK

    def __init__(self, engine: MockBillingEngine, entitlement_id: str = DEFAULT_ENTITLEMENT_ID):
        super().__init__(engine, MOCK_API_KEY, entitlement_id)
        self._engine = engine

    @property
    def engine(self) -> MockBillingEngine:
        return self._engine

    async def _ensure_configured(self) -> None:
        # The engine forgets its configuration on reset()
        if not self._engine.is_configured:
            self._configured = False
        await super()._ensure_configured()

    def _now(self) -> Optional[datetime]:
        return self._engine.clock.now()

    async def get_management_url(self) -> Optional[str]:
        return await self._engine.get_management_url()
