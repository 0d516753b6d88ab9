"""Lifecycle event models.

Events are derived by comparing two entitlement snapshots. They are handed
to listeners as they happen and are never persisted.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .subscription import SubscriptionInfo


class LifecycleEventType(str, Enum):
    """Classified transition between two entitlement snapshots."""

    ACTIVATED = "activated"
    RENEWED = "renewed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    UPGRADED = "upgraded"
    DOWNGRADED = "downgraded"
    TRIAL_STARTED = "trial-started"
    TRIAL_CONVERTED = "trial-converted"


class LifecycleEvent(BaseModel):
    """A detected entitlement transition."""

    event: LifecycleEventType = Field(..., description="Kind of transition")
    previous: Optional[SubscriptionInfo] = Field(None, description="Snapshot before the change")
    current: SubscriptionInfo = Field(..., description="Snapshot after the change")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "event": "renewed",
                "previous": {
                    "platform": "mock",
                    "status": "active",
                    "productId": "pro_monthly",
                    "expirationDate": "2026-11-18T10:00:00+00:00",
                    "willRenew": True,
                    "isActive": True,
                    "isTrial": False,
                },
                "current": {
                    "platform": "mock",
                    "status": "active",
                    "productId": "pro_monthly",
                    "expirationDate": "2026-12-18T10:00:00+00:00",
                    "willRenew": True,
                    "isActive": True,
                    "isTrial": False,
                },
            }
        }
