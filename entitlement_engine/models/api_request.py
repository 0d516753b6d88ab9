"""API request and response models for the mock control endpoints."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from entitlement_engine.adapters.sdk import PurchasesErrorCode


class PurchaseRequest(BaseModel):
    """Purchase a package from the current offering."""

    package_identifier: str = Field(..., description="Offering package identifier (e.g. monthly)")

    class Config:
        json_schema_extra = {"example": {"package_identifier": "annual"}}


class SetProRequest(BaseModel):
    """Grant or revoke the entitlement directly."""

    is_pro: bool = Field(..., description="True grants the default product, false revokes")

    class Config:
        json_schema_extra = {"example": {"is_pro": True}}


class SetRenewalRequest(BaseModel):
    """Toggle auto-renew on the active entitlement."""

    will_renew: bool = Field(..., description="False simulates the user cancelling renewal")

    class Config:
        json_schema_extra = {"example": {"will_renew": False}}


class AdvanceTimeRequest(BaseModel):
    """Request to advance virtual time."""

    days: int = Field(default=0, ge=0, description="Number of days to advance")
    hours: int = Field(default=0, ge=0, description="Number of hours to advance")
    minutes: int = Field(default=0, ge=0, description="Number of minutes to advance")

    class Config:
        json_schema_extra = {"example": {"days": 31, "hours": 0, "minutes": 0}}


class AdvanceTimeResponse(BaseModel):
    """Response after advancing virtual time."""

    old_time_millis: int = Field(..., description="Virtual time before advancement")
    new_time_millis: int = Field(..., description="Virtual time after advancement")
    time_advanced_millis: int = Field(..., description="Amount of time advanced")
    renewals_processed: list[str] = Field(default_factory=list, description="App user ids renewed")
    expirations_processed: list[str] = Field(default_factory=list, description="App user ids expired")
    state: dict[str, Any] = Field(default_factory=dict, description="Store state after processing")


class SetIdentityRequest(BaseModel):
    """Sign a user in (user_id) or out (null)."""

    user_id: Optional[str] = Field(None, description="App user id; null signs out")

    class Config:
        json_schema_extra = {"example": {"user_id": "user-123"}}


class FailNextRequest(BaseModel):
    """Queue a failure for the next call of an SDK operation."""

    operation: str = Field(..., description="SDK operation, e.g. purchase_package")
    code: PurchasesErrorCode = Field(
        default=PurchasesErrorCode.NETWORK_ERROR, description="SDK error code to raise"
    )
    message: Optional[str] = Field(None, description="Error message; a default is used when omitted")

    class Config:
        json_schema_extra = {
            "example": {"operation": "purchase_package", "code": 2, "message": "Store problem"}
        }


class CatalogRequest(BaseModel):
    """Simulate an empty product catalog."""

    empty: bool = Field(..., description="True makes get_offerings report no products")


class OperationResponse(BaseModel):
    """Outcome of a purchase or restore through the store."""

    success: bool = Field(..., description="False when an error is surfaced to the user")
    error: Optional[dict[str, Any]] = Field(None, description="Error type and message")
    state: dict[str, Any] = Field(default_factory=dict, description="Store state after the operation")


class StateResponse(BaseModel):
    """Current store and mock engine state."""

    store: dict[str, Any] = Field(..., description="Store snapshot (camelCase)")
    selectors: dict[str, Any] = Field(..., description="Derived subscription state")
    user_id: Optional[str] = Field(None, description="Signed-in app user")
    billing_user_id: str = Field(..., description="App user id the mock engine is serving")
    virtual_time_millis: int = Field(..., description="Mock engine virtual time")
    management_url: Optional[str] = Field(None, description="Management deep link")


class ResetResponse(BaseModel):
    """Response after resetting all state."""

    success: bool = Field(..., description="Whether reset succeeded")
    message: str = Field(..., description="Status message")
