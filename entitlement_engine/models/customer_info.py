"""Billing SDK payload models.

Mirror the JSON the RevenueCat SDKs hand back (camelCase keys). Only the
mock billing engine builds these; adapters read the dumped dictionaries so
real SDK payloads and mock payloads go through the same translation.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class SdkModel(BaseModel):
    """Base for SDK-shaped payloads (camelCase on the wire)."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def to_payload(self) -> dict:
        """Dump as the SDK would deliver it."""
        return self.model_dump(by_alias=True, mode="json")


class EntitlementInfo(SdkModel):
    """State of one entitlement (e.g. 'pro')."""

    identifier: str
    is_active: bool = False
    will_renew: bool = False
    period_type: str = "NORMAL"  # NORMAL, TRIAL or INTRO
    latest_purchase_date: Optional[str] = None
    expiration_date: Optional[str] = None
    product_identifier: Optional[str] = None
    unsubscribe_detected_at: Optional[str] = None


class EntitlementInfos(SdkModel):
    """Active and historical entitlements keyed by identifier."""

    active: dict[str, EntitlementInfo] = Field(default_factory=dict)
    all: dict[str, EntitlementInfo] = Field(default_factory=dict)
    verification: str = "NOT_REQUESTED"


class CustomerInfo(SdkModel):
    """Customer record returned by getCustomerInfo/logIn/purchase/restore."""

    entitlements: EntitlementInfos = Field(default_factory=EntitlementInfos)
    active_subscriptions: list[str] = Field(default_factory=list)
    all_purchased_product_identifiers: list[str] = Field(default_factory=list)
    latest_expiration_date: Optional[str] = None
    original_app_user_id: str = "anonymous"
    request_date: Optional[str] = None
    first_seen: Optional[str] = None
    management_url: Optional[str] = Field(None, alias="managementURL")
    all_expiration_dates: dict[str, Optional[str]] = Field(default_factory=dict)
    all_purchase_dates: dict[str, Optional[str]] = Field(default_factory=dict)


class StoreProduct(SdkModel):
    """Mobile store product attached to a package."""

    identifier: str
    title: str
    description: str = ""
    price: float
    price_string: str
    currency_code: str = "USD"


class WebBillingPrice(SdkModel):
    """Web billing price in micros."""

    amount_micros: int
    formatted_price: str
    currency: str = "USD"


class WebBillingProduct(SdkModel):
    """Web billing product attached to a package."""

    identifier: str
    display_name: str
    description: str = ""
    current_price: WebBillingPrice


class Package(SdkModel):
    """Offering package; carries both the mobile and the web product shape."""

    identifier: str
    package_type: str = "MONTHLY"
    product: StoreProduct
    rc_billing_product: Optional[WebBillingProduct] = None


class Offering(SdkModel):
    """Named group of packages."""

    identifier: str = "default"
    available_packages: list[Package] = Field(default_factory=list)


class Offerings(SdkModel):
    """Result of getOfferings."""

    current: Optional[Offering] = None
    all: dict[str, Offering] = Field(default_factory=dict)
