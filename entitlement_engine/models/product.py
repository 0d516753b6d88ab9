"""Product catalog and engine configuration models.

Models from entitlement.yaml configuration.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .subscription import SubscriptionPlatform


class ProductDefinition(BaseModel):
    """Subscription product offered by the mock billing catalog."""

    id: str = Field(..., description="Store product ID (e.g. pro_monthly)")
    package_identifier: str = Field(..., description="Offering package identifier (e.g. monthly)")
    package_type: str = Field(default="MONTHLY", description="MONTHLY, ANNUAL or LIFETIME")
    title: str = Field(..., description="Human-readable title")
    description: str = Field(default="", description="Product description")
    price_micros: int = Field(..., description="Price in micros (1,000,000 = $1.00)")
    currency: str = Field(default="USD", description="ISO 4217 currency code")
    billing_period: Optional[str] = Field("P1M", description="ISO 8601 duration (P1M, P1Y); null for lifetime")
    trial_period: Optional[str] = Field(None, description="ISO 8601 trial duration (e.g. P7D)")

    @field_validator("package_type")
    @classmethod
    def _normalize_package_type(cls, value: str) -> str:
        value = value.upper()
        if value not in ("MONTHLY", "ANNUAL", "LIFETIME"):
            raise ValueError(f"Unsupported package type: {value}")
        return value

    @property
    def price(self) -> float:
        """Price in major currency units."""
        return self.price_micros / 1_000_000

    @property
    def price_string(self) -> str:
        """Display price, e.g. '$9.99'."""
        symbol = "$" if self.currency == "USD" else f"{self.currency} "
        return f"{symbol}{self.price:.2f}"

    class Config:
        json_schema_extra = {
            "example": {
                "id": "pro_annual",
                "package_identifier": "annual",
                "package_type": "ANNUAL",
                "title": "Pro Annual",
                "description": "Pro Annual Subscription - Save 20%",
                "price_micros": 99990000,
                "currency": "USD",
                "billing_period": "P1Y",
                "trial_period": "P7D",
            }
        }


def default_products() -> list[ProductDefinition]:
    """Catalog used when the configuration does not list products."""
    return [
        ProductDefinition(
            id="pro_monthly",
            package_identifier="monthly",
            package_type="MONTHLY",
            title="Pro Monthly",
            description="Pro Monthly Subscription",
            price_micros=9990000,
            billing_period="P1M",
        ),
        ProductDefinition(
            id="pro_annual",
            package_identifier="annual",
            package_type="ANNUAL",
            title="Pro Annual",
            description="Pro Annual Subscription - Save 20%",
            price_micros=99990000,
            billing_period="P1Y",
            trial_period="P7D",
        ),
    ]


class MockBillingConfig(BaseModel):
    """Mock billing engine behavior."""

    latency_ms: int = Field(default=0, ge=0, description="Simulated SDK latency per call")
    management_url: str = Field(
        default="https://mock-billing.local/manage", description="Management deep link"
    )
    auto_renew_enabled: bool = Field(default=True, description="Renew entitlements when time advances")
    catalog_empty: bool = Field(default=False, description="Simulate a dashboard with no products")
    products: list[ProductDefinition] = Field(default_factory=default_products)


class EngineConfig(BaseModel):
    """Complete entitlement.yaml configuration."""

    platform: SubscriptionPlatform = Field(
        default=SubscriptionPlatform.MOBILE, description="Runtime platform: mobile-billing or web-billing"
    )
    entitlement_id: str = Field(default="pro", description="Entitlement that unlocks paid features")
    development: bool = Field(default=True, description="Development mode allows the mock fallback")
    use_mock: Optional[bool] = Field(None, description="Force (true) or forbid (false) the mock backend")
    mobile_api_key: Optional[str] = Field(None, description="Mobile billing SDK API key")
    web_api_key: Optional[str] = Field(None, description="Web billing SDK API key")
    storage_key: str = Field(default="subscription-storage", description="Key for persisted state")
    storage_path: Optional[str] = Field(None, description="JSON file for persisted state")
    mock: MockBillingConfig = Field(default_factory=MockBillingConfig)

    @field_validator("platform")
    @classmethod
    def _runtime_platform(cls, value: SubscriptionPlatform) -> SubscriptionPlatform:
        if value == SubscriptionPlatform.MOCK:
            raise ValueError("platform is the runtime platform; use use_mock to select the mock backend")
        return value
