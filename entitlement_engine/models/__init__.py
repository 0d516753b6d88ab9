"""Pydantic models for canonical state, SDK payloads and configuration."""

# Canonical subscription models
from .subscription import (
    BillingPeriod,
    PricingPackage,
    SubscriptionInfo,
    SubscriptionPlatform,
    SubscriptionStatus,
)

# Lifecycle events
from .events import (
    LifecycleEvent,
    LifecycleEventType,
)

# Catalog and configuration models
from .product import (
    EngineConfig,
    MockBillingConfig,
    ProductDefinition,
    default_products,
)

# SDK payload models
from .customer_info import (
    CustomerInfo,
    EntitlementInfo,
    EntitlementInfos,
    Offering,
    Offerings,
    Package,
    StoreProduct,
    WebBillingPrice,
    WebBillingProduct,
)

__all__ = [
    # Canonical
    "BillingPeriod",
    "PricingPackage",
    "SubscriptionInfo",
    "SubscriptionPlatform",
    "SubscriptionStatus",
    # Events
    "LifecycleEvent",
    "LifecycleEventType",
    # Configuration
    "EngineConfig",
    "MockBillingConfig",
    "ProductDefinition",
    "default_products",
    # SDK payloads
    "CustomerInfo",
    "EntitlementInfo",
    "EntitlementInfos",
    "Offering",
    "Offerings",
    "Package",
    "StoreProduct",
    "WebBillingPrice",
    "WebBillingProduct",
]
