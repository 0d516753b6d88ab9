"""Adapter selection for the runtime platform."""

from typing import Optional

from entitlement_engine.adapters.base import SubscriptionService
from entitlement_engine.adapters.mobile import MobileSubscriptionService
from entitlement_engine.adapters.mock import MockSubscriptionService
from entitlement_engine.adapters.sdk import MobilePurchasesSDK, WebPurchasesSDK
from entitlement_engine.adapters.web import WebSubscriptionService
from entitlement_engine.config import Config, ConfigurationError, get_config
from entitlement_engine.logging_config import get_logger
from entitlement_engine.models import SubscriptionPlatform
from entitlement_engine.services.mock_billing import MockBillingEngine

logger = get_logger(__name__)


def create_subscription_service(
    config: Optional[Config] = None,
    mobile_sdk: Optional[MobilePurchasesSDK] = None,
    web_sdk: Optional[WebPurchasesSDK] = None,
    mock_engine: Optional[MockBillingEngine] = None,
) -> SubscriptionService:
    """Build the adapter that serves the configured runtime platform.

    The mock backend is used when configuration asks for it (explicitly, or
    development mode without an API key). Production builds without a key
    are a configuration error rather than a silent fallback.

    Args:
        config: Configuration instance. If not provided, uses global config.
        mobile_sdk: Mobile purchases SDK for the mobile-billing platform
        web_sdk: Web purchases SDK for the web-billing platform
        mock_engine: Engine to reuse when the mock backend is selected

    Raises:
        ConfigurationError: If a real backend is required but unavailable
    """
    config = config or get_config()

    if config.use_mock:
        engine = mock_engine or MockBillingEngine(config.mock_settings, entitlement_id=config.entitlement_id)
        logger.info(
            "subscription_service_selected",
            backend="mock",
            runtime_platform=config.platform.value,
            development=config.engine.development,
        )
        return MockSubscriptionService(engine, config.entitlement_id)

    if not config.api_key:
        env_name = (
            "REVENUECAT_WEB_API_KEY" if config.platform == SubscriptionPlatform.WEB else "REVENUECAT_MOBILE_API_KEY"
        )
        raise ConfigurationError(
            f"No API key configured for {config.platform.value}. "
            f"Set {env_name} or enable development mode to use the mock backend"
        )

    if config.platform == SubscriptionPlatform.WEB:
        logger.info(
            "subscription_service_selected",
            backend="web",
            runtime_platform=config.platform.value,
            api_key=config.api_key,
        )
        return WebSubscriptionService(web_sdk, config.api_key, config.entitlement_id)

    if mobile_sdk is None:
        raise ConfigurationError("A mobile purchases SDK is required for the mobile-billing platform")
    logger.info(
        "subscription_service_selected",
        backend="mobile",
        runtime_platform=config.platform.value,
        api_key=config.api_key,
    )
    return MobileSubscriptionService(mobile_sdk, config.api_key, config.entitlement_id)
