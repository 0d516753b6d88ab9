"""Tests for structured logging functionality.

Tests logging configuration, context binding and the custom processors.
"""

import os

import pytest
import structlog

from entitlement_engine.logging_config import (
    add_app_context,
    add_log_level,
    bind_context,
    bound_context,
    clear_context,
    configure_logging,
    configure_logging_from_env,
    drop_debug_in_production,
    get_logger,
    is_debug_mode,
    mask_billing_secrets,
    render_enum_values,
    shorten_anonymous_ids,
    unbind_context,
)
from entitlement_engine.models import LifecycleEventType, SubscriptionPlatform


@pytest.fixture(scope="module")
def setup_logging():
    """Configure logging for all tests in this module."""
    log_level = os.getenv("LOG_LEVEL", "INFO")
    log_format = os.getenv("LOG_FORMAT", "console")
    configure_logging(log_level=log_level, json_format=log_format.lower() == "json")
    yield


@pytest.fixture(autouse=True)
def cleanup_context():
    """Ensure context is cleared before and after each test."""
    clear_context()
    yield
    clear_context()


class TestProcessors:
    """Test the custom processors."""

    def test_app_context(self):
        """Test that every event is tagged with the application name."""
        event = add_app_context(None, "info", {"event": "store_ready"})
        assert event["app"] == "entitlement-engine"

    def test_log_level_added(self):
        """Test that the level is derived from the method name."""
        assert add_log_level(None, "warning", {})["level"] == "WARNING"
        assert add_log_level(None, "warning", {"level": "custom"})["level"] == "custom"

    def test_debug_dropped_outside_debug_mode(self, monkeypatch):
        """Test that debug events are dropped unless LOG_LEVEL is DEBUG."""
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        assert not is_debug_mode()
        with pytest.raises(structlog.DropEvent):
            drop_debug_in_production(None, "debug", {})
        assert drop_debug_in_production(None, "info", {"event": "x"}) == {"event": "x"}

    def test_debug_kept_in_debug_mode(self, monkeypatch):
        """Test that debug events pass in debug mode."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert drop_debug_in_production(None, "debug", {"event": "x"}) == {"event": "x"}

    def test_enums_rendered_by_value(self):
        """Test that enum fields are logged as plain values."""
        event = render_enum_values(
            None,
            "info",
            {"platform": SubscriptionPlatform.WEB, "lifecycle_event": LifecycleEventType.TRIAL_STARTED, "count": 2},
        )
        assert event == {"platform": "web-billing", "lifecycle_event": "trial-started", "count": 2}

    def test_api_keys_masked(self):
        """Test that only the key prefix survives."""
        event = mask_billing_secrets(None, "info", {"api_key": "appl_AbCdEf123", "web_api_key": "secret"})
        assert event == {"api_key": "appl_***", "web_api_key": "***"}

    def test_missing_api_key_untouched(self):
        """Test that an absent key is logged as is."""
        assert mask_billing_secrets(None, "info", {"api_key": None}) == {"api_key": None}

    def test_anonymous_ids_shortened(self):
        """Test that anonymous app user ids are truncated and real ids kept."""
        anonymous = "$RCAnonymousID:" + "a" * 32
        event = shorten_anonymous_ids(None, "info", {"app_user_id": anonymous, "user_id": "user-1"})
        assert event["app_user_id"] == anonymous[:24] + "..."
        assert event["user_id"] == "user-1"


class TestContextualLogging:
    """Test context binding."""

    def test_bind_and_unbind(self, setup_logging):
        """Test that bound values appear in the context and can be removed."""
        bind_context(user_id="user-456", platform="mobile-billing")
        assert structlog.contextvars.get_contextvars() == {"user_id": "user-456", "platform": "mobile-billing"}

        unbind_context("platform")
        assert structlog.contextvars.get_contextvars() == {"user_id": "user-456"}

    def test_clear_context(self, setup_logging):
        """Test that clear removes every bound value."""
        bind_context(request_id="req-1")
        clear_context()

        assert structlog.contextvars.get_contextvars() == {}

    def test_bound_context_restores(self, setup_logging):
        """Test that bound_context only lasts for its block."""
        bind_context(request_id="req-1")

        with bound_context(request_id="req-2", control_operation="purchase"):
            assert structlog.contextvars.get_contextvars() == {"request_id": "req-2", "control_operation": "purchase"}

        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1"}


class TestLoggerUsage:
    """Test logging calls used across the engine."""

    def test_get_logger_has_methods(self, setup_logging):
        """Test that loggers expose the standard methods."""
        logger = get_logger("test.logger")
        for method in ("debug", "info", "warning", "error", "critical"):
            assert callable(getattr(logger, method))

    def test_structured_event(self, setup_logging):
        """Test logging a lifecycle event with structured fields."""
        logger = get_logger("test.events")
        logger.info(
            "lifecycle_event_detected",
            lifecycle_event="renewed",
            platform="mock",
            product_id="pro_monthly",
        )

    def test_exception_logging(self, setup_logging):
        """Test logging an exception with traceback."""
        logger = get_logger("test.errors")
        try:
            raise ConnectionError("billing backend unreachable")
        except ConnectionError as e:
            logger.error("packages_fetch_failed", error=str(e), error_type=type(e).__name__, exc_info=True)

    def test_json_format(self):
        """Test that JSON output can be configured."""
        configure_logging(log_level="INFO", json_format=True, include_timestamp=False)
        get_logger("test.json").info("store_ready", is_pro=False)

    def test_configure_from_environment(self, monkeypatch):
        """Test that LOG_LEVEL and LOG_FORMAT drive the configuration."""
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("LOG_FORMAT", "console")

        configure_logging_from_env()

        get_logger("test.env").debug("store_initializing", platform=SubscriptionPlatform.MOBILE)
