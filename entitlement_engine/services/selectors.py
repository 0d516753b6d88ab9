"""Derived entitlement state for presentation code.

Selectors read a ``StoreSnapshot`` (or the store itself, which exposes
the same attributes) and never trigger I/O.
"""

from typing import Any, Union

from entitlement_engine.services.subscription_store import StoreSnapshot, SubscriptionStore

StoreView = Union[StoreSnapshot, SubscriptionStore]

INACTIVE = "inactive"


def _view(state: StoreView) -> StoreSnapshot:
    return state.snapshot() if isinstance(state, SubscriptionStore) else state


def select_is_pro(state: StoreView) -> bool:
    return _view(state).is_pro


def select_is_free(state: StoreView) -> bool:
    return not _view(state).is_pro


def select_subscription_loading(state: StoreView) -> bool:
    return _view(state).loading


def select_subscription_status(state: StoreView) -> str:
    """Canonical status of the runtime platform's snapshot, or 'inactive'."""
    info = _view(state).active_info
    if info is None:
        return INACTIVE
    return info.status.value


def select_entitlements(state: StoreView) -> list[str]:
    """Identifiers of active entitlements."""
    view = _view(state)
    info = view.active_info
    return [view.entitlement_id] if info is not None and info.is_active else []


def select_has_entitlement(state: StoreView, entitlement_id: str) -> bool:
    return entitlement_id in select_entitlements(state)


def select_subscription_state(state: StoreView) -> dict[str, Any]:
    """Everything a paywall or settings screen needs in one read."""
    view = _view(state)
    return {
        "isPro": view.is_pro,
        "subscriptionStatus": select_subscription_status(view),
        "entitlements": select_entitlements(view),
        "loading": view.loading,
    }
