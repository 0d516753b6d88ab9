"""Lifecycle detection - classifies the transition between two snapshots.

Rules are evaluated in order and the first match wins:

1. No previous snapshot and the current one is active: activated
2. Active to inactive: expired (status expired) or cancelled
3. Both active with a different product: upgraded or downgraded by
   billing period rank (trial < monthly < annual < lifetime)
4. Trial to paid on the same product: trial-converted
5. Inactive to trialing: trial-started
6. Both active with a new expiration date: renewed
7. Inactive to active (paid): activated
8. Anything else: no event

Rule 7 is a deliberate extension. Without it a customer who resubscribes
after an expiry or cancellation (inactive to active, paid) falls through to
rule 8 and produces no event; with it the reactivation is reported as
activated, the same as a first purchase.
"""

from typing import Callable, Optional

from entitlement_engine.models import (
    BillingPeriod,
    LifecycleEvent,
    LifecycleEventType,
    SubscriptionInfo,
    SubscriptionStatus,
)
from entitlement_engine.utils.billing_period import infer_billing_period, rank_billing_period

PeriodResolver = Callable[[Optional[str]], Optional[BillingPeriod]]


def _rank(info: SubscriptionInfo, period_of: PeriodResolver) -> int:
    period = period_of(info.product_id) or infer_billing_period(info.product_id)
    return rank_billing_period(period, is_trial=info.is_trial)


def detect(
    previous: Optional[SubscriptionInfo],
    current: SubscriptionInfo,
    period_of: Optional[PeriodResolver] = None,
) -> Optional[LifecycleEvent]:
    """Classify the change from ``previous`` to ``current``.

    Pure and deterministic: the same inputs always give the same event.

    Args:
        previous: Snapshot before the change, None on first commit
        current: Snapshot after the change
        period_of: Resolves a product id to its billing period; product ids
            it does not know fall back to inference from the id text

    Returns:
        The detected event, or None when nothing lifecycle-relevant changed
    """
    resolve = period_of or infer_billing_period

    def event(kind: LifecycleEventType) -> LifecycleEvent:
        return LifecycleEvent(event=kind, previous=previous, current=current)

    if previous is None:
        return event(LifecycleEventType.ACTIVATED) if current.is_active else None

    if previous.is_active and not current.is_active:
        if current.status == SubscriptionStatus.EXPIRED:
            return event(LifecycleEventType.EXPIRED)
        return event(LifecycleEventType.CANCELLED)

    if previous.is_active and current.is_active and previous.product_id != current.product_id:
        if _rank(current, resolve) > _rank(previous, resolve):
            return event(LifecycleEventType.UPGRADED)
        return event(LifecycleEventType.DOWNGRADED)

    if previous.is_trial and current.is_active and not current.is_trial:
        return event(LifecycleEventType.TRIAL_CONVERTED)

    if not previous.is_active and current.is_trial:
        return event(LifecycleEventType.TRIAL_STARTED)

    if previous.is_active and current.is_active and previous.expiration_date != current.expiration_date:
        return event(LifecycleEventType.RENEWED)

    if not previous.is_active and current.is_active:
        return event(LifecycleEventType.ACTIVATED)

    return None
