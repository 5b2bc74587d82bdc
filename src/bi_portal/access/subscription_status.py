"""
Subscription status derivation.

Turns a raw billing record into a SubscriptionStatusSnapshot. The derivation
is a pure function of (record, now); the resolver wraps it with a bounded,
retried fetch that fails closed.

Precedence, first match wins:
    1. master-managed        -> never blocked
    2. trialing              -> blocked when no trial day remains
    3. active                -> subscribed
    4. canceled              -> blocked when the grace period is used up
    5. past_due / expired / no record -> blocked, no active subscription
"""

import asyncio
import math
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from bi_portal.access.models import (
    BlockReason,
    SubscriptionRecord,
    SubscriptionState,
    SubscriptionStatusSnapshot,
)
from bi_portal.access.providers import SubscriptionStore
from bi_portal.monitoring.prometheus_metrics import PrometheusMetrics, get_metrics
from bi_portal.utils.logger import get_logger
from bi_portal.utils.retry import RetryConfig, call_with_backoff


logger = get_logger(__name__)

DAY_SECONDS = 86400
DEFAULT_GRACE_PERIOD_DAYS = 30
DEFAULT_TRIAL_DAYS = 7


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def trial_days_remaining(trial_ends_at: Optional[datetime], now: datetime) -> int:
    """Whole days left in a trial; a partial day counts as one."""
    if trial_ends_at is None:
        return 0
    seconds = (_aware(trial_ends_at) - _aware(now)).total_seconds()
    return max(0, math.ceil(seconds / DAY_SECONDS))


def grace_days_remaining(canceled_at: Optional[datetime], now: datetime,
                         grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS) -> int:
    """Days left before a canceled subscription stops granting access."""
    if canceled_at is None:
        return 0
    seconds = (_aware(now) - _aware(canceled_at)).total_seconds()
    days_since = max(0, math.floor(seconds / DAY_SECONDS))
    return max(0, grace_period_days - days_since)


def derive_snapshot(
    record: Optional[SubscriptionRecord],
    now: datetime,
    grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS,
    default_trial_days: int = DEFAULT_TRIAL_DAYS,
) -> SubscriptionStatusSnapshot:
    """
    Derive the normalized status snapshot for a subscription record.

    Args:
        record: Raw record, or None when the user has no subscription
        now: Evaluation instant
        grace_period_days: Access window after cancellation
        default_trial_days: Trial length applied from ``created_at`` when the
            record carries no trial end

    Returns:
        SubscriptionStatusSnapshot
    """
    if record is None:
        return SubscriptionStatusSnapshot(
            is_access_blocked=True,
            block_reason=BlockReason.NO_ACTIVE_SUBSCRIPTION,
        )

    state = SubscriptionState.parse(record.status)
    if state is None:
        logger.warning(f"Unknown subscription status {record.status!r}, treating as expired")
        state = SubscriptionState.EXPIRED

    if record.is_master_managed:
        return SubscriptionStatusSnapshot(
            subscribed=True,
            is_access_blocked=False,
            is_master_managed=True,
            status=state,
            plan_key=record.plan_key,
        )

    if state == SubscriptionState.TRIALING:
        trial_end = record.trial_ends_at
        if trial_end is None and record.created_at is not None:
            trial_end = _aware(record.created_at) + timedelta(days=default_trial_days)

        remaining = trial_days_remaining(trial_end, now)
        blocked = remaining == 0
        return SubscriptionStatusSnapshot(
            is_trialing=True,
            trial_days_remaining=remaining,
            is_access_blocked=blocked,
            block_reason=BlockReason.TRIAL_EXPIRED if blocked else None,
            status=state,
            plan_key=record.plan_key,
        )

    if state == SubscriptionState.ACTIVE:
        return SubscriptionStatusSnapshot(
            subscribed=True,
            is_access_blocked=False,
            status=state,
            plan_key=record.plan_key,
        )

    if state == SubscriptionState.CANCELED:
        grace = grace_days_remaining(record.canceled_at, now, grace_period_days)
        blocked = grace == 0
        return SubscriptionStatusSnapshot(
            grace_period_days_remaining=grace,
            is_access_blocked=blocked,
            block_reason=BlockReason.GRACE_PERIOD_EXPIRED if blocked else None,
            status=state,
            plan_key=record.plan_key,
        )

    # past_due and expired
    return SubscriptionStatusSnapshot(
        is_access_blocked=True,
        block_reason=BlockReason.NO_ACTIVE_SUBSCRIPTION,
        status=state,
        plan_key=record.plan_key,
    )


class SubscriptionStatusResolver:
    """
    Loads a user's subscription record and derives its snapshot.

    ``resolve`` never raises for fetch problems: transient failures are
    retried with exponential backoff inside ``timeout`` seconds, after which
    the unavailable snapshot (blocked, STATUS_UNAVAILABLE) is returned.
    Cancellation of the calling task propagates.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        timeout: float = 10.0,
        grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS,
        default_trial_days: int = DEFAULT_TRIAL_DAYS,
        retry_config: Optional[RetryConfig] = None,
        clock: Callable[[], datetime] = utcnow,
        metrics: Optional[PrometheusMetrics] = None,
    ):
        self.store = store
        self.timeout = timeout
        self.grace_period_days = grace_period_days
        self.default_trial_days = default_trial_days
        self.retry_config = retry_config or RetryConfig()
        self.clock = clock
        self.metrics = metrics or get_metrics()

    async def fetch(self, user_id: str) -> Optional[SubscriptionRecord]:
        """Read the record with retries; raises once the time budget is spent."""
        return await asyncio.wait_for(
            call_with_backoff(self.store.get_subscription, user_id, config=self.retry_config),
            timeout=self.timeout,
        )

    async def resolve(self, user_id: str) -> SubscriptionStatusSnapshot:
        """
        Resolve the current snapshot for ``user_id``.

        Returns:
            SubscriptionStatusSnapshot, the unavailable one on fetch failure
        """
        start_time = time.perf_counter()

        try:
            record = await self.fetch(user_id)
        except asyncio.TimeoutError:
            logger.warning(
                f"Subscription status for user {user_id} not resolved within {self.timeout}s"
            )
            self.metrics.track_fetch_failure("subscription")
            self.metrics.track_snapshot_resolution(time.perf_counter() - start_time, "unavailable")
            return SubscriptionStatusSnapshot.unavailable()
        except Exception as e:
            logger.error(f"Failed to load subscription for user {user_id}: {e}")
            self.metrics.track_fetch_failure("subscription")
            self.metrics.track_snapshot_resolution(time.perf_counter() - start_time, "unavailable")
            return SubscriptionStatusSnapshot.unavailable()

        snapshot = derive_snapshot(
            record,
            self.clock(),
            grace_period_days=self.grace_period_days,
            default_trial_days=self.default_trial_days,
        )
        self.metrics.track_snapshot_resolution(time.perf_counter() - start_time, "resolved")

        logger.debug(
            f"Resolved subscription for user {user_id}: status={snapshot.status}, "
            f"blocked={snapshot.is_access_blocked}, reason={snapshot.block_reason}"
        )
        return snapshot
