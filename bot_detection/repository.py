"""
Bot Detection - Repository.

============================================================
PURPOSE
============================================================
Storage interface for the detection pipeline and an
in-memory implementation for development and tests.

The SQLAlchemy implementation lives in sql_repository.py.

============================================================
METHOD GROUPS
============================================================
- Follower events: create, query by follower or by source IP
- Signals: create, query, unprocessed page, mark processed,
  record failed processing passes
- Risk scores: upsert by user, query by score range
- Badges: upsert by user, query
- Admin reviews: append, query
- Notifications: create, query, mark read
- Analytics: counts, averages, distributions and daily
  stats over a window

============================================================
"""

import asyncio
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple
from uuid import UUID

from .types import (
    AdminReview,
    BotDetectionSignal,
    BotFollowerNotification,
    DailyFraudStat,
    FollowerEvent,
    ReviewAction,
    UserBadgeStatus,
    UserRiskScore,
)


RISK_DISTRIBUTION_BUCKETS: Tuple[Tuple[str, int, int], ...] = (
    ("low", 0, 19),
    ("medium", 20, 49),
    ("high", 50, 70),
    ("critical", 71, 100),
)


def risk_bucket(score: int) -> str:
    """Name of the distribution bucket a score falls into."""
    for name, low, high in RISK_DISTRIBUTION_BUCKETS:
        if low <= score <= high:
            return name
    return "critical" if score > 100 else "low"


def daily_fraud_stats(rows: Iterable[Tuple[datetime, UUID]]) -> List[DailyFraudStat]:
    """Group (detected_at, user_id) pairs by UTC day, oldest day first."""
    signals: Dict[date, int] = {}
    accounts: Dict[date, Set[UUID]] = {}
    for detected_at, user_id in rows:
        day = detected_at.astimezone(timezone.utc).date()
        signals[day] = signals.get(day, 0) + 1
        accounts.setdefault(day, set()).add(user_id)
    return [
        DailyFraudStat(day=day, new_signals=signals[day], new_suspicious_accounts=len(accounts[day]))
        for day in sorted(signals)
    ]


# ============================================================
# INTERFACE
# ============================================================


class FraudDetectionRepository(Protocol):
    """Persistence operations used by the detection pipeline."""

    # Follower events
    async def create_follower_event(self, event: FollowerEvent) -> None: ...

    async def get_follower_events_by_user(
        self, user_id: UUID, date_from: datetime, date_to: datetime
    ) -> List[FollowerEvent]: ...

    async def get_follower_events_by_ip(
        self, ip: str, date_from: datetime, date_to: datetime
    ) -> List[FollowerEvent]: ...

    # Signals
    async def create_bot_signal(self, signal: BotDetectionSignal) -> None: ...

    async def get_bot_signals_by_user(
        self, user_id: UUID, processed: Optional[bool] = None
    ) -> List[BotDetectionSignal]: ...

    async def get_unprocessed_bot_signals(
        self, limit: int, max_attempts: Optional[int] = None
    ) -> List[BotDetectionSignal]: ...

    async def mark_bot_signal_as_processed(self, signal_id: UUID) -> None: ...

    async def mark_bot_signals_as_processed(self, signal_ids: Iterable[UUID]) -> None: ...

    async def record_failed_processing(self, signal_ids: Iterable[UUID]) -> None: ...
    # Risk scores
    async def create_or_update_risk_score(self, score: UserRiskScore) -> None: ...

    async def get_risk_score_by_user(self, user_id: UUID) -> Optional[UserRiskScore]: ...

    async def get_users_by_risk_score_range(
        self, min_score: int, max_score: int, page: int, page_size: int
    ) -> Tuple[List[UserRiskScore], int]: ...

    # Badges
    async def create_or_update_badge_status(self, status: UserBadgeStatus) -> None: ...

    async def get_badge_status_by_user(self, user_id: UUID) -> Optional[UserBadgeStatus]: ...

    # Admin reviews
    async def create_admin_review(self, review: AdminReview) -> None: ...

    async def get_admin_reviews_by_user(
        self, user_id: UUID, limit: int = 50
    ) -> List[AdminReview]: ...

    async def get_last_review_by_user(self, user_id: UUID) -> Optional[AdminReview]: ...

    # Notifications
    async def create_bot_notification(self, notification: BotFollowerNotification) -> None: ...

    async def get_bot_notifications_by_user(
        self, user_id: UUID, unread_only: bool = False
    ) -> List[BotFollowerNotification]: ...

    async def mark_notification_as_read(self, notification_id: UUID, read_at: datetime) -> bool: ...

    # Analytics
    async def get_signals_count_by_type(
        self, date_from: datetime, date_to: datetime
    ) -> Dict[str, int]: ...

    async def get_new_suspicious_accounts_count(
        self, date_from: datetime, date_to: datetime
    ) -> int: ...

    async def get_review_action_count(
        self, action: ReviewAction, date_from: datetime, date_to: datetime
    ) -> int: ...

    async def get_average_risk_score(self, date_from: datetime, date_to: datetime) -> float: ...

    async def get_risk_score_distribution(
        self, date_from: datetime, date_to: datetime
    ) -> Dict[str, int]: ...

    async def get_daily_fraud_stats(
        self, date_from: datetime, date_to: datetime
    ) -> List[DailyFraudStat]: ...

# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================


class InMemoryFraudRepository:
    """
    Dict-backed repository.

    All state lives in this process and is guarded by one asyncio
    lock. Records are immutable, so returning them is safe.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._events: Dict[UUID, FollowerEvent] = {}
        self._signals: Dict[UUID, BotDetectionSignal] = {}
        self._scores: Dict[UUID, UserRiskScore] = {}
        self._badges: Dict[UUID, UserBadgeStatus] = {}
        self._reviews: List[AdminReview] = []
        self._notifications: Dict[UUID, BotFollowerNotification] = {}

    # --------------------------------------------------------
    # FOLLOWER EVENTS
    # --------------------------------------------------------

    async def create_follower_event(self, event: FollowerEvent) -> None:
        async with self._lock:
            self._events[event.id] = event

    async def get_follower_events_by_user(
        self, user_id: UUID, date_from: datetime, date_to: datetime
    ) -> List[FollowerEvent]:
        async with self._lock:
            events = [
                e for e in self._events.values()
                if e.follower_id == user_id and date_from <= e.timestamp <= date_to
            ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_follower_events_by_ip(
        self, ip: str, date_from: datetime, date_to: datetime
    ) -> List[FollowerEvent]:
        async with self._lock:
            events = [
                e for e in self._events.values()
                if e.source_ip_address == ip and date_from <= e.timestamp <= date_to
            ]
        return sorted(events, key=lambda e: e.timestamp)

    # --------------------------------------------------------
    # SIGNALS
    # --------------------------------------------------------

    async def create_bot_signal(self, signal: BotDetectionSignal) -> None:
        async with self._lock:
            self._signals[signal.id] = signal

    async def get_bot_signals_by_user(
        self, user_id: UUID, processed: Optional[bool] = None
    ) -> List[BotDetectionSignal]:
        async with self._lock:
            signals = [
                s for s in self._signals.values()
                if s.user_id == user_id and (processed is None or s.processed == processed)
            ]
        return sorted(signals, key=lambda s: s.detected_at, reverse=True)

    async def get_unprocessed_bot_signals(
        self, limit: int, max_attempts: Optional[int] = None
    ) -> List[BotDetectionSignal]:
        async with self._lock:
            pending = [
                s for s in self._signals.values()
                if not s.processed
                and (max_attempts is None or s.processing_attempts < max_attempts)
            ]
        pending.sort(key=lambda s: (s.processing_attempts, s.detected_at))
        return pending[:limit]

    async def mark_bot_signal_as_processed(self, signal_id: UUID) -> None:
        await self.mark_bot_signals_as_processed([signal_id])

    async def mark_bot_signals_as_processed(self, signal_ids: Iterable[UUID]) -> None:
        async with self._lock:
            for signal_id in signal_ids:
                signal = self._signals.get(signal_id)
                if signal is not None and not signal.processed:
                    self._signals[signal_id] = replace(signal, processed=True)

    async def record_failed_processing(self, signal_ids: Iterable[UUID]) -> None:
        async with self._lock:
            for signal_id in signal_ids:
                signal = self._signals.get(signal_id)
                if signal is not None and not signal.processed:
                    self._signals[signal_id] = replace(
                        signal, processing_attempts=signal.processing_attempts + 1
                    )

    # --------------------------------------------------------
    # RISK SCORES
    # --------------------------------------------------------

    async def create_or_update_risk_score(self, score: UserRiskScore) -> None:
        async with self._lock:
            existing = self._scores.get(score.user_id)
            if existing is not None:
                score = replace(score, id=existing.id)
            self._scores[score.user_id] = score

    async def get_risk_score_by_user(self, user_id: UUID) -> Optional[UserRiskScore]:
        async with self._lock:
            return self._scores.get(user_id)

    async def get_users_by_risk_score_range(
        self, min_score: int, max_score: int, page: int, page_size: int
    ) -> Tuple[List[UserRiskScore], int]:
        async with self._lock:
            matching = [
                s for s in self._scores.values()
                if min_score <= s.overall_score <= max_score
            ]
        matching.sort(key=lambda s: (-s.overall_score, s.last_calculated_at))
        offset = max(0, (page - 1) * page_size)
        return matching[offset:offset + page_size], len(matching)

    # --------------------------------------------------------
    # BADGES
    # --------------------------------------------------------

    async def create_or_update_badge_status(self, status: UserBadgeStatus) -> None:
        async with self._lock:
            existing = self._badges.get(status.user_id)
            if existing is not None:
                status = replace(status, id=existing.id)
            self._badges[status.user_id] = status

    async def get_badge_status_by_user(self, user_id: UUID) -> Optional[UserBadgeStatus]:
        async with self._lock:
            return self._badges.get(user_id)

    # --------------------------------------------------------
    # ADMIN REVIEWS
    # --------------------------------------------------------

    async def create_admin_review(self, review: AdminReview) -> None:
        async with self._lock:
            self._reviews.append(review)

    async def get_admin_reviews_by_user(
        self, user_id: UUID, limit: int = 50
    ) -> List[AdminReview]:
        async with self._lock:
            reviews = [r for r in self._reviews if r.user_id == user_id]
        reviews.sort(key=lambda r: r.reviewed_at, reverse=True)
        return reviews[:limit]

    async def get_last_review_by_user(self, user_id: UUID) -> Optional[AdminReview]:
        reviews = await self.get_admin_reviews_by_user(user_id, limit=1)
        return reviews[0] if reviews else None

    # --------------------------------------------------------
    # NOTIFICATIONS
    # --------------------------------------------------------

    async def create_bot_notification(self, notification: BotFollowerNotification) -> None:
        async with self._lock:
            self._notifications[notification.id] = notification

    async def get_bot_notifications_by_user(
        self, user_id: UUID, unread_only: bool = False
    ) -> List[BotFollowerNotification]:
        async with self._lock:
            notifications = [
                n for n in self._notifications.values()
                if n.user_id == user_id and not (unread_only and n.is_read)
            ]
        return sorted(notifications, key=lambda n: n.sent_at, reverse=True)

    async def mark_notification_as_read(self, notification_id: UUID, read_at: datetime) -> bool:
        async with self._lock:
            notification = self._notifications.get(notification_id)
            if notification is None:
                return False
            if notification.read_at is None:
                self._notifications[notification_id] = replace(notification, read_at=read_at)
            return True

    # --------------------------------------------------------
    # ANALYTICS
    # --------------------------------------------------------

    async def get_signals_count_by_type(
        self, date_from: datetime, date_to: datetime
    ) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        async with self._lock:
            for s in self._signals.values():
                if date_from <= s.detected_at <= date_to:
                    key = getattr(s.signal_type, "value", s.signal_type)
                    counts[key] = counts.get(key, 0) + 1
        return counts

    async def get_new_suspicious_accounts_count(
        self, date_from: datetime, date_to: datetime
    ) -> int:
        async with self._lock:
            return len({
                s.user_id for s in self._signals.values()
                if date_from <= s.detected_at <= date_to
            })

    async def get_review_action_count(
        self, action: ReviewAction, date_from: datetime, date_to: datetime
    ) -> int:
        async with self._lock:
            return sum(
                1 for r in self._reviews
                if r.action == action and date_from <= r.reviewed_at <= date_to
            )

    async def get_average_risk_score(self, date_from: datetime, date_to: datetime) -> float:
        async with self._lock:
            scores = [
                s.overall_score for s in self._scores.values()
                if date_from <= s.last_calculated_at <= date_to
            ]
        if not scores:
            return 0.0
        return sum(scores) / len(scores)

    async def get_risk_score_distribution(
        self, date_from: datetime, date_to: datetime
    ) -> Dict[str, int]:
        distribution = {name: 0 for name, _, _ in RISK_DISTRIBUTION_BUCKETS}
        async with self._lock:
            for s in self._scores.values():
                if date_from <= s.last_calculated_at <= date_to:
                    distribution[risk_bucket(s.overall_score)] += 1
        return distribution

    async def get_daily_fraud_stats(
        self, date_from: datetime, date_to: datetime
    ) -> List[DailyFraudStat]:
        async with self._lock:
            rows = [
                (s.detected_at, s.user_id) for s in self._signals.values()
                if date_from <= s.detected_at <= date_to
            ]
        return daily_fraud_stats(rows)
