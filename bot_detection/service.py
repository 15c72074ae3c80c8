"""
Fraud Detection Service.

Facade used by the HTTP layer:
- Follower event ingestion with live signal detection
- Risk score and badge lookups
- Fraud dashboard and trend analytics
- Batch analysis control
- Bot-follower notification inbox
"""

import logging
import math
from datetime import timedelta
from typing import List, Optional
from uuid import UUID

from core.clock import ClockProtocol, SystemClock

from .badge import BadgeStateMachine
from .detector import SignalDetector
from .exceptions import BadgeTransitionError, SignalDetectionError
from .orchestrator import BatchOrchestrator
from .repository import FraudDetectionRepository
from .types import (
    BadgeStatus,
    BatchJobRecord,
    BotDetectionSignal,
    BotFollowerNotification,
    FollowerEvent,
    FraudDashboard,
    FraudDashboardFilter,
    FraudTrends,
    ReviewAction,
    RiskScoreResult,
    SuspiciousUserEntry,
    TrendPeriod,
    UserBadgeStatus,
)

logger = logging.getLogger(__name__)


class FraudDetectionService:
    """Entry point for everything outside the batch pipeline."""

    def __init__(
        self,
        repository: FraudDetectionRepository,
        orchestrator: BatchOrchestrator,
        detector: Optional[SignalDetector] = None,
        badge_machine: Optional[BadgeStateMachine] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._clock = clock or SystemClock()
        self._repository = repository
        self._orchestrator = orchestrator
        self._detector = detector or SignalDetector(repository, clock=self._clock)
        self._badge_machine = badge_machine or BadgeStateMachine(clock=self._clock)

    @property
    def orchestrator(self) -> BatchOrchestrator:
        return self._orchestrator

    # =========================================================
    # EVENT INGESTION
    # =========================================================

    async def record_follower_event(self, event: FollowerEvent) -> List[BotDetectionSignal]:
        """
        Persist a follow event and run live detection on it.

        Emitted signals are persisted before returning. If the IP rule
        fails, the rapid-follow signals are still stored and the error
        is re-raised.
        """
        await self._repository.create_follower_event(event)

        window = timedelta(seconds=self._detector.config.rapid_follow_window_seconds)
        recent = await self._repository.get_follower_events_by_user(
            event.follower_id, event.timestamp - window, event.timestamp
        )

        try:
            signals = await self._detector.detect_bot_signals(event, recent)
        except SignalDetectionError as e:
            for signal in e.signals:
                await self._repository.create_bot_signal(signal)
            raise

        for signal in signals:
            await self._repository.create_bot_signal(signal)

        if signals:
            logger.info(
                f"Follower {event.follower_id} produced {len(signals)} signals: "
                f"{[s.signal_type.value for s in signals]}"
            )
        return signals

    # =========================================================
    # RISK SCORE / BADGE
    # =========================================================

    async def get_user_risk_score(self, user_id: UUID) -> Optional[RiskScoreResult]:
        score = await self._repository.get_risk_score_by_user(user_id)
        if score is None:
            return None

        badge = await self._repository.get_badge_status_by_user(user_id)
        return RiskScoreResult(
            score=score,
            badge_status=badge.status if badge else BadgeStatus.NONE,
        )

    async def get_user_badge_status(self, user_id: UUID) -> Optional[UserBadgeStatus]:
        return await self._repository.get_badge_status_by_user(user_id)

    async def activate_badge(self, user_id: UUID) -> UserBadgeStatus:
        """
        Activate an eligible badge.

        Raises:
            BadgeTransitionError: if the user has no eligible badge
        """
        current = await self._repository.get_badge_status_by_user(user_id)
        try:
            activated = self._badge_machine.activate(current)
        except BadgeTransitionError:
            logger.warning(f"Badge activation rejected for user {user_id}")
            raise
        await self._repository.create_or_update_badge_status(activated)
        return activated

    # =========================================================
    # DASHBOARD / ANALYTICS
    # =========================================================

    async def get_fraud_dashboard(
        self,
        dashboard_filter: Optional[FraudDashboardFilter] = None,
    ) -> FraudDashboard:
        f = dashboard_filter or FraudDashboardFilter()
        scores, total = await self._repository.get_users_by_risk_score_range(
            f.min_risk_score, f.max_risk_score, f.page, f.page_size
        )

        users = []
        for score in scores:
            signals = await self._repository.get_bot_signals_by_user(score.user_id, processed=False)
            last_review = await self._repository.get_last_review_by_user(score.user_id)
            users.append(SuspiciousUserEntry(
                user_id=score.user_id,
                risk_score=score.overall_score,
                last_calculated_at=score.last_calculated_at,
                signals=signals,
                last_review_action=last_review.action if last_review else None,
                last_reviewed_at=last_review.reviewed_at if last_review else None,
            ))

        return FraudDashboard(
            users=users,
            total=total,
            page=f.page,
            page_size=f.page_size,
            total_pages=math.ceil(total / f.page_size) if f.page_size > 0 else 0,
        )

    async def get_fraud_trends(self, period: Optional[str] = None) -> FraudTrends:
        trend_period = TrendPeriod.parse(period)
        date_to = self._clock.now()
        date_from = self._clock.days_ago(trend_period.days)

        signals_by_type = await self._repository.get_signals_count_by_type(date_from, date_to)

        return FraudTrends(
            period=trend_period,
            date_from=date_from,
            date_to=date_to,
            total_signals=sum(signals_by_type.values()),
            signals_by_type=signals_by_type,
            new_suspicious_accounts=await self._repository.get_new_suspicious_accounts_count(
                date_from, date_to
            ),
            banned_accounts=await self._repository.get_review_action_count(
                ReviewAction.BANNED, date_from, date_to
            ),
            reviewed_accounts=await self._repository.get_review_action_count(
                ReviewAction.REVIEWED, date_from, date_to
            ),
            average_risk_score=await self._repository.get_average_risk_score(date_from, date_to),
            risk_score_distribution=await self._repository.get_risk_score_distribution(
                date_from, date_to
            ),
            daily_stats=await self._repository.get_daily_fraud_stats(date_from, date_to),
        )

    # =========================================================
    # BATCH ANALYSIS
    # =========================================================

    async def trigger_batch_analysis(self, date_from=None, date_to=None) -> UUID:
        return await self._orchestrator.start_batch_analysis(date_from, date_to)

    def get_batch_job_status(self, job_id: UUID) -> BatchJobRecord:
        return self._orchestrator.get_batch_job_status(job_id)

    async def cancel_batch_analysis(self, job_id: UUID) -> bool:
        return await self._orchestrator.cancel_batch(job_id)

    # =========================================================
    # NOTIFICATIONS
    # =========================================================

    async def get_user_bot_notifications(
        self,
        user_id: UUID,
        unread_only: bool = False,
    ) -> List[BotFollowerNotification]:
        return await self._repository.get_bot_notifications_by_user(user_id, unread_only)

    async def mark_notification_as_read(self, notification_id: UUID) -> bool:
        """Returns False if the notification does not exist."""
        return await self._repository.mark_notification_as_read(
            notification_id, self._clock.now()
        )
