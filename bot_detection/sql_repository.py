"""
Bot Detection - SQLAlchemy Repository.

============================================================
PURPOSE
============================================================
FraudDetectionRepository backed by the async SQLAlchemy
engine in database.engine.

Every call runs in its own transaction. Upserts are
select-then-update keyed by user_id, which keeps the code
portable between PostgreSQL and SQLite.

Failures raise RepositoryError.

============================================================
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.engine import DatabasePersistenceError, get_session_factory, transaction_scope

from .exceptions import RepositoryError
from .models import (
    AdminReviewModel,
    BotDetectionSignalModel,
    BotFollowerNotificationModel,
    FollowerEventModel,
    UserBadgeStatusModel,
    UserRiskScoreModel,
)
from .repository import RISK_DISTRIBUTION_BUCKETS, daily_fraud_stats, risk_bucket
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


logger = logging.getLogger(__name__)


class SqlAlchemyFraudRepository:
    """
    Repository for bot detection persistence operations.

    ============================================================
    USAGE
    ============================================================
        repository = SqlAlchemyFraudRepository(get_session_factory())
        await repository.create_bot_signal(signal)

    ============================================================
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        """
        Initialize repository.

        Args:
            session_factory: Async session factory (defaults to the
                shared factory from database.engine)
        """
        self._session_factory = session_factory or get_session_factory()

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with transaction_scope(self._session_factory) as session:
                yield session
        except DatabasePersistenceError as e:
            logger.error(f"Repository operation {operation} failed: {e}")
            raise RepositoryError(f"{operation} failed: {e}", operation=operation) from e

    # --------------------------------------------------------
    # FOLLOWER EVENTS
    # --------------------------------------------------------

    async def create_follower_event(self, event: FollowerEvent) -> None:
        async with self._transaction("create_follower_event") as session:
            session.add(FollowerEventModel.from_domain(event))

    async def get_follower_events_by_user(
        self, user_id: UUID, date_from: datetime, date_to: datetime
    ) -> List[FollowerEvent]:
        async with self._transaction("get_follower_events_by_user") as session:
            result = await session.execute(
                select(FollowerEventModel)
                .where(and_(
                    FollowerEventModel.follower_id == user_id,
                    FollowerEventModel.timestamp >= date_from,
                    FollowerEventModel.timestamp <= date_to,
                ))
                .order_by(FollowerEventModel.timestamp)
            )
            return [row.to_domain() for row in result.scalars().all()]

    async def get_follower_events_by_ip(
        self, ip: str, date_from: datetime, date_to: datetime
    ) -> List[FollowerEvent]:
        async with self._transaction("get_follower_events_by_ip") as session:
            result = await session.execute(
                select(FollowerEventModel)
                .where(and_(
                    FollowerEventModel.source_ip_address == ip,
                    FollowerEventModel.timestamp >= date_from,
                    FollowerEventModel.timestamp <= date_to,
                ))
                .order_by(FollowerEventModel.timestamp)
            )
            return [row.to_domain() for row in result.scalars().all()]

    # --------------------------------------------------------
    # SIGNALS
    # --------------------------------------------------------

    async def create_bot_signal(self, signal: BotDetectionSignal) -> None:
        async with self._transaction("create_bot_signal") as session:
            session.add(BotDetectionSignalModel.from_domain(signal))

    async def get_bot_signals_by_user(
        self, user_id: UUID, processed: Optional[bool] = None
    ) -> List[BotDetectionSignal]:
        query = select(BotDetectionSignalModel).where(BotDetectionSignalModel.user_id == user_id)
        if processed is not None:
            query = query.where(BotDetectionSignalModel.processed == processed)
        query = query.order_by(desc(BotDetectionSignalModel.detected_at))

        async with self._transaction("get_bot_signals_by_user") as session:
            result = await session.execute(query)
            return [row.to_domain() for row in result.scalars().all()]

    async def get_unprocessed_bot_signals(
        self, limit: int, max_attempts: Optional[int] = None
    ) -> List[BotDetectionSignal]:
        query = select(BotDetectionSignalModel).where(BotDetectionSignalModel.processed.is_(False))
        if max_attempts is not None:
            query = query.where(BotDetectionSignalModel.processing_attempts < max_attempts)
        query = query.order_by(
            BotDetectionSignalModel.processing_attempts,
            BotDetectionSignalModel.detected_at,
        ).limit(limit)

        async with self._transaction("get_unprocessed_bot_signals") as session:
            result = await session.execute(query)
            return [row.to_domain() for row in result.scalars().all()]

    async def mark_bot_signal_as_processed(self, signal_id: UUID) -> None:
        await self.mark_bot_signals_as_processed([signal_id])

    async def mark_bot_signals_as_processed(self, signal_ids: Iterable[UUID]) -> None:
        ids = list(signal_ids)
        if not ids:
            return
        async with self._transaction("mark_bot_signals_as_processed") as session:
            await session.execute(
                update(BotDetectionSignalModel)
                .where(BotDetectionSignalModel.id.in_(ids))
                .values(processed=True)
            )

    async def record_failed_processing(self, signal_ids: Iterable[UUID]) -> None:
        ids = list(signal_ids)
        if not ids:
            return
        async with self._transaction("record_failed_processing") as session:
            await session.execute(
                update(BotDetectionSignalModel)
                .where(BotDetectionSignalModel.id.in_(ids))
                .where(BotDetectionSignalModel.processed.is_(False))
                .values(processing_attempts=BotDetectionSignalModel.processing_attempts + 1)
            )

    # --------------------------------------------------------
    # RISK SCORES
    # --------------------------------------------------------

    async def create_or_update_risk_score(self, score: UserRiskScore) -> None:
        async with self._transaction("create_or_update_risk_score") as session:
            result = await session.execute(
                select(UserRiskScoreModel).where(UserRiskScoreModel.user_id == score.user_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                session.add(UserRiskScoreModel.from_domain(score))
            else:
                row.apply(score)

    async def get_risk_score_by_user(self, user_id: UUID) -> Optional[UserRiskScore]:
        async with self._transaction("get_risk_score_by_user") as session:
            result = await session.execute(
                select(UserRiskScoreModel).where(UserRiskScoreModel.user_id == user_id)
            )
            row = result.scalar_one_or_none()
            return row.to_domain() if row else None

    async def get_users_by_risk_score_range(
        self, min_score: int, max_score: int, page: int, page_size: int
    ) -> Tuple[List[UserRiskScore], int]:
        condition = and_(
            UserRiskScoreModel.overall_score >= min_score,
            UserRiskScoreModel.overall_score <= max_score,
        )
        offset = max(0, (page - 1) * page_size)

        async with self._transaction("get_users_by_risk_score_range") as session:
            total = await session.scalar(
                select(func.count()).select_from(UserRiskScoreModel).where(condition)
            )
            result = await session.execute(
                select(UserRiskScoreModel)
                .where(condition)
                .order_by(desc(UserRiskScoreModel.overall_score), UserRiskScoreModel.last_calculated_at)
                .offset(offset)
                .limit(page_size)
            )
            return [row.to_domain() for row in result.scalars().all()], int(total or 0)

    # --------------------------------------------------------
    # BADGES
    # --------------------------------------------------------

    async def create_or_update_badge_status(self, status: UserBadgeStatus) -> None:
        async with self._transaction("create_or_update_badge_status") as session:
            result = await session.execute(
                select(UserBadgeStatusModel).where(UserBadgeStatusModel.user_id == status.user_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                session.add(UserBadgeStatusModel.from_domain(status))
            else:
                row.apply(status)

    async def get_badge_status_by_user(self, user_id: UUID) -> Optional[UserBadgeStatus]:
        async with self._transaction("get_badge_status_by_user") as session:
            result = await session.execute(
                select(UserBadgeStatusModel).where(UserBadgeStatusModel.user_id == user_id)
            )
            row = result.scalar_one_or_none()
            return row.to_domain() if row else None

    # --------------------------------------------------------
    # ADMIN REVIEWS
    # --------------------------------------------------------

    async def create_admin_review(self, review: AdminReview) -> None:
        async with self._transaction("create_admin_review") as session:
            session.add(AdminReviewModel.from_domain(review))

    async def get_admin_reviews_by_user(
        self, user_id: UUID, limit: int = 50
    ) -> List[AdminReview]:
        async with self._transaction("get_admin_reviews_by_user") as session:
            result = await session.execute(
                select(AdminReviewModel)
                .where(AdminReviewModel.user_id == user_id)
                .order_by(desc(AdminReviewModel.reviewed_at))
                .limit(limit)
            )
            return [row.to_domain() for row in result.scalars().all()]

    async def get_last_review_by_user(self, user_id: UUID) -> Optional[AdminReview]:
        reviews = await self.get_admin_reviews_by_user(user_id, limit=1)
        return reviews[0] if reviews else None

    # --------------------------------------------------------
    # NOTIFICATIONS
    # --------------------------------------------------------

    async def create_bot_notification(self, notification: BotFollowerNotification) -> None:
        async with self._transaction("create_bot_notification") as session:
            session.add(BotFollowerNotificationModel.from_domain(notification))

    async def get_bot_notifications_by_user(
        self, user_id: UUID, unread_only: bool = False
    ) -> List[BotFollowerNotification]:
        query = select(BotFollowerNotificationModel).where(
            BotFollowerNotificationModel.user_id == user_id
        )
        if unread_only:
            query = query.where(BotFollowerNotificationModel.read_at.is_(None))
        query = query.order_by(desc(BotFollowerNotificationModel.sent_at))

        async with self._transaction("get_bot_notifications_by_user") as session:
            result = await session.execute(query)
            return [row.to_domain() for row in result.scalars().all()]

    async def mark_notification_as_read(self, notification_id: UUID, read_at: datetime) -> bool:
        async with self._transaction("mark_notification_as_read") as session:
            row = await session.get(BotFollowerNotificationModel, notification_id)
            if row is None:
                return False
            if row.read_at is None:
                row.read_at = read_at
            return True

    # --------------------------------------------------------
    # ANALYTICS
    # --------------------------------------------------------

    async def get_signals_count_by_type(
        self, date_from: datetime, date_to: datetime
    ) -> Dict[str, int]:
        async with self._transaction("get_signals_count_by_type") as session:
            result = await session.execute(
                select(BotDetectionSignalModel.signal_type, func.count())
                .where(and_(
                    BotDetectionSignalModel.detected_at >= date_from,
                    BotDetectionSignalModel.detected_at <= date_to,
                ))
                .group_by(BotDetectionSignalModel.signal_type)
            )
            return {signal_type: int(count) for signal_type, count in result.all()}

    async def get_new_suspicious_accounts_count(
        self, date_from: datetime, date_to: datetime
    ) -> int:
        async with self._transaction("get_new_suspicious_accounts_count") as session:
            count = await session.scalar(
                select(func.count(func.distinct(BotDetectionSignalModel.user_id)))
                .where(and_(
                    BotDetectionSignalModel.detected_at >= date_from,
                    BotDetectionSignalModel.detected_at <= date_to,
                ))
            )
            return int(count or 0)

    async def get_review_action_count(
        self, action: ReviewAction, date_from: datetime, date_to: datetime
    ) -> int:
        async with self._transaction("get_review_action_count") as session:
            count = await session.scalar(
                select(func.count())
                .select_from(AdminReviewModel)
                .where(and_(
                    AdminReviewModel.action == action.value,
                    AdminReviewModel.reviewed_at >= date_from,
                    AdminReviewModel.reviewed_at <= date_to,
                ))
            )
            return int(count or 0)

    async def get_average_risk_score(self, date_from: datetime, date_to: datetime) -> float:
        async with self._transaction("get_average_risk_score") as session:
            avg = await session.scalar(
                select(func.avg(UserRiskScoreModel.overall_score))
                .where(and_(
                    UserRiskScoreModel.last_calculated_at >= date_from,
                    UserRiskScoreModel.last_calculated_at <= date_to,
                ))
            )
            return float(avg) if avg is not None else 0.0

    async def get_risk_score_distribution(
        self, date_from: datetime, date_to: datetime
    ) -> Dict[str, int]:
        distribution = {name: 0 for name, _, _ in RISK_DISTRIBUTION_BUCKETS}
        async with self._transaction("get_risk_score_distribution") as session:
            result = await session.execute(
                select(UserRiskScoreModel.overall_score)
                .where(and_(
                    UserRiskScoreModel.last_calculated_at >= date_from,
                    UserRiskScoreModel.last_calculated_at <= date_to,
                ))
            )
            for score in result.scalars().all():
                distribution[risk_bucket(score)] += 1
        return distribution

    async def get_daily_fraud_stats(
        self, date_from: datetime, date_to: datetime
    ) -> List[DailyFraudStat]:
        async with self._transaction("get_daily_fraud_stats") as session:
            result = await session.execute(
                select(BotDetectionSignalModel.detected_at, BotDetectionSignalModel.user_id)
                .where(and_(
                    BotDetectionSignalModel.detected_at >= date_from,
                    BotDetectionSignalModel.detected_at <= date_to,
                ))
            )
            return daily_fraud_stats(result.all())
