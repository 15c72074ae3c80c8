"""
Tests for the SQLAlchemy repository against SQLite (aiosqlite).

Each test builds its own database file under tmp_path.
"""

import pytest
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

from sqlalchemy.ext.asyncio import async_sessionmaker

from bot_detection.exceptions import RepositoryError
from bot_detection.orchestrator import BatchOrchestrator
from bot_detection.sql_repository import SqlAlchemyFraudRepository
from bot_detection.types import (
    AdminReview,
    BadgeStatus,
    BotDetectionSignal,
    BotFollowerNotification,
    FollowerEvent,
    JobStatus,
    ReviewAction,
    SignalType,
    UserBadgeStatus,
    UserRiskScore,
)
from core.clock import MockClock
from database.engine import create_all_tables, create_database_engine, dispose_engine


NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


@asynccontextmanager
async def sqlite_repository(tmp_path):
    engine = create_database_engine(f"sqlite+aiosqlite:///{tmp_path / 'bot_detection.db'}")
    try:
        await create_all_tables(engine)
        factory = async_sessionmaker(bind=engine, expire_on_commit=False)
        yield SqlAlchemyFraudRepository(factory)
    finally:
        await dispose_engine()


def score(user_id, overall, calculated_at=NOW):
    return UserRiskScore(
        user_id=user_id,
        overall_score=overall,
        follower_authenticity_score=100 - overall,
        engagement_quality_score=100 - overall // 2,
        account_age_factor=(100 - overall // 2) / 100,
        calculation_version="v1.0",
        last_calculated_at=calculated_at,
    )


def signal(user_id, signal_type=SignalType.IP_CLUSTER, detected_at=NOW, related=()):
    return BotDetectionSignal(
        user_id=user_id,
        signal_type=signal_type,
        confidence_score=0.6,
        detected_at=detected_at,
        evidence="12 distinct followers from 1.2.3.4 in 7d",
        related_accounts=frozenset(related),
    )


# =============================================================
# TEST: Follower events
# =============================================================

class TestFollowerEvents:

    @pytest.mark.asyncio
    async def test_query_by_follower_and_ip(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            follower = uuid4()
            inside = FollowerEvent(
                follower_id=follower, followed_id=uuid4(),
                timestamp=NOW - timedelta(minutes=10), source_ip_address="1.2.3.4",
                user_agent="curl/8.0",
            )
            outside = FollowerEvent(
                follower_id=follower, followed_id=uuid4(),
                timestamp=NOW - timedelta(days=10), source_ip_address="1.2.3.4",
            )
            await repository.create_follower_event(inside)
            await repository.create_follower_event(outside)

            by_user = await repository.get_follower_events_by_user(
                follower, NOW - timedelta(hours=1), NOW
            )
            by_ip = await repository.get_follower_events_by_ip(
                "1.2.3.4", NOW - timedelta(days=7), NOW
            )

        assert by_user == [inside]
        assert by_ip == [inside]
        assert by_user[0].timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_duplicate_id_raises_repository_error(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            event = FollowerEvent(follower_id=uuid4(), followed_id=uuid4(), timestamp=NOW)
            await repository.create_follower_event(event)

            with pytest.raises(RepositoryError) as exc_info:
                await repository.create_follower_event(event)

        assert exc_info.value.operation == "create_follower_event"


# =============================================================
# TEST: Signals
# =============================================================

class TestSignals:

    @pytest.mark.asyncio
    async def test_round_trip_keeps_related_accounts(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            related = [uuid4(), uuid4()]
            original = signal(uuid4(), related=related)
            await repository.create_bot_signal(original)

            stored = await repository.get_bot_signals_by_user(original.user_id)

        assert stored == [original]
        assert stored[0].signal_type == SignalType.IP_CLUSTER

    @pytest.mark.asyncio
    async def test_unprocessed_oldest_first_with_limit(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            user = uuid4()
            newest = signal(user, detected_at=NOW)
            oldest = signal(user, detected_at=NOW - timedelta(hours=2))
            middle = signal(user, detected_at=NOW - timedelta(hours=1))
            for s in (newest, oldest, middle):
                await repository.create_bot_signal(s)

            page = await repository.get_unprocessed_bot_signals(2)

        assert [s.id for s in page] == [oldest.id, middle.id]

    @pytest.mark.asyncio
    async def test_mark_processed(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            user = uuid4()
            first, second = signal(user), signal(user, SignalType.RAPID_FOLLOWS)
            await repository.create_bot_signal(first)
            await repository.create_bot_signal(second)

            await repository.mark_bot_signals_as_processed([first.id])
            await repository.mark_bot_signals_as_processed([])

            pending = await repository.get_bot_signals_by_user(user, processed=False)
            done = await repository.get_bot_signals_by_user(user, processed=True)

        assert [s.id for s in pending] == [second.id]
        assert [s.id for s in done] == [first.id]
        assert done[0].processed is True

    @pytest.mark.asyncio
    async def test_failed_attempts_reorder_and_park(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            user = uuid4()
            retried = signal(user, detected_at=NOW - timedelta(hours=2))
            fresh = signal(user, detected_at=NOW)
            await repository.create_bot_signal(retried)
            await repository.create_bot_signal(fresh)

            await repository.record_failed_processing([retried.id])
            ordered = await repository.get_unprocessed_bot_signals(10)
            await repository.record_failed_processing([retried.id])
            capped = await repository.get_unprocessed_bot_signals(10, max_attempts=2)
            stored = await repository.get_bot_signals_by_user(user, processed=False)

        assert [s.id for s in ordered] == [fresh.id, retried.id]
        assert ordered[1].processing_attempts == 1
        assert [s.id for s in capped] == [fresh.id]
        assert {s.id: s.processing_attempts for s in stored} == {retried.id: 2, fresh.id: 0}


# =============================================================
# TEST: Scores and badges
# =============================================================

class TestScoresAndBadges:

    @pytest.mark.asyncio
    async def test_risk_score_upsert_keeps_one_row(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            user = uuid4()
            first = score(user, 30)
            await repository.create_or_update_risk_score(first)
            await repository.create_or_update_risk_score(score(user, 84))

            stored = await repository.get_risk_score_by_user(user)
            rows, total = await repository.get_users_by_risk_score_range(0, 100, 1, 20)

        assert stored.overall_score == 84
        assert stored.id == first.id
        assert total == 1
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_score_range_paging(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            for value in (10, 55, 70, 95):
                await repository.create_or_update_risk_score(score(uuid4(), value))

            rows, total = await repository.get_users_by_risk_score_range(50, 100, 1, 2)
            second_page, _ = await repository.get_users_by_risk_score_range(50, 100, 2, 2)

        assert total == 3
        assert [r.overall_score for r in rows] == [95, 70]
        assert [r.overall_score for r in second_page] == [55]

    @pytest.mark.asyncio
    async def test_badge_upsert(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            user = uuid4()
            eligible = UserBadgeStatus(
                user_id=user, badge_type="verified", status=BadgeStatus.ELIGIBLE,
                updated_at=NOW - timedelta(days=1), eligible_since=NOW - timedelta(days=1),
            )
            await repository.create_or_update_badge_status(eligible)
            await repository.create_or_update_badge_status(UserBadgeStatus(
                user_id=user, badge_type="verified", status=BadgeStatus.REVOKED,
                updated_at=NOW, eligible_since=eligible.eligible_since,
                activated_at=NOW - timedelta(hours=5), revoked_at=NOW,
                revocation_reason="Risk score exceeded threshold",
            ))

            stored = await repository.get_badge_status_by_user(user)
            missing = await repository.get_badge_status_by_user(uuid4())

        assert stored.status == BadgeStatus.REVOKED
        assert stored.eligible_since == eligible.eligible_since
        assert stored.revoked_at == NOW
        assert stored.id == eligible.id
        assert missing is None


# =============================================================
# TEST: Reviews and notifications
# =============================================================

class TestReviewsAndNotifications:

    @pytest.mark.asyncio
    async def test_reviews_newest_first(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            user, admin = uuid4(), uuid4()
            for hours, action in ((3, ReviewAction.REVIEWED), (1, ReviewAction.BANNED)):
                await repository.create_admin_review(AdminReview(
                    admin_id=admin, user_id=user, action=action,
                    risk_score_at_review=75, notes="",
                    reviewed_at=NOW - timedelta(hours=hours),
                ))

            history = await repository.get_admin_reviews_by_user(user)
            last = await repository.get_last_review_by_user(user)

        assert [r.action for r in history] == [ReviewAction.BANNED, ReviewAction.REVIEWED]
        assert last.action == ReviewAction.BANNED

    @pytest.mark.asyncio
    async def test_notifications_mark_read(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            user = uuid4()
            note = BotFollowerNotification(
                user_id=user, bot_follower_id=uuid4(), signal_id=uuid4(),
                notification_type="in_app", sent_at=NOW,
            )
            await repository.create_bot_notification(note)

            assert len(await repository.get_bot_notifications_by_user(user, unread_only=True)) == 1
            assert await repository.mark_notification_as_read(note.id, NOW) is True
            assert await repository.mark_notification_as_read(uuid4(), NOW) is False

            unread = await repository.get_bot_notifications_by_user(user, unread_only=True)
            everything = await repository.get_bot_notifications_by_user(user)

        assert unread == []
        assert everything[0].read_at == NOW


# =============================================================
# TEST: Analytics
# =============================================================

class TestAnalytics:

    @pytest.mark.asyncio
    async def test_window_aggregates(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            a, b = uuid4(), uuid4()
            await repository.create_bot_signal(signal(a, SignalType.RAPID_FOLLOWS, NOW - timedelta(days=1)))
            await repository.create_bot_signal(signal(a, SignalType.IP_CLUSTER, NOW - timedelta(days=2)))
            await repository.create_bot_signal(signal(b, SignalType.IP_CLUSTER, NOW - timedelta(days=20)))
            await repository.create_or_update_risk_score(score(a, 80, NOW - timedelta(days=1)))
            await repository.create_or_update_risk_score(score(b, 30, NOW - timedelta(days=1)))
            await repository.create_admin_review(AdminReview(
                admin_id=uuid4(), user_id=a, action=ReviewAction.REVIEWED,
                risk_score_at_review=80, notes="", reviewed_at=NOW - timedelta(hours=1),
            ))

            date_from, date_to = NOW - timedelta(days=7), NOW
            by_type = await repository.get_signals_count_by_type(date_from, date_to)
            suspicious = await repository.get_new_suspicious_accounts_count(date_from, date_to)
            reviewed = await repository.get_review_action_count(ReviewAction.REVIEWED, date_from, date_to)
            banned = await repository.get_review_action_count(ReviewAction.BANNED, date_from, date_to)
            average = await repository.get_average_risk_score(date_from, date_to)
            distribution = await repository.get_risk_score_distribution(date_from, date_to)

        assert by_type == {"rapid_follows": 1, "ip_cluster": 1}
        assert suspicious == 1
        assert reviewed == 1
        assert banned == 0
        assert average == pytest.approx(55.0)
        assert distribution == {"low": 0, "medium": 1, "high": 0, "critical": 1}

    @pytest.mark.asyncio
    async def test_daily_fraud_stats(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            a, b = uuid4(), uuid4()
            await repository.create_bot_signal(signal(a, detected_at=NOW - timedelta(days=2)))
            await repository.create_bot_signal(signal(a, detected_at=NOW - timedelta(hours=1)))
            await repository.create_bot_signal(signal(b, detected_at=NOW - timedelta(hours=2)))
            await repository.create_bot_signal(signal(b, detected_at=NOW - timedelta(days=20)))

            daily = await repository.get_daily_fraud_stats(NOW - timedelta(days=7), NOW)

        assert [(s.day, s.new_signals, s.new_suspicious_accounts) for s in daily] == [
            (date(2026, 1, 13), 1, 1),
            (date(2026, 1, 15), 2, 2),
        ]


# =============================================================
# TEST: Batch against SQL storage
# =============================================================

class TestBatchOnSql:

    @pytest.mark.asyncio
    async def test_batch_scores_and_marks(self, tmp_path):
        async with sqlite_repository(tmp_path) as repository:
            user = uuid4()
            await repository.create_bot_signal(signal(user, SignalType.RAPID_FOLLOWS))
            await repository.create_bot_signal(signal(user, SignalType.IP_CLUSTER))
            orchestrator = BatchOrchestrator(repository, clock=MockClock(NOW))

            record = await orchestrator.wait_for(await orchestrator.start_batch_analysis())
            stored = await repository.get_risk_score_by_user(user)
            pending = await repository.get_unprocessed_bot_signals(10)
            notifications = await repository.get_bot_notifications_by_user(user)

        assert record.status == JobStatus.COMPLETED
        assert record.users_scored == 1
        # (0.6 * 0.30 + 0.6 * 0.25) * 200 = 66
        assert stored.overall_score == 66
        assert pending == []
        assert len(notifications) == 2
