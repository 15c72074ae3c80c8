"""
Tests for the Fraud Detection Service facade.

Tests cover:
- Follower event ingestion with live detection
- Risk score / badge lookups and activation
- Fraud dashboard paging and trend analytics
- Notification inbox
- Batch control passthrough
"""

import pytest
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from bot_detection.exceptions import BadgeTransitionError, SignalDetectionError
from bot_detection.orchestrator import BatchOrchestrator
from bot_detection.repository import InMemoryFraudRepository
from bot_detection.service import FraudDetectionService
from bot_detection.types import (
    AdminReview,
    BadgeStatus,
    BotDetectionSignal,
    BotFollowerNotification,
    FollowerEvent,
    FraudDashboardFilter,
    JobStatus,
    ReviewAction,
    SignalType,
    TrendPeriod,
    UserBadgeStatus,
    UserRiskScore,
)
from core.clock import MockClock


NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class BrokenIPRepository(InMemoryFraudRepository):
    async def get_follower_events_by_ip(self, ip, date_from, date_to):
        raise RuntimeError("ip index unavailable")


def build_service(repository, clock=None):
    clock = clock or MockClock(NOW)
    orchestrator = BatchOrchestrator(repository, clock=clock)
    return FraudDetectionService(repository, orchestrator, clock=clock)


def risk_score(user_id, overall, calculated_at=NOW):
    return UserRiskScore(
        user_id=user_id,
        overall_score=overall,
        follower_authenticity_score=100 - overall,
        engagement_quality_score=100 - overall // 2,
        account_age_factor=(100 - overall // 2) / 100,
        calculation_version="v1.0",
        last_calculated_at=calculated_at,
    )


def signal(user_id, signal_type=SignalType.RAPID_FOLLOWS, detected_at=NOW):
    return BotDetectionSignal(
        user_id=user_id,
        signal_type=signal_type,
        confidence_score=0.8,
        detected_at=detected_at,
    )


async def seed_burst(repository, follower_id, count, gap_seconds, end):
    for i in range(count):
        await repository.create_follower_event(FollowerEvent(
            follower_id=follower_id,
            followed_id=uuid4(),
            timestamp=end - timedelta(seconds=gap_seconds * (count - 1 - i)),
        ))


@pytest.fixture
def repository():
    return InMemoryFraudRepository()


@pytest.fixture
def service(repository):
    return build_service(repository)


# =============================================================
# TEST: Event ingestion
# =============================================================

class TestRecordFollowerEvent:

    @pytest.mark.asyncio
    async def test_single_event_is_stored(self, service, repository):
        event = FollowerEvent(follower_id=uuid4(), followed_id=uuid4(), timestamp=NOW)

        signals = await service.record_follower_event(event)

        assert signals == []
        stored = await repository.get_follower_events_by_user(
            event.follower_id, NOW - timedelta(hours=1), NOW
        )
        assert stored == [event]

    @pytest.mark.asyncio
    async def test_burst_emits_and_persists_signal(self, service, repository):
        follower = uuid4()
        await seed_burst(repository, follower, 59, 10, NOW - timedelta(seconds=0.5))
        event = FollowerEvent(follower_id=follower, followed_id=uuid4(), timestamp=NOW)

        signals = await service.record_follower_event(event)

        assert [s.signal_type for s in signals] == [SignalType.RAPID_FOLLOWS]
        assert signals[0].confidence_score == 0.9
        stored = await repository.get_bot_signals_by_user(follower)
        assert [s.id for s in stored] == [signals[0].id]
        assert stored[0].processed is False

    @pytest.mark.asyncio
    async def test_old_events_not_counted(self, service, repository):
        follower = uuid4()
        await seed_burst(repository, follower, 60, 1, NOW - timedelta(hours=3))
        event = FollowerEvent(follower_id=follower, followed_id=uuid4(), timestamp=NOW)

        assert await service.record_follower_event(event) == []

    @pytest.mark.asyncio
    async def test_ip_failure_keeps_rapid_follow_signal(self):
        repository = BrokenIPRepository()
        service = build_service(repository)
        follower = uuid4()
        await seed_burst(repository, follower, 59, 0.5, NOW - timedelta(seconds=0.5))
        event = FollowerEvent(
            follower_id=follower,
            followed_id=uuid4(),
            timestamp=NOW,
            source_ip_address="10.1.1.1",
        )

        with pytest.raises(SignalDetectionError):
            await service.record_follower_event(event)

        stored = await repository.get_bot_signals_by_user(follower)
        assert [s.signal_type for s in stored] == [SignalType.RAPID_FOLLOWS]


# =============================================================
# TEST: Risk score and badge
# =============================================================

class TestRiskAndBadge:

    @pytest.mark.asyncio
    async def test_missing_score(self, service):
        assert await service.get_user_risk_score(uuid4()) is None

    @pytest.mark.asyncio
    async def test_score_without_badge(self, service, repository):
        user = uuid4()
        await repository.create_or_update_risk_score(risk_score(user, 42))

        result = await service.get_user_risk_score(user)

        assert result.score.overall_score == 42
        assert result.badge_status == BadgeStatus.NONE

    @pytest.mark.asyncio
    async def test_score_with_badge(self, service, repository):
        user = uuid4()
        await repository.create_or_update_risk_score(risk_score(user, 5))
        await repository.create_or_update_badge_status(UserBadgeStatus(
            user_id=user, badge_type="verified", status=BadgeStatus.ELIGIBLE,
            updated_at=NOW, eligible_since=NOW,
        ))

        result = await service.get_user_risk_score(user)

        assert result.badge_status == BadgeStatus.ELIGIBLE

    @pytest.mark.asyncio
    async def test_activate_eligible_badge(self, service, repository):
        user = uuid4()
        await repository.create_or_update_badge_status(UserBadgeStatus(
            user_id=user, badge_type="verified", status=BadgeStatus.ELIGIBLE,
            updated_at=NOW - timedelta(days=1), eligible_since=NOW - timedelta(days=1),
        ))

        activated = await service.activate_badge(user)

        assert activated.status == BadgeStatus.ACTIVE
        stored = await service.get_user_badge_status(user)
        assert stored.status == BadgeStatus.ACTIVE
        assert stored.activated_at == NOW

    @pytest.mark.asyncio
    async def test_activate_without_badge(self, service):
        with pytest.raises(BadgeTransitionError):
            await service.activate_badge(uuid4())


# =============================================================
# TEST: Dashboard
# =============================================================

class TestDashboard:

    @pytest.mark.asyncio
    async def test_filters_and_orders_by_score(self, service, repository):
        high, medium, low = uuid4(), uuid4(), uuid4()
        await repository.create_or_update_risk_score(risk_score(medium, 60))
        await repository.create_or_update_risk_score(risk_score(high, 90))
        await repository.create_or_update_risk_score(risk_score(low, 10))

        dashboard = await service.get_fraud_dashboard(FraudDashboardFilter(min_risk_score=50))

        assert [u.user_id for u in dashboard.users] == [high, medium]
        assert dashboard.total == 2
        assert dashboard.total_pages == 1

    @pytest.mark.asyncio
    async def test_paging(self, service, repository):
        for score in range(50, 95, 5):
            await repository.create_or_update_risk_score(risk_score(uuid4(), score))

        dashboard = await service.get_fraud_dashboard(
            FraudDashboardFilter(page=2, page_size=4)
        )

        assert dashboard.total == 9
        assert dashboard.total_pages == 3
        assert [u.risk_score for u in dashboard.users] == [70, 65, 60, 55]

    @pytest.mark.asyncio
    async def test_entry_details(self, service, repository):
        user = uuid4()
        await repository.create_or_update_risk_score(risk_score(user, 80))
        pending = signal(user)
        done = signal(user, SignalType.IP_CLUSTER)
        await repository.create_bot_signal(pending)
        await repository.create_bot_signal(done)
        await repository.mark_bot_signal_as_processed(done.id)
        await repository.create_admin_review(AdminReview(
            admin_id=uuid4(), user_id=user, action=ReviewAction.BANNED,
            risk_score_at_review=80, notes="Reason: spam.", reviewed_at=NOW,
        ))

        dashboard = await service.get_fraud_dashboard()
        entry = dashboard.users[0]

        assert entry.risk_score == 80
        assert [s.id for s in entry.signals] == [pending.id]
        assert entry.last_review_action == ReviewAction.BANNED
        assert entry.last_reviewed_at == NOW

    @pytest.mark.asyncio
    async def test_unreviewed_entry(self, service, repository):
        await repository.create_or_update_risk_score(risk_score(uuid4(), 60))

        entry = (await service.get_fraud_dashboard()).users[0]

        assert entry.last_review_action is None
        assert entry.last_reviewed_at is None

    @pytest.mark.asyncio
    async def test_empty_dashboard(self, service):
        dashboard = await service.get_fraud_dashboard()

        assert dashboard.users == []
        assert dashboard.total == 0
        assert dashboard.total_pages == 0


# =============================================================
# TEST: Trends
# =============================================================

class TestTrends:

    @pytest.mark.asyncio
    async def test_week_trends(self, service, repository):
        a, b = uuid4(), uuid4()
        await repository.create_bot_signal(signal(a, SignalType.RAPID_FOLLOWS, NOW - timedelta(days=1)))
        await repository.create_bot_signal(signal(a, SignalType.IP_CLUSTER, NOW - timedelta(days=2)))
        await repository.create_bot_signal(signal(b, SignalType.IP_CLUSTER, NOW - timedelta(days=3)))
        await repository.create_bot_signal(signal(b, SignalType.IP_CLUSTER, NOW - timedelta(days=30)))
        await repository.create_or_update_risk_score(risk_score(a, 80, NOW - timedelta(days=1)))
        await repository.create_or_update_risk_score(risk_score(b, 10, NOW - timedelta(days=1)))
        await repository.create_admin_review(AdminReview(
            admin_id=uuid4(), user_id=a, action=ReviewAction.BANNED,
            risk_score_at_review=80, notes="", reviewed_at=NOW - timedelta(hours=2),
        ))

        trends = await service.get_fraud_trends("7d")

        assert trends.period == TrendPeriod.WEEK
        assert trends.date_to == NOW
        assert trends.date_from == NOW - timedelta(days=7)
        assert trends.total_signals == 3
        assert trends.signals_by_type == {"rapid_follows": 1, "ip_cluster": 2}
        assert trends.new_suspicious_accounts == 2
        assert trends.banned_accounts == 1
        assert trends.reviewed_accounts == 0
        assert trends.average_risk_score == pytest.approx(45.0)
        assert trends.risk_score_distribution == {
            "low": 1, "medium": 0, "high": 0, "critical": 1,
        }

    @pytest.mark.asyncio
    async def test_daily_stats(self, service, repository):
        a, b = uuid4(), uuid4()
        yesterday = NOW - timedelta(days=1)
        await repository.create_bot_signal(signal(a, SignalType.RAPID_FOLLOWS, yesterday))
        await repository.create_bot_signal(signal(a, SignalType.IP_CLUSTER, yesterday + timedelta(hours=1)))
        await repository.create_bot_signal(signal(b, SignalType.IP_CLUSTER, yesterday))
        await repository.create_bot_signal(signal(b, SignalType.IP_CLUSTER, NOW - timedelta(days=3)))
        await repository.create_bot_signal(signal(b, SignalType.IP_CLUSTER, NOW - timedelta(days=30)))

        trends = await service.get_fraud_trends("7d")

        assert [s.to_dict() for s in trends.daily_stats] == [
            {"date": "2026-01-12", "new_signals": 1, "new_suspicious_accounts": 1},
            {"date": "2026-01-14", "new_signals": 3, "new_suspicious_accounts": 2},
        ]

    @pytest.mark.asyncio
    async def test_day_window(self, service, repository):
        await repository.create_bot_signal(signal(uuid4(), detected_at=NOW - timedelta(hours=2)))
        await repository.create_bot_signal(signal(uuid4(), detected_at=NOW - timedelta(days=2)))

        trends = await service.get_fraud_trends("24h")

        assert trends.total_signals == 1

    @pytest.mark.asyncio
    async def test_unknown_period_defaults_to_week(self, service):
        trends = await service.get_fraud_trends("fortnight")

        assert trends.period == TrendPeriod.WEEK
        assert trends.average_risk_score == 0.0
        assert trends.daily_stats == []


# =============================================================
# TEST: Notifications
# =============================================================

class TestNotificationInbox:

    @pytest.mark.asyncio
    async def test_list_and_mark_read(self, service, repository):
        user = uuid4()
        older = BotFollowerNotification(
            user_id=user, bot_follower_id=uuid4(), signal_id=uuid4(),
            notification_type="in_app", sent_at=NOW - timedelta(hours=1),
        )
        newer = BotFollowerNotification(
            user_id=user, bot_follower_id=uuid4(), signal_id=uuid4(),
            notification_type="in_app", sent_at=NOW,
        )
        await repository.create_bot_notification(older)
        await repository.create_bot_notification(newer)

        assert await service.mark_notification_as_read(older.id) is True

        everything = await service.get_user_bot_notifications(user)
        unread = await service.get_user_bot_notifications(user, unread_only=True)
        assert [n.id for n in everything] == [newer.id, older.id]
        assert everything[1].read_at == NOW
        assert [n.id for n in unread] == [newer.id]

    @pytest.mark.asyncio
    async def test_mark_unknown_notification(self, service):
        assert await service.mark_notification_as_read(uuid4()) is False


# =============================================================
# TEST: Batch control
# =============================================================

class TestBatchControl:

    @pytest.mark.asyncio
    async def test_trigger_and_poll(self, service, repository):
        await repository.create_bot_signal(signal(uuid4()))

        job_id = await service.trigger_batch_analysis()
        await service.orchestrator.wait_for(job_id)
        record = service.get_batch_job_status(job_id)

        assert record.status == JobStatus.COMPLETED
        assert record.users_scored == 1
        assert await service.cancel_batch_analysis(job_id) is False
