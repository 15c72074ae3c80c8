"""
Tests for Admin Review of Suspicious Accounts.

Tests cover:
- Schema validation
- Ban note formatting
- Review recording with the risk score snapshot
- Review history ordering
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock
from uuid import uuid4
from pydantic import ValidationError

from human_review.schemas import (
    AdminReviewResponse,
    BanUserRequest,
    ReviewActionEnum,
    ReviewUserRequest,
)
from human_review.service import AdminReviewService, format_ban_notes
from bot_detection.repository import InMemoryFraudRepository
from bot_detection.types import AdminReview, ReviewAction, UserRiskScore
from core.clock import MockClock


NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================
# TEST: Request Schemas
# =============================================================

class TestSchemas:
    """Test request schema validation."""

    def test_review_notes_default_empty(self):
        assert ReviewUserRequest().notes == ""

    def test_review_notes_length_limit(self):
        with pytest.raises(ValidationError):
            ReviewUserRequest(notes="x" * 1001)

    def test_ban_requires_reason(self):
        with pytest.raises(ValidationError):
            BanUserRequest()

        with pytest.raises(ValidationError):
            BanUserRequest(reason="")

    def test_ban_reason_length_limit(self):
        with pytest.raises(ValidationError):
            BanUserRequest(reason="r" * 501)

    def test_response_from_domain_record(self):
        review = AdminReview(
            admin_id=uuid4(), user_id=uuid4(), action=ReviewAction.BANNED,
            risk_score_at_review=88, notes="Reason: spam. ", reviewed_at=NOW,
        )

        response = AdminReviewResponse.model_validate(review)

        assert response.action == ReviewActionEnum.BANNED
        assert response.id == review.id
        assert response.model_dump(mode="json")["action"] == "banned"


# =============================================================
# TEST: Ban notes
# =============================================================

class TestBanNotes:

    def test_reason_prefix(self):
        assert format_ban_notes("Bot farm", "see ticket") == "Reason: Bot farm. see ticket"

    def test_empty_notes(self):
        assert format_ban_notes("Bot farm", "") == "Reason: Bot farm. "


# =============================================================
# TEST: Service
# =============================================================

class TestAdminReviewService:
    """Test AdminReviewService against the in-memory repository."""

    @pytest.fixture
    def repository(self):
        return InMemoryFraudRepository()

    @pytest.fixture
    def clock(self):
        return MockClock(NOW)

    @pytest.fixture
    def service(self, repository, clock):
        return AdminReviewService(repository, clock)

    @pytest.mark.asyncio
    async def test_review_snapshots_risk_score(self, service, repository):
        user, admin = uuid4(), uuid4()
        await repository.create_or_update_risk_score(UserRiskScore(
            user_id=user, overall_score=73, follower_authenticity_score=27,
            engagement_quality_score=64, account_age_factor=0.64,
            calculation_version="v1.0", last_calculated_at=NOW,
        ))

        review = await service.review_user(admin, user, "checked followers")

        assert review.action == ReviewAction.REVIEWED
        assert review.risk_score_at_review == 73
        assert review.notes == "checked followers"
        assert review.reviewed_at == NOW
        assert review.admin_id == admin

    @pytest.mark.asyncio
    async def test_unscored_user_snapshot_is_zero(self, service):
        review = await service.review_user(uuid4(), uuid4())

        assert review.risk_score_at_review == 0

    @pytest.mark.asyncio
    async def test_ban_formats_notes(self, service, repository):
        user = uuid4()

        review = await service.ban_user(uuid4(), user, "Coordinated network", "cluster #4")

        assert review.action == ReviewAction.BANNED
        assert review.notes == "Reason: Coordinated network. cluster #4"
        assert await repository.get_last_review_by_user(user) == review

    @pytest.mark.asyncio
    async def test_blank_reason_rejected(self, service, repository):
        user = uuid4()

        with pytest.raises(ValueError):
            await service.ban_user(uuid4(), user, "   ")

        assert await repository.get_admin_reviews_by_user(user) == []

    @pytest.mark.asyncio
    async def test_history_newest_first(self, service, clock):
        user = uuid4()
        await service.review_user(uuid4(), user)
        clock.advance(hours=1)
        await service.ban_user(uuid4(), user, "spam")

        history = await service.get_review_history(user)

        assert [r.action for r in history] == [ReviewAction.BANNED, ReviewAction.REVIEWED]

    @pytest.mark.asyncio
    async def test_history_limit_passed_through(self):
        repository = AsyncMock()
        repository.get_admin_reviews_by_user = AsyncMock(return_value=[])
        service = AdminReviewService(repository, MockClock(NOW))
        user = uuid4()

        await service.get_review_history(user, limit=5)

        repository.get_admin_reviews_by_user.assert_awaited_once_with(user, 5)


# =============================================================
# RUN TESTS
# =============================================================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
