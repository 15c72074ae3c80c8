"""
Tests for the Risk Scorer.

Tests cover:
- Clean accounts (no signals)
- Weighted aggregation per signal type
- Clamping at 100
- Derived sub-scores
- Rejection of invalid confidences
"""

import pytest
from datetime import datetime, timezone
from uuid import uuid4

from bot_detection.config import ScoringConfig
from bot_detection.exceptions import ScoringError
from bot_detection.scorer import RiskScorer
from bot_detection.types import BotDetectionSignal, SignalType
from core.clock import MockClock


NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_signal(user_id, signal_type, confidence):
    return BotDetectionSignal(
        user_id=user_id,
        signal_type=signal_type,
        confidence_score=confidence,
        detected_at=NOW,
    )


@pytest.fixture
def scorer():
    return RiskScorer(clock=MockClock(NOW))


@pytest.fixture
def user_id():
    return uuid4()


# =============================================================
# TEST: Empty signal set
# =============================================================

class TestCleanAccount:

    def test_no_signals_is_clean(self, scorer, user_id):
        score = scorer.calculate_risk_score(user_id, [])

        assert score.overall_score == 0
        assert score.follower_authenticity_score == 100
        assert score.engagement_quality_score == 100
        assert score.account_age_factor == 1.0

    def test_version_and_timestamp(self, scorer, user_id):
        score = scorer.calculate_risk_score(user_id, [])

        assert score.calculation_version == "v1.0"
        assert score.last_calculated_at == NOW
        assert score.user_id == user_id


# =============================================================
# TEST: Weighted aggregation
# =============================================================

class TestWeightedScore:

    def test_single_rapid_follows_signal(self, scorer, user_id):
        signals = [make_signal(user_id, SignalType.RAPID_FOLLOWS, 0.9)]

        score = scorer.calculate_risk_score(user_id, signals)

        # 0.9 * 0.30 * 100 * 2 = 54
        assert score.overall_score == 54
        assert score.follower_authenticity_score == 46
        assert score.engagement_quality_score == 73
        assert score.account_age_factor == pytest.approx(0.73)

    def test_single_ip_cluster_signal(self, scorer, user_id):
        signals = [make_signal(user_id, SignalType.IP_CLUSTER, 0.6)]

        score = scorer.calculate_risk_score(user_id, signals)

        # 0.6 * 0.25 * 100 * 2 = 30
        assert score.overall_score == 30
        assert score.follower_authenticity_score == 70
        assert score.engagement_quality_score == 85
        assert score.account_age_factor == pytest.approx(0.85)

    def test_signals_accumulate(self, scorer, user_id):
        signals = [
            make_signal(user_id, SignalType.RAPID_FOLLOWS, 0.9),
            make_signal(user_id, SignalType.IP_CLUSTER, 0.6),
        ]

        score = scorer.calculate_risk_score(user_id, signals)

        assert score.overall_score == 84

    def test_unknown_type_uses_default_weight(self, scorer, user_id):
        signals = [make_signal(user_id, "follow_unfollow_churn", 1.0)]

        score = scorer.calculate_risk_score(user_id, signals)

        # 1.0 * 0.10 * 100 * 2 = 20
        assert score.overall_score == 20

    def test_custom_weights(self, user_id):
        scorer = RiskScorer(
            config=ScoringConfig(no_profile_weight=0.5),
            clock=MockClock(NOW),
        )
        signals = [make_signal(user_id, SignalType.NO_PROFILE, 0.5)]

        assert scorer.calculate_risk_score(user_id, signals).overall_score == 50


# =============================================================
# TEST: Bounds and monotonicity
# =============================================================

class TestBounds:

    def test_score_clamped_at_100(self, scorer, user_id):
        signals = [make_signal(user_id, SignalType.RAPID_FOLLOWS, 0.9) for _ in range(3)]

        score = scorer.calculate_risk_score(user_id, signals)

        assert score.overall_score == 100
        assert score.follower_authenticity_score == 0
        assert score.engagement_quality_score == 50
        assert score.account_age_factor == pytest.approx(0.5)

    def test_more_evidence_never_lowers_score(self, scorer, user_id):
        pool = [
            make_signal(user_id, SignalType.IP_CLUSTER, 0.6),
            make_signal(user_id, SignalType.NO_PROFILE, 0.3),
            make_signal(user_id, SignalType.SUSPICIOUS_ENGAGEMENT, 0.7),
            make_signal(user_id, SignalType.RAPID_FOLLOWS, 0.5),
            make_signal(user_id, SignalType.RAPID_FOLLOWS, 0.9),
            make_signal(user_id, SignalType.IP_CLUSTER, 0.85),
        ]

        previous = -1
        for i in range(len(pool) + 1):
            current = scorer.calculate_risk_score(user_id, pool[:i]).overall_score
            assert 0 <= current <= 100
            assert current >= previous
            previous = current

    def test_zero_confidence_adds_nothing(self, scorer, user_id):
        signals = [make_signal(user_id, SignalType.RAPID_FOLLOWS, 0.0)]

        assert scorer.calculate_risk_score(user_id, signals).overall_score == 0


# =============================================================
# TEST: Validation
# =============================================================

class TestValidation:

    @pytest.mark.parametrize("confidence", [-0.1, 1.5])
    def test_out_of_range_confidence_rejected(self, scorer, user_id, confidence):
        signals = [make_signal(user_id, SignalType.RAPID_FOLLOWS, confidence)]

        with pytest.raises(ScoringError) as exc_info:
            scorer.calculate_risk_score(user_id, signals)

        assert exc_info.value.user_id == user_id
