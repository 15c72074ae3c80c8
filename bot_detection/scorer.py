"""
Bot Detection - Risk Scorer.

============================================================
PURPOSE
============================================================
Aggregate a user's bot detection signals into a composite
0-100 risk score plus derived sub-scores.

============================================================
SCORING RULES
============================================================
    total          = sum(confidence * weight(signal_type))
    overall        = min(100, round(total * 100 * 2))
    authenticity   = 100 - overall
    engagement     = max(0, 100 - round(overall * 0.5))
    age_factor     = max(0, 1 - overall / 200)

No signals means a clean account: 0 / 100 / 100 / 1.0.
Rounding is half-up.

============================================================
"""

import logging
from typing import Optional, Sequence
from uuid import UUID

from core.clock import ClockProtocol, SystemClock

from .config import ScoringConfig
from .exceptions import ScoringError
from .types import BotDetectionSignal, UserRiskScore


logger = logging.getLogger(__name__)


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


class RiskScorer:
    """
    Pure, stateless computation of UserRiskScore from signals.

    The clock only stamps last_calculated_at.
    """

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._config = config or ScoringConfig()
        self._clock = clock or SystemClock()

    @property
    def config(self) -> ScoringConfig:
        return self._config

    def raw_total(self, signals: Sequence[BotDetectionSignal]) -> float:
        """Weighted sum of signal confidences. Rejects out-of-range confidences."""
        total = 0.0
        for signal in signals:
            confidence = signal.confidence_score
            if not 0.0 <= confidence <= 1.0:
                raise ScoringError(
                    f"Confidence {confidence} out of range [0, 1] for signal {signal.id}",
                    user_id=signal.user_id,
                    details={"signal_id": str(signal.id)},
                )
            total += confidence * self._config.weight_for(signal.signal_type)
        return total

    def calculate_risk_score(
        self,
        user_id: UUID,
        signals: Sequence[BotDetectionSignal],
    ) -> UserRiskScore:
        """
        Calculate the composite risk score for one user.

        Raises:
            ScoringError: if any signal carries a confidence outside [0, 1]
        """
        now = self._clock.now()
        max_score = self._config.max_score

        if not signals:
            return UserRiskScore(
                user_id=user_id,
                overall_score=0,
                follower_authenticity_score=max_score,
                engagement_quality_score=max_score,
                account_age_factor=1.0,
                calculation_version=self._config.calculation_version,
                last_calculated_at=now,
            )

        total = self.raw_total(signals)
        overall = min(max_score, _round_half_up(total * 100 * self._config.amplification))

        score = UserRiskScore(
            user_id=user_id,
            overall_score=overall,
            follower_authenticity_score=max_score - overall,
            engagement_quality_score=max(0, max_score - _round_half_up(overall * 0.5)),
            account_age_factor=max(0.0, 1.0 - overall / 200.0),
            calculation_version=self._config.calculation_version,
            last_calculated_at=now,
        )

        logger.debug(
            f"Scored user {user_id}: overall={overall} from {len(signals)} signals "
            f"(raw={total:.4f})"
        )
        return score
