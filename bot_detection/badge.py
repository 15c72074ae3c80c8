"""
Bot Detection - Verified Badge State Machine.

============================================================
PURPOSE
============================================================
Maps a new risk score and the prior badge record to a badge
transition.

STATE MACHINE:

      NONE ──(low risk)──► ELIGIBLE ──(activate)──► ACTIVE
                              ▲                       │
                              │                   (high risk)
                          (low risk)                  ▼
                              └──────────────────  REVOKED

    Low risk (score < low threshold) always targets ELIGIBLE.
    High risk (score > high threshold) only revokes ACTIVE badges.
    Anything in between leaves the record untouched.

INVARIANTS:
- eligible_since and activated_at are set once and preserved
- revocation fields are written only when entering REVOKED
- evaluate() never touches storage

============================================================
"""

import logging
from dataclasses import replace
from typing import Dict, Optional, Set
from uuid import UUID

from core.clock import ClockProtocol, SystemClock

from .config import BadgeConfig
from .exceptions import BadgeTransitionError
from .types import BadgeStatus, UserBadgeStatus


logger = logging.getLogger(__name__)


VALID_TRANSITIONS: Dict[BadgeStatus, Set[BadgeStatus]] = {
    BadgeStatus.NONE: {BadgeStatus.ELIGIBLE},
    BadgeStatus.ELIGIBLE: {BadgeStatus.ELIGIBLE, BadgeStatus.ACTIVE},
    BadgeStatus.ACTIVE: {BadgeStatus.ELIGIBLE, BadgeStatus.REVOKED},
    BadgeStatus.REVOKED: {BadgeStatus.ELIGIBLE},
}


class BadgeStateMachine:
    """Pure badge transition rules."""

    def __init__(
        self,
        config: Optional[BadgeConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._config = config or BadgeConfig()
        self._clock = clock or SystemClock()

    @property
    def config(self) -> BadgeConfig:
        return self._config

    def can_transition(self, from_status: BadgeStatus, to_status: BadgeStatus) -> bool:
        return to_status in VALID_TRANSITIONS.get(from_status, set())

    def evaluate(
        self,
        user_id: UUID,
        current: Optional[UserBadgeStatus],
        score: int,
    ) -> Optional[UserBadgeStatus]:
        """
        Compute the badge record implied by a new overall score.

        Args:
            user_id: The scored user
            current: Existing badge record, or None
            score: New overall risk score

        Returns:
            The record to upsert, or None when nothing changes
        """
        now = self._clock.now()

        if score < self._config.low_risk_threshold:
            if current is None:
                logger.info(f"User {user_id} became badge eligible (score={score})")
                return UserBadgeStatus(
                    user_id=user_id,
                    badge_type=self._config.badge_type,
                    status=BadgeStatus.ELIGIBLE,
                    eligible_since=now,
                    updated_at=now,
                )

            if current.status != BadgeStatus.ELIGIBLE:
                logger.info(
                    f"User {user_id} badge {current.status.value} -> eligible (score={score})"
                )
            return replace(
                current,
                status=BadgeStatus.ELIGIBLE,
                eligible_since=current.eligible_since or now,
                revoked_at=None,
                revocation_reason=None,
                updated_at=now,
            )

        if (
            score > self._config.high_risk_threshold
            and current is not None
            and current.status == BadgeStatus.ACTIVE
        ):
            logger.warning(f"Revoking badge for user {user_id} (score={score})")
            return replace(
                current,
                status=BadgeStatus.REVOKED,
                revoked_at=now,
                revocation_reason=self._config.revocation_reason,
                updated_at=now,
            )

        return None

    def activate(self, current: Optional[UserBadgeStatus]) -> UserBadgeStatus:
        """
        Activate an eligible badge.

        Raises:
            BadgeTransitionError: if the badge is not eligible
        """
        from_status = current.status if current is not None else BadgeStatus.NONE
        if current is None or not self.can_transition(from_status, BadgeStatus.ACTIVE):
            raise BadgeTransitionError(
                f"Cannot activate badge in status {from_status.value}",
                from_status=from_status.value,
                to_status=BadgeStatus.ACTIVE.value,
            )

        now = self._clock.now()
        logger.info(f"Activating badge for user {current.user_id}")
        return replace(
            current,
            status=BadgeStatus.ACTIVE,
            activated_at=current.activated_at or now,
            updated_at=now,
        )
