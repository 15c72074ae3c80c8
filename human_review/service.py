"""
Admin Review Service.

This service handles:
- Recording that an admin reviewed a suspicious account
- Recording bans with their reason
- Review history lookups

Every action is appended to the admin review log together with
the user's risk score at the time of review.
"""

import logging
from typing import List, Optional
from uuid import UUID

from bot_detection.repository import FraudDetectionRepository
from bot_detection.types import AdminReview, ReviewAction
from core.clock import ClockProtocol, SystemClock

logger = logging.getLogger(__name__)


def format_ban_notes(reason: str, notes: str) -> str:
    """Ban notes always lead with the reason."""
    return f"Reason: {reason}. {notes}"


class AdminReviewService:
    """Records admin decisions about flagged users."""

    def __init__(
        self,
        repository: FraudDetectionRepository,
        clock: Optional[ClockProtocol] = None,
    ):
        self._repository = repository
        self._clock = clock or SystemClock()

    async def review_user(self, admin_id: UUID, user_id: UUID, notes: str = "") -> AdminReview:
        """Record that an admin reviewed a user."""
        return await self._record(admin_id, user_id, ReviewAction.REVIEWED, notes)

    async def ban_user(
        self,
        admin_id: UUID,
        user_id: UUID,
        reason: str,
        notes: str = "",
    ) -> AdminReview:
        """
        Record a ban.

        Raises:
            ValueError: if reason is empty
        """
        if not reason or not reason.strip():
            raise ValueError("A ban requires a reason")
        return await self._record(
            admin_id, user_id, ReviewAction.BANNED, format_ban_notes(reason, notes)
        )

    async def get_review_history(self, user_id: UUID, limit: int = 50) -> List[AdminReview]:
        return await self._repository.get_admin_reviews_by_user(user_id, limit)

    async def _record(
        self,
        admin_id: UUID,
        user_id: UUID,
        action: ReviewAction,
        notes: str,
    ) -> AdminReview:
        score = await self._repository.get_risk_score_by_user(user_id)

        review = AdminReview(
            admin_id=admin_id,
            user_id=user_id,
            action=action,
            risk_score_at_review=score.overall_score if score else 0,
            notes=notes,
            reviewed_at=self._clock.now(),
        )
        await self._repository.create_admin_review(review)

        logger.info(
            f"Admin {admin_id} recorded {action.value} for user {user_id} "
            f"(risk score {review.risk_score_at_review})"
        )
        return review
