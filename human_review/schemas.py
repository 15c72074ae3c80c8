"""
Pydantic Schemas for Admin Review of Suspicious Accounts.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, Field

from bot_detection.types import ReviewAction as ReviewActionEnum


# =============================================================
# REQUEST SCHEMAS
# =============================================================

class ReviewUserRequest(BaseModel):
    """Mark a user as reviewed."""
    notes: str = Field("", max_length=1000)


class BanUserRequest(BaseModel):
    """Ban a user. A reason is mandatory."""
    reason: str = Field(..., min_length=1, max_length=500)
    notes: str = Field("", max_length=1000)


# =============================================================
# RESPONSE SCHEMAS
# =============================================================

class AdminReviewResponse(BaseModel):
    """Schema for a recorded admin action."""
    id: UUID
    admin_id: UUID
    user_id: UUID
    action: ReviewActionEnum
    risk_score_at_review: int
    notes: str
    reviewed_at: datetime

    class Config:
        from_attributes = True


class AdminReviewHistoryResponse(BaseModel):
    user_id: UUID
    reviews: List[AdminReviewResponse]
    last_action: Optional[ReviewActionEnum] = None
