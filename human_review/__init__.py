"""
Human Review Package.

Admin review of accounts flagged by bot detection.

Core Principles:
- Detection never bans anyone on its own
- Admins record reviews and bans explicitly
- Every action is appended to the review log with the
  user's risk score at that moment

Modules:
- schemas: Pydantic models for review requests/responses
- service: Business logic for recording admin actions
- router: FastAPI endpoints under /admin

Usage:
    from human_review.service import AdminReviewService
    from human_review.router import router as admin_router
"""

from human_review.schemas import (
    ReviewActionEnum,
    ReviewUserRequest,
    BanUserRequest,
    AdminReviewResponse,
    AdminReviewHistoryResponse,
)

from human_review.service import (
    AdminReviewService,
    format_ban_notes,
)

from human_review.router import router

__all__ = [
    # Schemas
    "ReviewActionEnum",
    "ReviewUserRequest",
    "BanUserRequest",
    "AdminReviewResponse",
    "AdminReviewHistoryResponse",
    # Service
    "AdminReviewService",
    "format_ban_notes",
    # Router
    "router",
]
