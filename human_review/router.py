"""
FastAPI Router for Admin Review Endpoints.

Provides REST API for the admin workflow on flagged users:
- Mark a user as reviewed
- Ban a user
- View review history

The acting admin is identified by the X-Admin-Id header.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from human_review.schemas import (
    AdminReviewHistoryResponse,
    AdminReviewResponse,
    BanUserRequest,
    ReviewUserRequest,
)
from human_review.service import AdminReviewService

router = APIRouter(prefix="/admin", tags=["Admin Review"])


# =============================================================
# HELPER: Get service instance
# =============================================================

def get_admin_review_service(request: Request) -> AdminReviewService:
    return request.app.state.admin_review_service


# =============================================================
# REVIEW ENDPOINTS
# =============================================================

@router.post(
    "/users/{user_id}/review",
    response_model=AdminReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def review_user(
    user_id: UUID,
    body: ReviewUserRequest,
    admin_id: UUID = Header(..., alias="X-Admin-Id"),
    service: AdminReviewService = Depends(get_admin_review_service),
):
    """Record that an admin reviewed a flagged user."""
    review = await service.review_user(admin_id, user_id, body.notes)
    return AdminReviewResponse.model_validate(review)


@router.post(
    "/users/{user_id}/ban",
    response_model=AdminReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def ban_user(
    user_id: UUID,
    body: BanUserRequest,
    admin_id: UUID = Header(..., alias="X-Admin-Id"),
    service: AdminReviewService = Depends(get_admin_review_service),
):
    """
    Ban a user.

    Stored notes are prefixed with the ban reason.
    """
    try:
        review = await service.ban_user(admin_id, user_id, body.reason, body.notes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AdminReviewResponse.model_validate(review)


@router.get("/users/{user_id}/reviews", response_model=AdminReviewHistoryResponse)
async def get_review_history(
    user_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    service: AdminReviewService = Depends(get_admin_review_service),
):
    reviews = await service.get_review_history(user_id, limit)
    return AdminReviewHistoryResponse(
        user_id=user_id,
        reviews=[AdminReviewResponse.model_validate(r) for r in reviews],
        last_action=reviews[0].action.value if reviews else None,
    )
