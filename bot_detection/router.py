"""
FastAPI Router for Bot Detection Endpoints.

Provides REST API for:
- User risk score, badge and bot-follower notifications
- Admin fraud dashboard
- Fraud trend analytics
- Batch analysis control
- Follower event ingestion
"""

from datetime import timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from core.clock import ClockProtocol
from bot_detection.exceptions import BadgeTransitionError, JobNotFoundError, SignalDetectionError
from bot_detection.schemas import (
    BadgeStatusResponse,
    BatchAnalyzeRequest,
    BatchJobResponse,
    BotNotificationListResponse,
    BotSignalResponse,
    FollowerEventCreate,
    FollowerEventResponse,
    FraudDashboardResponse,
    FraudTrendsResponse,
    MessageResponse,
    RiskScoreResponse,
)
from bot_detection.service import FraudDetectionService
from bot_detection.types import FollowerEvent, FraudDashboardFilter

router = APIRouter(tags=["Bot Detection"])


# =============================================================
# HELPER: Service dependencies
# =============================================================

def get_fraud_service(request: Request) -> FraudDetectionService:
    return request.app.state.fraud_service


def get_clock(request: Request) -> ClockProtocol:
    return request.app.state.clock


# =============================================================
# USER ENDPOINTS
# =============================================================

@router.get("/users/{user_id}/risk-score", response_model=RiskScoreResponse)
async def get_user_risk_score(
    user_id: UUID,
    service: FraudDetectionService = Depends(get_fraud_service),
):
    """Current risk score and badge status for a user."""
    result = await service.get_user_risk_score(user_id)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Risk score for user {user_id} not found")
    return RiskScoreResponse.from_domain(result)


@router.get("/users/{user_id}/badge", response_model=BadgeStatusResponse)
async def get_user_badge(
    user_id: UUID,
    service: FraudDetectionService = Depends(get_fraud_service),
):
    badge = await service.get_user_badge_status(user_id)
    if badge is None:
        raise HTTPException(status_code=404, detail=f"Badge status for user {user_id} not found")
    return BadgeStatusResponse.from_domain(badge)


@router.post("/users/{user_id}/badge/activate", response_model=BadgeStatusResponse)
async def activate_user_badge(
    user_id: UUID,
    service: FraudDetectionService = Depends(get_fraud_service),
):
    """Activate an eligible verified badge."""
    try:
        badge = await service.activate_badge(user_id)
    except BadgeTransitionError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return BadgeStatusResponse.from_domain(badge)


@router.get("/users/{user_id}/bot-notifications", response_model=BotNotificationListResponse)
async def get_user_bot_notifications(
    user_id: UUID,
    unread_only: bool = Query(False, description="Only return unread notifications"),
    service: FraudDetectionService = Depends(get_fraud_service),
):
    notifications = await service.get_user_bot_notifications(user_id, unread_only)
    return BotNotificationListResponse.from_domain(notifications)


@router.post("/notifications/{notification_id}/read", response_model=MessageResponse)
async def mark_notification_read(
    notification_id: UUID,
    service: FraudDetectionService = Depends(get_fraud_service),
):
    if not await service.mark_notification_as_read(notification_id):
        raise HTTPException(status_code=404, detail=f"Notification {notification_id} not found")
    return MessageResponse(message="Notification marked as read")


# =============================================================
# ADMIN / ANALYTICS ENDPOINTS
# =============================================================

@router.get("/admin/fraud-dashboard", response_model=FraudDashboardResponse)
async def get_fraud_dashboard(
    min_risk_score: int = Query(0, ge=0, le=100),
    max_risk_score: int = Query(100, ge=0, le=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: FraudDetectionService = Depends(get_fraud_service),
):
    """
    Users in a risk score range, highest score first.

    Each entry carries the user's unprocessed signals and the last
    admin action taken on them.
    """
    if min_risk_score > max_risk_score:
        raise HTTPException(
            status_code=400,
            detail="min_risk_score must not exceed max_risk_score",
        )

    dashboard = await service.get_fraud_dashboard(FraudDashboardFilter(
        min_risk_score=min_risk_score,
        max_risk_score=max_risk_score,
        page=page,
        page_size=page_size,
    ))
    return FraudDashboardResponse.from_domain(dashboard)


@router.get("/analytics/fraud-trends", response_model=FraudTrendsResponse)
async def get_fraud_trends(
    period: Optional[str] = Query("7d", description="24h, 7d, 30d or 90d"),
    service: FraudDetectionService = Depends(get_fraud_service),
):
    trends = await service.get_fraud_trends(period)
    return FraudTrendsResponse.from_domain(trends)


# =============================================================
# BATCH ANALYSIS ENDPOINTS
# =============================================================

@router.post(
    "/followers/batch-analyze",
    response_model=BatchJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_batch_analysis(
    body: Optional[BatchAnalyzeRequest] = None,
    service: FraudDetectionService = Depends(get_fraud_service),
):
    """Start a background batch analysis and return its job record."""
    body = body or BatchAnalyzeRequest()
    job_id = await service.trigger_batch_analysis(body.date_from, body.date_to)
    return BatchJobResponse.from_domain(service.get_batch_job_status(job_id))


@router.get("/followers/batch-analyze/{job_id}", response_model=BatchJobResponse)
async def get_batch_job_status(
    job_id: UUID,
    service: FraudDetectionService = Depends(get_fraud_service),
):
    """Job status. Unknown ids report status 'unknown' rather than 404."""
    return BatchJobResponse.from_domain(service.get_batch_job_status(job_id))


@router.post("/followers/batch-analyze/{job_id}/cancel", response_model=BatchJobResponse)
async def cancel_batch_analysis(
    job_id: UUID,
    service: FraudDetectionService = Depends(get_fraud_service),
):
    try:
        await service.cancel_batch_analysis(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return BatchJobResponse.from_domain(service.get_batch_job_status(job_id))


# =============================================================
# EVENT INGESTION
# =============================================================

@router.post(
    "/followers/events",
    response_model=FollowerEventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_follower_event(
    body: FollowerEventCreate,
    service: FraudDetectionService = Depends(get_fraud_service),
    clock: ClockProtocol = Depends(get_clock),
):
    """Record a follow action and return any signals it triggered."""
    timestamp = body.timestamp or clock.now()
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    event = FollowerEvent(
        follower_id=body.follower_id,
        followed_id=body.followed_id,
        timestamp=timestamp,
        source_ip_address=body.source_ip_address,
        user_agent=body.user_agent,
        referrer=body.referrer,
    )

    try:
        signals = await service.record_follower_event(event)
    except SignalDetectionError as e:
        raise HTTPException(status_code=503, detail=e.message)

    return FollowerEventResponse(
        event_id=event.id,
        signals=[BotSignalResponse.from_domain(s) for s in signals],
    )
