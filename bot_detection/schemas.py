"""
Pydantic Schemas for the Bot Detection API.
"""

from datetime import date, datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID
from pydantic import BaseModel, Field, model_validator

from .types import (
    BatchJobRecord,
    BotDetectionSignal,
    BotFollowerNotification,
    DailyFraudStat,
    FraudDashboard,
    FraudTrends,
    RiskScoreResult,
    SuspiciousUserEntry,
    UserBadgeStatus,
)


# =============================================================
# RISK SCORE / BADGE
# =============================================================

class RiskScoreResponse(BaseModel):
    user_id: UUID
    overall_score: int
    follower_authenticity_score: int
    engagement_quality_score: int
    account_age_factor: float
    calculation_version: str
    last_calculated_at: datetime
    badge_status: str

    @classmethod
    def from_domain(cls, result: RiskScoreResult) -> "RiskScoreResponse":
        s = result.score
        return cls(
            user_id=s.user_id,
            overall_score=s.overall_score,
            follower_authenticity_score=s.follower_authenticity_score,
            engagement_quality_score=s.engagement_quality_score,
            account_age_factor=s.account_age_factor,
            calculation_version=s.calculation_version,
            last_calculated_at=s.last_calculated_at,
            badge_status=result.badge_status.value,
        )


class BadgeStatusResponse(BaseModel):
    user_id: UUID
    badge_type: str
    status: str
    eligible_since: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None
    updated_at: datetime

    @classmethod
    def from_domain(cls, badge: UserBadgeStatus) -> "BadgeStatusResponse":
        return cls(
            user_id=badge.user_id,
            badge_type=badge.badge_type,
            status=badge.status.value,
            eligible_since=badge.eligible_since,
            activated_at=badge.activated_at,
            revoked_at=badge.revoked_at,
            revocation_reason=badge.revocation_reason,
            updated_at=badge.updated_at,
        )


# =============================================================
# SIGNALS / DASHBOARD
# =============================================================

class BotSignalResponse(BaseModel):
    id: UUID
    user_id: UUID
    signal_type: str
    confidence_score: float
    detected_at: datetime
    related_accounts: List[UUID] = []
    evidence: str
    processed: bool

    @classmethod
    def from_domain(cls, signal: BotDetectionSignal) -> "BotSignalResponse":
        return cls(
            id=signal.id,
            user_id=signal.user_id,
            signal_type=getattr(signal.signal_type, "value", signal.signal_type),
            confidence_score=signal.confidence_score,
            detected_at=signal.detected_at,
            related_accounts=sorted(signal.related_accounts, key=str),
            evidence=signal.evidence,
            processed=signal.processed,
        )


class SuspiciousUserResponse(BaseModel):
    user_id: UUID
    risk_score: int
    last_calculated_at: datetime
    signals: List[BotSignalResponse]
    last_review_action: Optional[str] = None
    last_reviewed_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, entry: SuspiciousUserEntry) -> "SuspiciousUserResponse":
        return cls(
            user_id=entry.user_id,
            risk_score=entry.risk_score,
            last_calculated_at=entry.last_calculated_at,
            signals=[BotSignalResponse.from_domain(s) for s in entry.signals],
            last_review_action=entry.last_review_action.value if entry.last_review_action else None,
            last_reviewed_at=entry.last_reviewed_at,
        )


class FraudDashboardResponse(BaseModel):
    users: List[SuspiciousUserResponse]
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def from_domain(cls, dashboard: FraudDashboard) -> "FraudDashboardResponse":
        return cls(
            users=[SuspiciousUserResponse.from_domain(u) for u in dashboard.users],
            total=dashboard.total,
            page=dashboard.page,
            page_size=dashboard.page_size,
            total_pages=dashboard.total_pages,
        )


class DailyFraudStatResponse(BaseModel):
    date: date
    new_signals: int
    new_suspicious_accounts: int

    @classmethod
    def from_domain(cls, stat: DailyFraudStat) -> "DailyFraudStatResponse":
        return cls(
            date=stat.day,
            new_signals=stat.new_signals,
            new_suspicious_accounts=stat.new_suspicious_accounts,
        )


class FraudTrendsResponse(BaseModel):
    period: str
    date_from: datetime
    date_to: datetime
    total_signals: int
    signals_by_type: Dict[str, int]
    new_suspicious_accounts: int
    banned_accounts: int
    reviewed_accounts: int
    average_risk_score: float
    risk_score_distribution: Dict[str, int]
    daily_stats: List[DailyFraudStatResponse] = []

    @classmethod
    def from_domain(cls, trends: FraudTrends) -> "FraudTrendsResponse":
        return cls(
            period=trends.period.value,
            date_from=trends.date_from,
            date_to=trends.date_to,
            total_signals=trends.total_signals,
            signals_by_type=trends.signals_by_type,
            new_suspicious_accounts=trends.new_suspicious_accounts,
            banned_accounts=trends.banned_accounts,
            reviewed_accounts=trends.reviewed_accounts,
            average_risk_score=round(trends.average_risk_score, 2),
            risk_score_distribution=trends.risk_score_distribution,
            daily_stats=[DailyFraudStatResponse.from_domain(s) for s in trends.daily_stats],
        )


# =============================================================
# BATCH ANALYSIS
# =============================================================

class BatchAnalyzeRequest(BaseModel):
    """Optional analysis window. Defaults to the last day."""
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    @model_validator(mode="after")
    def check_window(self) -> "BatchAnalyzeRequest":
        # Naive timestamps are taken as UTC
        if self.date_from is not None and self.date_from.tzinfo is None:
            self.date_from = self.date_from.replace(tzinfo=timezone.utc)
        if self.date_to is not None and self.date_to.tzinfo is None:
            self.date_to = self.date_to.replace(tzinfo=timezone.utc)
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class BatchJobResponse(BaseModel):
    job_id: UUID
    status: str
    message: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    processed_followers: int = 0
    new_signals_detected: int = 0
    users_scored: int = 0
    networks_detected: int = 0
    error: Optional[str] = None

    @classmethod
    def from_domain(cls, record: BatchJobRecord) -> "BatchJobResponse":
        return cls(
            job_id=record.job_id,
            status=record.status.value,
            message=record.message,
            started_at=record.started_at,
            completed_at=record.completed_at,
            date_from=record.date_from,
            date_to=record.date_to,
            processed_followers=record.processed_followers,
            new_signals_detected=record.new_signals_detected,
            users_scored=record.users_scored,
            networks_detected=record.networks_detected,
            error=record.error,
        )


# =============================================================
# FOLLOWER EVENTS
# =============================================================

class FollowerEventCreate(BaseModel):
    follower_id: UUID
    followed_id: UUID
    timestamp: Optional[datetime] = None
    source_ip_address: Optional[str] = Field(None, max_length=45)
    user_agent: Optional[str] = None
    referrer: Optional[str] = None


class FollowerEventResponse(BaseModel):
    event_id: UUID
    signals: List[BotSignalResponse]


# =============================================================
# NOTIFICATIONS
# =============================================================

class BotNotificationResponse(BaseModel):
    id: UUID
    user_id: UUID
    bot_follower_id: UUID
    signal_id: UUID
    notification_type: str
    sent_at: datetime
    read_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BotNotificationListResponse(BaseModel):
    notifications: List[BotNotificationResponse]
    unread_count: int

    @classmethod
    def from_domain(cls, notifications: List[BotFollowerNotification]) -> "BotNotificationListResponse":
        return cls(
            notifications=[BotNotificationResponse.model_validate(n) for n in notifications],
            unread_count=sum(1 for n in notifications if not n.is_read),
        )


class MessageResponse(BaseModel):
    message: str
