"""
Bot Detection - Core Types.

============================================================
PURPOSE
============================================================
Enumerations and record types shared by every stage of the
follower-integrity pipeline:

    FollowerEvent -> BotDetectionSignal -> UserRiskScore
                  -> UserBadgeStatus -> BotFollowerNotification

Job bookkeeping (BatchJobRecord) and read models for the
dashboard and trend analytics live here as well.

============================================================
DESIGN PRINCIPLES
============================================================
- Evidence records are immutable (frozen dataclasses)
- State changes produce new records (dataclasses.replace)
- All timestamps are timezone-aware UTC
- Every record can serialize itself with to_dict()

============================================================
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import UUID, uuid4


# ============================================================
# ENUMS
# ============================================================


class SignalType(str, Enum):
    """Kind of evidence a bot detection signal carries."""
    RAPID_FOLLOWS = "rapid_follows"
    IP_CLUSTER = "ip_cluster"
    NO_PROFILE = "no_profile"
    SUSPICIOUS_ENGAGEMENT = "suspicious_engagement"


class BadgeStatus(str, Enum):
    """Verified badge lifecycle."""
    NONE = "none"
    ELIGIBLE = "eligible"
    ACTIVE = "active"
    REVOKED = "revoked"


class ReviewAction(str, Enum):
    """Admin actions recorded against a user."""
    REVIEWED = "reviewed"
    BANNED = "banned"


class JobStatus(str, Enum):
    """
    Batch analysis job status.

    RUNNING is the only non-terminal state. UNKNOWN is never
    stored; it is returned for job ids the store has never seen.
    """
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class TrendPeriod(str, Enum):
    """Lookback periods supported by trend analytics."""
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"

    @property
    def days(self) -> int:
        return {
            TrendPeriod.DAY: 1,
            TrendPeriod.WEEK: 7,
            TrendPeriod.MONTH: 30,
            TrendPeriod.QUARTER: 90,
        }[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> "TrendPeriod":
        """Parse a period string, falling back to 7 days."""
        try:
            return cls(value)
        except ValueError:
            return cls.WEEK


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ============================================================
# EVIDENCE RECORDS
# ============================================================


@dataclass(frozen=True)
class FollowerEvent:
    """A single follow action."""
    follower_id: UUID
    followed_id: UUID
    timestamp: datetime
    source_ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    id: UUID = field(default_factory=uuid4)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "follower_id": str(self.follower_id),
            "followed_id": str(self.followed_id),
            "timestamp": self.timestamp.isoformat(),
            "source_ip_address": self.source_ip_address,
            "user_agent": self.user_agent,
            "referrer": self.referrer,
        }


@dataclass(frozen=True)
class BotDetectionSignal:
    """
    Typed, confidence-scored evidence about one account.

    `processed` flips from False to True exactly once, after the
    signal has contributed to a committed scoring pass.
    `processing_attempts` counts batch passes that failed to
    handle the signal; it only grows.
    """
    user_id: UUID
    signal_type: SignalType
    confidence_score: float
    detected_at: datetime
    evidence: str = ""
    related_accounts: FrozenSet[UUID] = frozenset()
    processed: bool = False
    processing_attempts: int = 0
    id: UUID = field(default_factory=uuid4)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "signal_type": getattr(self.signal_type, "value", self.signal_type),
            "confidence_score": self.confidence_score,
            "detected_at": self.detected_at.isoformat(),
            "related_accounts": sorted(str(a) for a in self.related_accounts),
            "evidence": self.evidence,
            "processed": self.processed,
            "processing_attempts": self.processing_attempts,
        }


# ============================================================
# SCORING / BADGE RECORDS
# ============================================================


@dataclass(frozen=True)
class UserRiskScore:
    """Composite risk score for one user. One logical row per user."""
    user_id: UUID
    overall_score: int
    follower_authenticity_score: int
    engagement_quality_score: int
    account_age_factor: float
    calculation_version: str
    last_calculated_at: datetime
    id: UUID = field(default_factory=uuid4)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "overall_score": self.overall_score,
            "follower_authenticity_score": self.follower_authenticity_score,
            "engagement_quality_score": self.engagement_quality_score,
            "account_age_factor": self.account_age_factor,
            "calculation_version": self.calculation_version,
            "last_calculated_at": self.last_calculated_at.isoformat(),
        }


@dataclass(frozen=True)
class UserBadgeStatus:
    """Verified badge record for one user."""
    user_id: UUID
    badge_type: str
    status: BadgeStatus
    updated_at: datetime
    eligible_since: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None
    id: UUID = field(default_factory=uuid4)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "badge_type": self.badge_type,
            "status": self.status.value,
            "eligible_since": _iso(self.eligible_since),
            "activated_at": _iso(self.activated_at),
            "revoked_at": _iso(self.revoked_at),
            "revocation_reason": self.revocation_reason,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class BotFollowerNotification:
    """In-app notice that a flagged signal affected a user."""
    user_id: UUID
    bot_follower_id: UUID
    signal_id: UUID
    notification_type: str
    sent_at: datetime
    read_at: Optional[datetime] = None
    id: UUID = field(default_factory=uuid4)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "bot_follower_id": str(self.bot_follower_id),
            "signal_id": str(self.signal_id),
            "notification_type": self.notification_type,
            "sent_at": self.sent_at.isoformat(),
            "read_at": _iso(self.read_at),
        }


@dataclass(frozen=True)
class AdminReview:
    """Append-only record of an admin action."""
    admin_id: UUID
    user_id: UUID
    action: ReviewAction
    risk_score_at_review: int
    notes: str
    reviewed_at: datetime
    id: UUID = field(default_factory=uuid4)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "admin_id": str(self.admin_id),
            "user_id": str(self.user_id),
            "action": self.action.value,
            "risk_score_at_review": self.risk_score_at_review,
            "notes": self.notes,
            "reviewed_at": self.reviewed_at.isoformat(),
        }


# ============================================================
# JOB RECORD
# ============================================================


@dataclass
class BatchJobRecord:
    """
    Mutable bookkeeping for one batch analysis run.

    Stores hand out copies; callers never hold the live record.
    """
    job_id: UUID
    status: JobStatus
    message: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    processed_followers: int = 0
    new_signals_detected: int = 0
    users_scored: int = 0
    networks_detected: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": str(self.job_id),
            "status": self.status.value,
            "message": self.message,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "date_from": _iso(self.date_from),
            "date_to": _iso(self.date_to),
            "processed_followers": self.processed_followers,
            "new_signals_detected": self.new_signals_detected,
            "users_scored": self.users_scored,
            "networks_detected": self.networks_detected,
            "error": self.error,
        }


# ============================================================
# READ MODELS
# ============================================================


@dataclass(frozen=True)
class RiskScoreResult:
    """A user's risk score together with their badge status."""
    score: UserRiskScore
    badge_status: BadgeStatus


@dataclass
class FraudDashboardFilter:
    """Score range and paging for the fraud dashboard."""
    min_risk_score: int = 0
    max_risk_score: int = 100
    page: int = 1
    page_size: int = 20


@dataclass
class SuspiciousUserEntry:
    user_id: UUID
    risk_score: int
    last_calculated_at: datetime
    signals: List[BotDetectionSignal] = field(default_factory=list)
    last_review_action: Optional[ReviewAction] = None
    last_reviewed_at: Optional[datetime] = None


@dataclass
class FraudDashboard:
    users: List[SuspiciousUserEntry]
    total: int
    page: int
    page_size: int
    total_pages: int


@dataclass(frozen=True)
class DailyFraudStat:
    """Signals and distinct flagged accounts on one UTC calendar day."""
    day: date
    new_signals: int
    new_suspicious_accounts: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "new_signals": self.new_signals,
            "new_suspicious_accounts": self.new_suspicious_accounts,
        }


@dataclass
class FraudTrends:
    period: TrendPeriod
    date_from: datetime
    date_to: datetime
    total_signals: int
    signals_by_type: Dict[str, int]
    new_suspicious_accounts: int
    banned_accounts: int
    reviewed_accounts: int
    average_risk_score: float
    risk_score_distribution: Dict[str, int]
    daily_stats: List[DailyFraudStat] = field(default_factory=list)
