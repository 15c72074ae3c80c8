"""
Bot Detection - Persistence Models.

============================================================
PURPOSE
============================================================
ORM models for the follower-integrity tables.

============================================================
MODELS
============================================================
1. FollowerEventModel: Raw follow actions
2. BotDetectionSignalModel: Evidence signals
3. UserRiskScoreModel: One row per user (upserted)
4. UserBadgeStatusModel: One row per user (upserted)
5. AdminReviewModel: Append-only admin actions
6. BotFollowerNotificationModel: In-app notices

Each model converts to and from its domain record in
bot_detection.types.

============================================================
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from database.engine import Base

from .types import (
    AdminReview,
    BadgeStatus,
    BotDetectionSignal,
    BotFollowerNotification,
    FollowerEvent,
    ReviewAction,
    SignalType,
    UserBadgeStatus,
    UserRiskScore,
)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime column.

    Naive values read back (SQLite drops tzinfo) are tagged UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def _signal_type(value: str):
    try:
        return SignalType(value)
    except ValueError:
        return value


# ============================================================
# FOLLOWER EVENTS
# ============================================================


class FollowerEventModel(Base):
    """A single follow action."""

    __tablename__ = "follower_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    follower_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    followed_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    source_ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    referrer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_follower_events_ip_timestamp", "source_ip_address", "timestamp"),
        Index("ix_follower_events_follower_timestamp", "follower_id", "timestamp"),
    )

    @classmethod
    def from_domain(cls, event: FollowerEvent) -> "FollowerEventModel":
        return cls(
            id=event.id,
            follower_id=event.follower_id,
            followed_id=event.followed_id,
            timestamp=event.timestamp,
            source_ip_address=event.source_ip_address,
            user_agent=event.user_agent,
            referrer=event.referrer,
        )

    def to_domain(self) -> FollowerEvent:
        return FollowerEvent(
            id=self.id,
            follower_id=self.follower_id,
            followed_id=self.followed_id,
            timestamp=self.timestamp,
            source_ip_address=self.source_ip_address,
            user_agent=self.user_agent,
            referrer=self.referrer,
        )


# ============================================================
# SIGNALS
# ============================================================


class BotDetectionSignalModel(Base):
    """
    Evidence that an account behaves like a bot.

    related_accounts is stored as a JSON list of UUID strings.
    """

    __tablename__ = "bot_detection_signals"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    signal_type: Mapped[str] = mapped_column(String(50), nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    detected_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    related_accounts: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    evidence: Mapped[str] = mapped_column(Text, nullable=False, default="")
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    processing_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @classmethod
    def from_domain(cls, signal: BotDetectionSignal) -> "BotDetectionSignalModel":
        return cls(
            id=signal.id,
            user_id=signal.user_id,
            signal_type=getattr(signal.signal_type, "value", signal.signal_type),
            confidence_score=signal.confidence_score,
            detected_at=signal.detected_at,
            related_accounts=sorted(str(a) for a in signal.related_accounts),
            evidence=signal.evidence,
            processed=signal.processed,
            processing_attempts=signal.processing_attempts,
        )

    def to_domain(self) -> BotDetectionSignal:
        return BotDetectionSignal(
            id=self.id,
            user_id=self.user_id,
            signal_type=_signal_type(self.signal_type),
            confidence_score=self.confidence_score,
            detected_at=self.detected_at,
            related_accounts=frozenset(UUID(a) for a in (self.related_accounts or [])),
            evidence=self.evidence or "",
            processed=self.processed,
            processing_attempts=self.processing_attempts or 0,
        )


# ============================================================
# RISK SCORES
# ============================================================


class UserRiskScoreModel(Base):
    """Latest composite risk score per user."""

    __tablename__ = "user_risk_scores"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True)
    overall_score: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    follower_authenticity_score: Mapped[int] = mapped_column(Integer, nullable=False)
    engagement_quality_score: Mapped[int] = mapped_column(Integer, nullable=False)
    account_age_factor: Mapped[float] = mapped_column(Float, nullable=False)
    calculation_version: Mapped[str] = mapped_column(String(20), nullable=False)
    last_calculated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    def apply(self, score: UserRiskScore) -> None:
        self.overall_score = score.overall_score
        self.follower_authenticity_score = score.follower_authenticity_score
        self.engagement_quality_score = score.engagement_quality_score
        self.account_age_factor = score.account_age_factor
        self.calculation_version = score.calculation_version
        self.last_calculated_at = score.last_calculated_at

    @classmethod
    def from_domain(cls, score: UserRiskScore) -> "UserRiskScoreModel":
        row = cls(id=score.id, user_id=score.user_id)
        row.apply(score)
        return row

    def to_domain(self) -> UserRiskScore:
        return UserRiskScore(
            id=self.id,
            user_id=self.user_id,
            overall_score=self.overall_score,
            follower_authenticity_score=self.follower_authenticity_score,
            engagement_quality_score=self.engagement_quality_score,
            account_age_factor=self.account_age_factor,
            calculation_version=self.calculation_version,
            last_calculated_at=self.last_calculated_at,
        )


# ============================================================
# BADGES
# ============================================================


class UserBadgeStatusModel(Base):
    """Verified badge record per user."""

    __tablename__ = "user_badge_status"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True)
    badge_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    eligible_since: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    activated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    revocation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    def apply(self, status: UserBadgeStatus) -> None:
        self.badge_type = status.badge_type
        self.status = status.status.value
        self.eligible_since = status.eligible_since
        self.activated_at = status.activated_at
        self.revoked_at = status.revoked_at
        self.revocation_reason = status.revocation_reason
        self.updated_at = status.updated_at

    @classmethod
    def from_domain(cls, status: UserBadgeStatus) -> "UserBadgeStatusModel":
        row = cls(id=status.id, user_id=status.user_id)
        row.apply(status)
        return row

    def to_domain(self) -> UserBadgeStatus:
        return UserBadgeStatus(
            id=self.id,
            user_id=self.user_id,
            badge_type=self.badge_type,
            status=BadgeStatus(self.status),
            eligible_since=self.eligible_since,
            activated_at=self.activated_at,
            revoked_at=self.revoked_at,
            revocation_reason=self.revocation_reason,
            updated_at=self.updated_at,
        )


# ============================================================
# ADMIN REVIEWS
# ============================================================


class AdminReviewModel(Base):
    """Append-only admin action."""

    __tablename__ = "admin_reviews"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    admin_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    risk_score_at_review: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reviewed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    @classmethod
    def from_domain(cls, review: AdminReview) -> "AdminReviewModel":
        return cls(
            id=review.id,
            admin_id=review.admin_id,
            user_id=review.user_id,
            action=review.action.value,
            risk_score_at_review=review.risk_score_at_review,
            notes=review.notes,
            reviewed_at=review.reviewed_at,
        )

    def to_domain(self) -> AdminReview:
        return AdminReview(
            id=self.id,
            admin_id=self.admin_id,
            user_id=self.user_id,
            action=ReviewAction(self.action),
            risk_score_at_review=self.risk_score_at_review,
            notes=self.notes or "",
            reviewed_at=self.reviewed_at,
        )


# ============================================================
# NOTIFICATIONS
# ============================================================


class BotFollowerNotificationModel(Base):
    """In-app notice about a flagged signal."""

    __tablename__ = "bot_follower_notifications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    bot_follower_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    signal_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    notification_type: Mapped[str] = mapped_column(String(20), nullable=False)
    sent_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    @classmethod
    def from_domain(cls, n: BotFollowerNotification) -> "BotFollowerNotificationModel":
        return cls(
            id=n.id,
            user_id=n.user_id,
            bot_follower_id=n.bot_follower_id,
            signal_id=n.signal_id,
            notification_type=n.notification_type,
            sent_at=n.sent_at,
            read_at=n.read_at,
        )

    def to_domain(self) -> BotFollowerNotification:
        return BotFollowerNotification(
            id=self.id,
            user_id=self.user_id,
            bot_follower_id=self.bot_follower_id,
            signal_id=self.signal_id,
            notification_type=self.notification_type,
            sent_at=self.sent_at,
            read_at=self.read_at,
        )
