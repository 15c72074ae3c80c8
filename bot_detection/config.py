"""
Bot Detection - Configuration.

============================================================
PURPOSE
============================================================
Configuration dataclasses and threshold values for the
follower-integrity pipeline: signal detection, risk scoring,
badge eligibility, batch processing and notification delivery.

============================================================
DESIGN PRINCIPLES
============================================================
- Immutable configurations
- Every threshold documented next to its default
- Environment overrides via BOT_DETECTION_* variables
- Invalid overrides fail loudly (ConfigurationError)

============================================================
THRESHOLD PHILOSOPHY
============================================================
Risk score bands:

    score <  low_risk_threshold   -> badge eligible
    score >  high_risk_threshold  -> active badge revoked
    score >  notification_threshold -> user notified

Between the low and high thresholds nothing changes.

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .types import SignalType


ENV_PREFIX = "BOT_DETECTION_"


# ============================================================
# DETECTION CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class DetectionConfig:
    """
    Thresholds for the signal detection rules.

    ============================================================
    RAPID FOLLOWS
    ============================================================
    A follower doing >= 50 follows within an hour is flagged.
    Sub-second gaps between follows mean scripted clients.

    ============================================================
    IP CLUSTER
    ============================================================
    >= 10 distinct followers sharing one source IP within a
    week are flagged as a cluster.

    ============================================================
    """

    rapid_follow_threshold: int = 50                 # follows per window
    rapid_follow_window_seconds: float = 3600.0      # 1 hour
    rapid_follow_min_interval_seconds: float = 1.0   # scripted below this

    ip_cluster_threshold: int = 10                   # distinct followers per IP
    ip_cluster_window_days: int = 7

    # Confidence assigned to each outcome
    rapid_follow_scripted_confidence: float = 0.9    # min gap below floor
    rapid_follow_extreme_confidence: float = 0.8     # count > 2x threshold
    rapid_follow_base_confidence: float = 0.5
    ip_cluster_high_confidence: float = 0.85         # distinct >= 2x threshold
    ip_cluster_base_confidence: float = 0.6

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rapid_follow_threshold": self.rapid_follow_threshold,
            "rapid_follow_window_seconds": self.rapid_follow_window_seconds,
            "rapid_follow_min_interval_seconds": self.rapid_follow_min_interval_seconds,
            "ip_cluster_threshold": self.ip_cluster_threshold,
            "ip_cluster_window_days": self.ip_cluster_window_days,
            "rapid_follow_scripted_confidence": self.rapid_follow_scripted_confidence,
            "rapid_follow_extreme_confidence": self.rapid_follow_extreme_confidence,
            "rapid_follow_base_confidence": self.rapid_follow_base_confidence,
            "ip_cluster_high_confidence": self.ip_cluster_high_confidence,
            "ip_cluster_base_confidence": self.ip_cluster_base_confidence,
        }


# ============================================================
# SCORING CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class ScoringConfig:
    """
    Signal weights for the composite risk score.

    Weights are not renormalized: a user with several signals
    accumulates risk until the score clamps at 100.
    """

    rapid_follows_weight: float = 0.30
    ip_cluster_weight: float = 0.25
    no_profile_weight: float = 0.20
    suspicious_engagement_weight: float = 0.25
    default_weight: float = 0.10              # unknown signal types

    amplification: float = 2.0                # raw sum * 100 * amplification
    max_score: int = 100
    calculation_version: str = "v1.0"

    def weight_for(self, signal_type: Any) -> float:
        """Weight for a signal type; unknown types get the default weight."""
        key = getattr(signal_type, "value", signal_type)
        return {
            SignalType.RAPID_FOLLOWS.value: self.rapid_follows_weight,
            SignalType.IP_CLUSTER.value: self.ip_cluster_weight,
            SignalType.NO_PROFILE.value: self.no_profile_weight,
            SignalType.SUSPICIOUS_ENGAGEMENT.value: self.suspicious_engagement_weight,
        }.get(key, self.default_weight)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rapid_follows_weight": self.rapid_follows_weight,
            "ip_cluster_weight": self.ip_cluster_weight,
            "no_profile_weight": self.no_profile_weight,
            "suspicious_engagement_weight": self.suspicious_engagement_weight,
            "default_weight": self.default_weight,
            "amplification": self.amplification,
            "max_score": self.max_score,
            "calculation_version": self.calculation_version,
        }


# ============================================================
# BADGE CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class BadgeConfig:
    """Risk bands driving the verified badge state machine."""

    low_risk_threshold: int = 20     # strictly below -> eligible
    high_risk_threshold: int = 70    # strictly above -> revoke active badge
    badge_type: str = "verified"
    revocation_reason: str = "Risk score exceeded threshold"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "low_risk_threshold": self.low_risk_threshold,
            "high_risk_threshold": self.high_risk_threshold,
            "badge_type": self.badge_type,
            "revocation_reason": self.revocation_reason,
        }


# ============================================================
# BATCH CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class BatchConfig:
    """Batch orchestration settings."""

    signals_page_size: int = 1000         # unprocessed signals per batch
    default_analysis_days: int = 1        # window when none is given
    notification_threshold: int = 50      # strictly above -> notify
    notification_type: str = "in_app"
    min_network_size: int = 3
    max_concurrent_users: int = 1         # 1 = sequential
    max_signal_attempts: int = 3          # failed passes before a signal is parked

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signals_page_size": self.signals_page_size,
            "default_analysis_days": self.default_analysis_days,
            "notification_threshold": self.notification_threshold,
            "notification_type": self.notification_type,
            "min_network_size": self.min_network_size,
            "max_concurrent_users": self.max_concurrent_users,
            "max_signal_attempts": self.max_signal_attempts,
        }


# ============================================================
# NOTIFIER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class NotifierConfig:
    """Outbound notification channels."""

    telegram_enabled: bool = False
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    request_timeout_seconds: float = 10.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "telegram_enabled": self.telegram_enabled,
            "telegram_configured": bool(self.telegram_bot_token and self.telegram_chat_id),
            "request_timeout_seconds": self.request_timeout_seconds,
        }


# ============================================================
# MASTER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class BotDetectionConfig:
    """
    Master configuration for bot detection.

    Aggregates all sub-configs.
    """

    detection: DetectionConfig = field(default_factory=DetectionConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    badge: BadgeConfig = field(default_factory=BadgeConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    notifier: NotifierConfig = field(default_factory=NotifierConfig)

    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty when valid)."""
        problems = []
        if self.detection.rapid_follow_threshold <= 0:
            problems.append("rapid_follow_threshold must be positive")
        if self.detection.rapid_follow_window_seconds <= 0:
            problems.append("rapid_follow_window_seconds must be positive")
        if self.detection.ip_cluster_threshold <= 0:
            problems.append("ip_cluster_threshold must be positive")
        if self.detection.ip_cluster_window_days <= 0:
            problems.append("ip_cluster_window_days must be positive")
        if self.badge.low_risk_threshold >= self.badge.high_risk_threshold:
            problems.append("low_risk_threshold must be below high_risk_threshold")
        if not 0 <= self.batch.notification_threshold <= self.scoring.max_score:
            problems.append("notification_threshold must be within the score range")
        if self.batch.signals_page_size <= 0:
            problems.append("signals_page_size must be positive")
        if self.batch.default_analysis_days <= 0:
            problems.append("default_analysis_days must be positive")
        if self.batch.min_network_size < 2:
            problems.append("min_network_size must be at least 2")
        if self.batch.max_concurrent_users < 1:
            problems.append("max_concurrent_users must be at least 1")
        if self.batch.max_signal_attempts < 1:
            problems.append("max_signal_attempts must be at least 1")
        if self.notifier.telegram_enabled and not (
            self.notifier.telegram_bot_token and self.notifier.telegram_chat_id
        ):
            problems.append("telegram enabled without bot token and chat id")
        return problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detection": self.detection.to_dict(),
            "scoring": self.scoring.to_dict(),
            "badge": self.badge.to_dict(),
            "batch": self.batch.to_dict(),
            "notifier": self.notifier.to_dict(),
        }


# ============================================================
# DEFAULT CONFIGURATION
# ============================================================


def get_default_config() -> BotDetectionConfig:
    """Return the default configuration."""
    return BotDetectionConfig()


def get_strict_config() -> BotDetectionConfig:
    """
    Return a stricter configuration.

    Lower thresholds = accounts flagged earlier.
    """
    return BotDetectionConfig(
        detection=DetectionConfig(
            rapid_follow_threshold=30,
            ip_cluster_threshold=5,
        ),
        badge=BadgeConfig(
            low_risk_threshold=10,
            high_risk_threshold=50,
        ),
        batch=BatchConfig(
            notification_threshold=30,
        ),
    )


# ============================================================
# ENVIRONMENT LOADING
# ============================================================


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{ENV_PREFIX}{name} must be an integer, got {raw!r}", key=name
        ) from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{ENV_PREFIX}{name} must be a number, got {raw!r}", key=name
        ) from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env() -> BotDetectionConfig:
    """
    Build configuration from BOT_DETECTION_* environment variables.

    Missing variables keep their defaults. A .env file is loaded
    first if present.

    Raises:
        ConfigurationError: on unparsable values or an invalid result
    """
    load_dotenv()

    defaults = get_default_config()

    config = BotDetectionConfig(
        detection=DetectionConfig(
            rapid_follow_threshold=_env_int(
                "RAPID_FOLLOW_THRESHOLD", defaults.detection.rapid_follow_threshold),
            rapid_follow_window_seconds=_env_float(
                "RAPID_FOLLOW_WINDOW_SECONDS", defaults.detection.rapid_follow_window_seconds),
            rapid_follow_min_interval_seconds=_env_float(
                "RAPID_FOLLOW_MIN_INTERVAL_SECONDS",
                defaults.detection.rapid_follow_min_interval_seconds),
            ip_cluster_threshold=_env_int(
                "IP_CLUSTER_THRESHOLD", defaults.detection.ip_cluster_threshold),
            ip_cluster_window_days=_env_int(
                "IP_CLUSTER_WINDOW_DAYS", defaults.detection.ip_cluster_window_days),
        ),
        badge=BadgeConfig(
            low_risk_threshold=_env_int("LOW_RISK_THRESHOLD", defaults.badge.low_risk_threshold),
            high_risk_threshold=_env_int("HIGH_RISK_THRESHOLD", defaults.badge.high_risk_threshold),
        ),
        batch=BatchConfig(
            signals_page_size=_env_int("BATCH_SIZE", defaults.batch.signals_page_size),
            default_analysis_days=_env_int(
                "DEFAULT_ANALYSIS_DAYS", defaults.batch.default_analysis_days),
            notification_threshold=_env_int(
                "NOTIFICATION_THRESHOLD", defaults.batch.notification_threshold),
            max_concurrent_users=_env_int(
                "MAX_CONCURRENT_USERS", defaults.batch.max_concurrent_users),
            max_signal_attempts=_env_int(
                "MAX_SIGNAL_ATTEMPTS", defaults.batch.max_signal_attempts),
        ),
        notifier=NotifierConfig(
            telegram_enabled=_env_bool("TELEGRAM_ENABLED", False),
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID"),
        ),
    )

    problems = config.validate()
    if problems:
        raise ConfigurationError(
            "Invalid bot detection configuration: " + "; ".join(problems),
            details={"problems": problems},
        )
    return config
