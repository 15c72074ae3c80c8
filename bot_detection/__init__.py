"""
Bot Detection Package.

============================================================
PURPOSE
============================================================
Detects inauthentic ("bot") follower activity, converts the
evidence into per-user risk scores, finds coordinated bot
networks and drives verified badge eligibility.

============================================================
PIPELINE
============================================================
    FollowerEvent
        -> SignalDetector        (rapid follows, IP clusters)
        -> repository            (signals persisted, unprocessed)
        -> BatchOrchestrator     (background job)
            -> RiskScorer        (0-100 composite score)
            -> BadgeStateMachine (none/eligible/active/revoked)
            -> BotNotifier       (above notification threshold)
            -> NetworkDetector   (connected components >= 3)

============================================================
USAGE
============================================================
    from bot_detection import BatchOrchestrator, InMemoryFraudRepository

    orchestrator = BatchOrchestrator(InMemoryFraudRepository())
    job_id = await orchestrator.start_batch_analysis()
    record = orchestrator.get_batch_job_status(job_id)

============================================================
"""

from .types import (
    SignalType,
    BadgeStatus,
    ReviewAction,
    JobStatus,
    TrendPeriod,
    FollowerEvent,
    BotDetectionSignal,
    UserRiskScore,
    UserBadgeStatus,
    BotFollowerNotification,
    AdminReview,
    BatchJobRecord,
    RiskScoreResult,
    FraudDashboardFilter,
    FraudDashboard,
    DailyFraudStat,
    FraudTrends,
)

from .config import (
    DetectionConfig,
    ScoringConfig,
    BadgeConfig,
    BatchConfig,
    NotifierConfig,
    BotDetectionConfig,
    get_default_config,
    get_strict_config,
    load_config_from_env,
)

from .exceptions import (
    BotDetectionError,
    ConfigurationError,
    SignalDetectionError,
    ScoringError,
    BadgeTransitionError,
    RepositoryError,
    NotificationError,
    JobNotFoundError,
)

from .detector import SignalDetector
from .scorer import RiskScorer
from .network import NetworkDetector, build_account_graph, connected_components
from .badge import BadgeStateMachine, VALID_TRANSITIONS
from .repository import FraudDetectionRepository, InMemoryFraudRepository
from .job_store import JobStore, InMemoryJobStore
from .notifier import (
    BotNotifier,
    LoggingNotifier,
    TelegramNotifier,
    CompositeNotifier,
    create_notifier,
)
from .orchestrator import BatchOrchestrator
from .service import FraudDetectionService


__all__ = [
    # Types
    "SignalType",
    "BadgeStatus",
    "ReviewAction",
    "JobStatus",
    "TrendPeriod",
    "FollowerEvent",
    "BotDetectionSignal",
    "UserRiskScore",
    "UserBadgeStatus",
    "BotFollowerNotification",
    "AdminReview",
    "BatchJobRecord",
    "RiskScoreResult",
    "FraudDashboardFilter",
    "FraudDashboard",
    "DailyFraudStat",
    "FraudTrends",
    # Config
    "DetectionConfig",
    "ScoringConfig",
    "BadgeConfig",
    "BatchConfig",
    "NotifierConfig",
    "BotDetectionConfig",
    "get_default_config",
    "get_strict_config",
    "load_config_from_env",
    # Exceptions
    "BotDetectionError",
    "ConfigurationError",
    "SignalDetectionError",
    "ScoringError",
    "BadgeTransitionError",
    "RepositoryError",
    "NotificationError",
    "JobNotFoundError",
    # Components
    "SignalDetector",
    "RiskScorer",
    "build_account_graph",
    "NetworkDetector",
    "connected_components",
    "BadgeStateMachine",
    "VALID_TRANSITIONS",
    "FraudDetectionRepository",
    "InMemoryFraudRepository",
    "JobStore",
    "InMemoryJobStore",
    "BotNotifier",
    "LoggingNotifier",
    "TelegramNotifier",
    "CompositeNotifier",
    "create_notifier",
    "BatchOrchestrator",
    "FraudDetectionService",
]
