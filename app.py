#!/usr/bin/env python3
"""
Follower Integrity Service - Application Factory.

============================================================
SINGLE ENTRYPOINT
============================================================
Builds the FastAPI application and wires every component:

    repository -> detector / scorer / badge machine
               -> batch orchestrator -> fraud service
               -> admin review service

- Storage is in-memory or SQL (BOT_DETECTION_STORAGE)
- In-flight batch jobs are cancelled on shutdown

============================================================
USAGE
============================================================
Run the API server:
    python run_api.py

Environment-based configuration:
    BOT_DETECTION_STORAGE=sql DATABASE_URL=postgresql+asyncpg://... python run_api.py

============================================================
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bot_detection.badge import BadgeStateMachine
from bot_detection.config import BotDetectionConfig, load_config_from_env
from bot_detection.detector import SignalDetector
from bot_detection.job_store import InMemoryJobStore, JobStore
from bot_detection.network import NetworkDetector
from bot_detection.notifier import BotNotifier, create_notifier
from bot_detection.orchestrator import BatchOrchestrator
from bot_detection.repository import FraudDetectionRepository, InMemoryFraudRepository
from bot_detection.router import router as bot_detection_router
from bot_detection.scorer import RiskScorer
from bot_detection.service import FraudDetectionService
from core.clock import ClockProtocol, SystemClock
from human_review.router import router as admin_review_router
from human_review.service import AdminReviewService

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# ============================================================
# STORAGE SELECTION
# ============================================================

def storage_backend() -> str:
    """'sql' or 'memory'. Defaults to sql when DATABASE_URL is set."""
    backend = os.getenv("BOT_DETECTION_STORAGE")
    if backend:
        return backend.lower()
    return "sql" if os.getenv("DATABASE_URL") else "memory"


def build_repository(backend: str) -> FraudDetectionRepository:
    if backend == "sql":
        from bot_detection.sql_repository import SqlAlchemyFraudRepository
        return SqlAlchemyFraudRepository()
    if backend == "memory":
        return InMemoryFraudRepository()
    raise ValueError(f"Unknown storage backend: {backend}")


# ============================================================
# APPLICATION FACTORY
# ============================================================

def create_app(
    config: Optional[BotDetectionConfig] = None,
    repository: Optional[FraudDetectionRepository] = None,
    notifier: Optional[BotNotifier] = None,
    job_store: Optional[JobStore] = None,
    clock: Optional[ClockProtocol] = None,
) -> FastAPI:
    """
    Build the application.

    Every collaborator can be injected; anything omitted is built
    from configuration.
    """
    config = config or load_config_from_env()
    clock = clock or SystemClock()

    uses_sql = repository is None and storage_backend() == "sql"
    if repository is None:
        repository = build_repository(storage_backend())

    orchestrator = BatchOrchestrator(
        repository=repository,
        scorer=RiskScorer(config.scoring, clock),
        badge_machine=BadgeStateMachine(config.badge, clock),
        network_detector=NetworkDetector(config.batch.min_network_size),
        notifier=notifier or create_notifier(config.notifier),
        job_store=job_store or InMemoryJobStore(),
        config=config.batch,
        clock=clock,
    )
    fraud_service = FraudDetectionService(
        repository=repository,
        orchestrator=orchestrator,
        detector=SignalDetector(repository, config.detection, clock),
        badge_machine=BadgeStateMachine(config.badge, clock),
        clock=clock,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if uses_sql:
            from database.engine import initialize_database
            await initialize_database()
        logger.info(f"Follower integrity service started (repository={type(repository).__name__})")
        yield
        await orchestrator.shutdown()
        if uses_sql:
            from database.engine import dispose_engine
            await dispose_engine()
        logger.info("Follower integrity service stopped")

    app = FastAPI(
        title="Follower Integrity API",
        description="Bot follower detection, risk scoring and verified badge management",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.clock = clock
    app.state.repository = repository
    app.state.orchestrator = orchestrator
    app.state.fraud_service = fraud_service
    app.state.admin_review_service = AdminReviewService(repository, clock)

    app.include_router(bot_detection_router, prefix="/api/v1")
    app.include_router(admin_review_router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
            "active_jobs": len(orchestrator.active_jobs()),
        }

    return app
