"""
Batch Orchestrator - Drives batch bot analysis.

============================================================
PURPOSE
============================================================
Runs batch analysis jobs in the background:

1. Register the job as RUNNING
2. Fetch a page of unprocessed signals, group by user
3. Per user: score -> upsert score -> badge transition
   -> mark signals processed -> notify when above threshold
4. Run network detection once over the fetched batch
5. Mark the job COMPLETED with counters

============================================================
FAILURE MODEL
============================================================
- Signal fetch fails          -> job FAILED with the error
- One user fails              -> logged, user skipped, signals
                                 stay unprocessed with one more
                                 failed attempt recorded
- Signal hits max attempts    -> parked: left unprocessed and
                                 no longer fetched by batches
- Notification fails          -> logged only
- Task cancelled / shutdown   -> job CANCELLED

============================================================
USAGE
============================================================
    orchestrator = BatchOrchestrator(repository, notifier=notifier)
    job_id = await orchestrator.start_batch_analysis()
    status = orchestrator.get_batch_job_status(job_id)

============================================================
"""

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence
from uuid import UUID, uuid4

from core.clock import ClockProtocol, SystemClock

from .badge import BadgeStateMachine
from .config import BatchConfig
from .exceptions import JobNotFoundError
from .job_store import InMemoryJobStore, JobStore
from .network import NetworkDetector
from .notifier import BotNotifier, LoggingNotifier
from .repository import FraudDetectionRepository
from .scorer import RiskScorer
from .types import (
    BatchJobRecord,
    BotDetectionSignal,
    BotFollowerNotification,
    JobStatus,
    UserBadgeStatus,
)


logger = logging.getLogger(__name__)


MESSAGE_RUNNING = "Analysis in progress"
MESSAGE_COMPLETED = "Analysis completed successfully"
MESSAGE_CANCELLED = "Analysis cancelled"
MESSAGE_NOT_FOUND = "Job not found"


class BatchOrchestrator:
    """
    Starts, tracks and cancels batch analysis jobs.

    One asyncio task per job. The job store is the only state
    shared with callers; status reads are copies.
    """

    def __init__(
        self,
        repository: FraudDetectionRepository,
        scorer: Optional[RiskScorer] = None,
        badge_machine: Optional[BadgeStateMachine] = None,
        network_detector: Optional[NetworkDetector] = None,
        notifier: Optional[BotNotifier] = None,
        job_store: Optional[JobStore] = None,
        config: Optional[BatchConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._clock = clock or SystemClock()
        self._config = config or BatchConfig()
        self._repository = repository
        self._scorer = scorer or RiskScorer(clock=self._clock)
        self._badge_machine = badge_machine or BadgeStateMachine(clock=self._clock)
        self._network_detector = network_detector or NetworkDetector(
            min_network_size=self._config.min_network_size
        )
        self._notifier = notifier or LoggingNotifier()
        self._job_store = job_store or InMemoryJobStore()

        self._tasks: Dict[UUID, asyncio.Task] = {}

    @property
    def job_store(self) -> JobStore:
        return self._job_store

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def start_batch_analysis(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> UUID:
        """
        Start a batch job and return its id without waiting for it.

        Never fails. The window is recorded on the job as given;
        callers validate it (the HTTP layer rejects date_from > date_to).
        """
        now = self._clock.now()
        if date_to is None:
            date_to = now
        if date_from is None:
            date_from = date_to - timedelta(days=self._config.default_analysis_days)

        job_id = uuid4()
        self._job_store.create(BatchJobRecord(
            job_id=job_id,
            status=JobStatus.RUNNING,
            message=MESSAGE_RUNNING,
            started_at=now,
            date_from=date_from,
            date_to=date_to,
        ))

        task = asyncio.create_task(
            self._run_batch(job_id),
            name=f"bot-batch-{job_id}",
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda t, jid=job_id: self._on_task_done(jid, t))

        logger.info(
            f"Batch analysis {job_id} started for window "
            f"{date_from.isoformat()} .. {date_to.isoformat()}"
        )
        return job_id

    def get_batch_job_status(self, job_id: UUID) -> BatchJobRecord:
        """Snapshot of a job. Unknown ids yield status UNKNOWN."""
        record = self._job_store.get(job_id)
        if record is None:
            return BatchJobRecord(
                job_id=job_id,
                status=JobStatus.UNKNOWN,
                message=MESSAGE_NOT_FOUND,
            )
        return record

    async def cancel_batch(self, job_id: UUID) -> bool:
        """
        Cancel a running job and wait for it to settle.

        Returns:
            True if a running task was cancelled, False if the job
            had already finished

        Raises:
            JobNotFoundError: if the job id is unknown
        """
        if self._job_store.get(job_id) is None:
            raise JobNotFoundError(job_id)

        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False

        task.cancel()
        await asyncio.wait({task})
        logger.info(f"Batch analysis {job_id} cancelled")
        return True

    async def wait_for(self, job_id: UUID, timeout: Optional[float] = None) -> BatchJobRecord:
        """Wait for a job to finish (or the timeout) and return its status."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return self.get_batch_job_status(job_id)

    def active_jobs(self) -> List[UUID]:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    async def shutdown(self) -> None:
        """Cancel every in-flight job and wait for them to settle."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        if not tasks:
            return

        logger.info(f"Shutting down: cancelling {len(tasks)} batch jobs")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Batch execution
    # -------------------------------------------------------------------------

    async def _run_batch(self, job_id: UUID) -> None:
        try:
            try:
                signals = await self._repository.get_unprocessed_bot_signals(
                    self._config.signals_page_size,
                    max_attempts=self._config.max_signal_attempts,
                )
            except Exception as e:
                logger.error(f"[{job_id}] Failed to fetch unprocessed signals: {e}")
                self._finish(
                    job_id,
                    JobStatus.FAILED,
                    f"Failed to fetch unprocessed signals: {e}",
                    error=str(e),
                )
                return

            self._job_store.update(
                job_id,
                processed_followers=len(signals),
                new_signals_detected=len(signals),
            )

            by_user = self._group_by_user(signals)
            logger.info(
                f"[{job_id}] Processing {len(signals)} signals for {len(by_user)} users"
            )

            users_scored = await self._process_users(job_id, by_user)

            networks = self._network_detector.detect_coordinated_bots(signals)
            for network in networks:
                logger.warning(
                    f"[{job_id}] Coordinated bot network of {len(network)} accounts: "
                    f"{', '.join(str(a) for a in network)}"
                )

            self._finish(
                job_id,
                JobStatus.COMPLETED,
                MESSAGE_COMPLETED,
                users_scored=users_scored,
                networks_detected=len(networks),
            )
            logger.info(
                f"[{job_id}] Batch complete: signals={len(signals)}, "
                f"users_scored={users_scored}, networks={len(networks)}"
            )

        except asyncio.CancelledError:
            self._finish(job_id, JobStatus.CANCELLED, MESSAGE_CANCELLED)
            raise
        except Exception as e:
            logger.exception(f"[{job_id}] Batch analysis failed: {e}")
            self._finish(job_id, JobStatus.FAILED, f"Analysis failed: {e}", error=str(e))

    async def _process_users(
        self,
        job_id: UUID,
        by_user: "OrderedDict[UUID, List[BotDetectionSignal]]",
    ) -> int:
        """Score every user, sequentially or through a bounded pool."""
        scored = 0

        async def handle(user_id: UUID, user_signals: List[BotDetectionSignal]) -> None:
            nonlocal scored
            if await self._process_user(job_id, user_id, user_signals):
                scored += 1
                self._job_store.update(job_id, users_scored=scored)

        pool_size = self._config.max_concurrent_users
        if pool_size <= 1:
            for user_id, user_signals in by_user.items():
                await handle(user_id, user_signals)
            return scored

        semaphore = asyncio.Semaphore(pool_size)

        async def bounded(user_id: UUID, user_signals: List[BotDetectionSignal]) -> None:
            async with semaphore:
                await handle(user_id, user_signals)

        await asyncio.gather(*(bounded(u, s) for u, s in by_user.items()))
        return scored

    async def _process_user(
        self,
        job_id: UUID,
        user_id: UUID,
        signals: List[BotDetectionSignal],
    ) -> bool:
        """
        Handle one user. Returns True if the user's score was stored.

        Signals are marked processed only after both the score and the
        badge update have been stored. Any earlier failure counts as a
        failed attempt on the user's signals.
        """
        try:
            score = self._scorer.calculate_risk_score(user_id, signals)
            await self._repository.create_or_update_risk_score(score)
        except Exception as e:
            logger.error(f"[{job_id}] Failed to score user {user_id}: {e}")
            await self._record_failure(job_id, user_id, signals)
            return False

        try:
            current = await self._repository.get_badge_status_by_user(user_id)
            updated = self._badge_machine.evaluate(user_id, current, score.overall_score)
            if updated is not None:
                await self._repository.create_or_update_badge_status(updated)
        except Exception as e:
            logger.error(f"[{job_id}] Failed to update badge for user {user_id}: {e}")
            await self._record_failure(job_id, user_id, signals)
            return True

        try:
            await self._repository.mark_bot_signals_as_processed([s.id for s in signals])
        except Exception as e:
            logger.error(
                f"[{job_id}] Failed to mark {len(signals)} signals processed "
                f"for user {user_id}: {e}"
            )
            await self._record_failure(job_id, user_id, signals)
            return True

        if updated is not None and (current is None or current.status != updated.status):
            await self._send_badge_update(job_id, updated)

        if score.overall_score > self._config.notification_threshold:
            await self._notify_user(job_id, user_id, signals)

        return True

    async def _record_failure(
        self,
        job_id: UUID,
        user_id: UUID,
        signals: Sequence[BotDetectionSignal],
    ) -> None:
        try:
            await self._repository.record_failed_processing([s.id for s in signals])
        except Exception as e:
            logger.error(
                f"[{job_id}] Failed to record failed attempt for user {user_id}: {e}"
            )
            return

        limit = self._config.max_signal_attempts
        parked = [s for s in signals if s.processing_attempts + 1 >= limit]
        if parked:
            logger.warning(
                f"[{job_id}] Parked {len(parked)} signals for user {user_id} "
                f"after {limit} failed attempts"
            )

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def _notify_user(
        self,
        job_id: UUID,
        user_id: UUID,
        signals: Sequence[BotDetectionSignal],
    ) -> None:
        now = self._clock.now()
        created: List[BotFollowerNotification] = []

        for signal in signals:
            notification = BotFollowerNotification(
                user_id=user_id,
                bot_follower_id=signal.user_id,
                signal_id=signal.id,
                notification_type=self._config.notification_type,
                sent_at=now,
            )
            try:
                await self._repository.create_bot_notification(notification)
                created.append(notification)
            except Exception as e:
                logger.error(
                    f"[{job_id}] Failed to store notification for user {user_id}, "
                    f"signal {signal.id}: {e}"
                )

        if not created:
            return

        try:
            await self._notifier.send_bot_follower_notification(user_id, created)
        except Exception as e:
            logger.error(f"[{job_id}] Failed to notify user {user_id}: {e}")

    async def _send_badge_update(self, job_id: UUID, badge: UserBadgeStatus) -> None:
        try:
            await self._notifier.send_badge_status_update(
                badge.user_id, badge.status, badge.revocation_reason
            )
        except Exception as e:
            logger.error(
                f"[{job_id}] Failed to send badge update for user {badge.user_id}: {e}"
            )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _group_by_user(
        signals: Sequence[BotDetectionSignal],
    ) -> "OrderedDict[UUID, List[BotDetectionSignal]]":
        grouped: "OrderedDict[UUID, List[BotDetectionSignal]]" = OrderedDict()
        for signal in signals:
            grouped.setdefault(signal.user_id, []).append(signal)
        return grouped

    def _finish(self, job_id: UUID, status: JobStatus, message: str, **changes) -> None:
        self._job_store.update(
            job_id,
            status=status,
            message=message,
            completed_at=self._clock.now(),
            **changes,
        )

    def _on_task_done(self, job_id: UUID, task: asyncio.Task) -> None:
        self._tasks.pop(job_id, None)

        # A task cancelled before its first step never runs its handler.
        record = self._job_store.get(job_id)
        if record is None or record.status != JobStatus.RUNNING:
            return
        if task.cancelled():
            self._finish(job_id, JobStatus.CANCELLED, MESSAGE_CANCELLED)
        elif task.exception() is not None:
            error = task.exception()
            self._finish(job_id, JobStatus.FAILED, f"Analysis failed: {error}", error=str(error))
