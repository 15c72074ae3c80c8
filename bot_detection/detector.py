"""
Signal Detector - Turns follower events into bot detection signals.

Rules:
- rapid_follows: one follower doing a burst of follows within a window
- ip_cluster: many distinct followers sharing one source IP

Each rule emits at most one signal per event. Both may fire.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from core.clock import ClockProtocol, SystemClock

from .config import DetectionConfig
from .exceptions import SignalDetectionError
from .repository import FraudDetectionRepository
from .types import BotDetectionSignal, FollowerEvent, SignalType


logger = logging.getLogger(__name__)


class SignalDetector:
    """
    Evaluates detection rules for a single follower event.

    The IP rule reads follower history from the repository; the
    rapid-follow rule works on the events handed in by the caller.
    """

    def __init__(
        self,
        repository: FraudDetectionRepository,
        config: Optional[DetectionConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._repository = repository
        self.config = config or DetectionConfig()
        self._clock = clock or SystemClock()

        # Statistics
        self._stats = {
            "events_evaluated": 0,
            "rapid_follows": 0,
            "ip_clusters": 0,
            "ip_lookup_failures": 0,
        }

    async def detect_bot_signals(
        self,
        event: FollowerEvent,
        recent_events: Sequence[FollowerEvent],
    ) -> List[BotDetectionSignal]:
        """
        Run every rule against an event.

        Args:
            event: The triggering follow event
            recent_events: Recent events for the same follower

        Returns:
            All emitted signals (possibly empty)

        Raises:
            SignalDetectionError: if the IP history lookup fails. The
                error's `signals` holds the rapid-follow result.
        """
        self._stats["events_evaluated"] += 1
        signals: List[BotDetectionSignal] = []

        rapid = self.detect_rapid_follows(event, recent_events)
        if rapid is not None:
            signals.append(rapid)

        try:
            cluster = await self.detect_ip_clustering(event)
        except SignalDetectionError as e:
            e.signals = list(signals)
            raise

        if cluster is not None:
            signals.append(cluster)

        return signals

    def detect_rapid_follows(
        self,
        event: FollowerEvent,
        recent_events: Sequence[FollowerEvent],
    ) -> Optional[BotDetectionSignal]:
        """Flag a follower whose follows within the window reach the threshold."""
        window = timedelta(seconds=self.config.rapid_follow_window_seconds)
        cutoff = event.timestamp - window

        in_window = [
            e for e in recent_events
            if e.follower_id == event.follower_id and e.timestamp > cutoff
        ]
        count = len(in_window)
        threshold = self.config.rapid_follow_threshold

        if count < threshold:
            return None

        min_interval = self._min_interval_seconds(in_window)

        if (
            min_interval is not None
            and min_interval < self.config.rapid_follow_min_interval_seconds
        ):
            confidence = self.config.rapid_follow_scripted_confidence
        elif count > threshold * 2:
            confidence = self.config.rapid_follow_extreme_confidence
        else:
            confidence = self.config.rapid_follow_base_confidence

        evidence = (
            f"{count} follows within {self._format_window(window)} "
            f"(threshold {threshold})"
        )
        if min_interval is not None:
            evidence += f", minimum interval {min_interval:.2f}s"

        self._stats["rapid_follows"] += 1
        logger.info(
            f"Rapid follows detected for {event.follower_id}: "
            f"count={count}, confidence={confidence}"
        )

        return BotDetectionSignal(
            user_id=event.follower_id,
            signal_type=SignalType.RAPID_FOLLOWS,
            confidence_score=confidence,
            detected_at=self._clock.now(),
            evidence=evidence,
        )

    async def detect_ip_clustering(
        self,
        event: FollowerEvent,
    ) -> Optional[BotDetectionSignal]:
        """
        Flag an IP shared by many distinct followers.

        Raises:
            SignalDetectionError: if the IP history cannot be read
        """
        ip = event.source_ip_address
        if not ip:
            return None

        now = self._clock.now()
        date_from = self._clock.days_ago(self.config.ip_cluster_window_days)

        try:
            ip_events = await self._repository.get_follower_events_by_ip(ip, date_from, now)
        except Exception as e:
            self._stats["ip_lookup_failures"] += 1
            logger.error(f"Failed to load follower events for IP {ip}: {e}")
            raise SignalDetectionError(
                f"Failed to load follower events for IP {ip}: {e}",
                details={"ip": ip},
            ) from e

        distinct = {e.follower_id for e in ip_events}
        threshold = self.config.ip_cluster_threshold

        if len(distinct) < threshold:
            return None

        if len(distinct) >= threshold * 2:
            confidence = self.config.ip_cluster_high_confidence
        else:
            confidence = self.config.ip_cluster_base_confidence

        related = frozenset(distinct - {event.follower_id})

        self._stats["ip_clusters"] += 1
        logger.info(
            f"IP cluster detected on {ip}: {len(distinct)} distinct followers, "
            f"confidence={confidence}"
        )

        return BotDetectionSignal(
            user_id=event.follower_id,
            signal_type=SignalType.IP_CLUSTER,
            confidence_score=confidence,
            detected_at=now,
            evidence=(
                f"{len(distinct)} distinct followers from IP {ip} within "
                f"{self.config.ip_cluster_window_days} days (threshold {threshold})"
            ),
            related_accounts=related,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _min_interval_seconds(events: Sequence[FollowerEvent]) -> Optional[float]:
        if len(events) < 2:
            return None
        timestamps = sorted(e.timestamp for e in events)
        return min(
            (later - earlier).total_seconds()
            for earlier, later in zip(timestamps, timestamps[1:])
        )

    @staticmethod
    def _format_window(window: timedelta) -> str:
        seconds = int(window.total_seconds())
        if seconds % 3600 == 0:
            return f"{seconds // 3600}h"
        if seconds % 60 == 0:
            return f"{seconds // 60}m"
        return f"{seconds}s"

    def get_stats(self) -> Dict[str, Any]:
        return dict(self._stats)
