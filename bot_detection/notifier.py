"""
Bot Detection - Notification Delivery.

============================================================
PURPOSE
============================================================
Outbound delivery of bot-follower notices and badge status
updates.

============================================================
SENDERS
============================================================
- LoggingNotifier: writes structured log lines (development)
- TelegramNotifier: posts to a Telegram chat via the Bot API
- CompositeNotifier: fans out to several senders

A sender that cannot deliver raises NotificationError. The
batch orchestrator logs such failures and moves on.

============================================================
"""

import logging
from typing import List, Optional, Protocol, Sequence
from uuid import UUID

import httpx

from .config import NotifierConfig
from .exceptions import NotificationError
from .types import BadgeStatus, BotFollowerNotification


logger = logging.getLogger(__name__)


class BotNotifier(Protocol):
    """Outbound notification channel."""

    async def send_bot_follower_notification(
        self,
        user_id: UUID,
        notifications: Sequence[BotFollowerNotification],
    ) -> None: ...

    async def send_badge_status_update(
        self,
        user_id: UUID,
        status: BadgeStatus,
        reason: Optional[str] = None,
    ) -> None: ...


# ============================================================
# LOGGING NOTIFIER (DEVELOPMENT)
# ============================================================


class LoggingNotifier:
    """Logs notifications instead of delivering them."""

    def __init__(self, log_level: int = logging.INFO):
        self._log_level = log_level
        self.sent_count = 0

    async def send_bot_follower_notification(
        self,
        user_id: UUID,
        notifications: Sequence[BotFollowerNotification],
    ) -> None:
        self.sent_count += 1
        logger.log(
            self._log_level,
            f"[notify] user={user_id} bot_follower_notifications={len(notifications)} "
            f"signals={[str(n.signal_id) for n in notifications]}",
        )

    async def send_badge_status_update(
        self,
        user_id: UUID,
        status: BadgeStatus,
        reason: Optional[str] = None,
    ) -> None:
        self.sent_count += 1
        logger.log(
            self._log_level,
            f"[notify] user={user_id} badge_status={status.value}"
            + (f" reason={reason}" if reason else ""),
        )


# ============================================================
# TELEGRAM NOTIFIER
# ============================================================


class TelegramNotifier:
    """
    Send notifications to a Telegram chat.

    ============================================================
    USAGE
    ============================================================
    Requires a Telegram bot token and chat ID.
    The bot must be added to the chat.

    ============================================================
    """

    API_BASE = "https://api.telegram.org"

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Telegram sender.

        Args:
            bot_token: Telegram bot token
            chat_id: Target chat/channel ID
            timeout_seconds: Per-request timeout
            client: Shared HTTP client; a short-lived one is used if omitted
        """
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._timeout = timeout_seconds
        self._client = client

    @classmethod
    def from_config(cls, config: NotifierConfig) -> "TelegramNotifier":
        if not (config.telegram_bot_token and config.telegram_chat_id):
            raise NotificationError(
                "Telegram bot token and chat id are required", channel="telegram"
            )
        return cls(
            bot_token=config.telegram_bot_token,
            chat_id=config.telegram_chat_id,
            timeout_seconds=config.request_timeout_seconds,
        )

    async def send_bot_follower_notification(
        self,
        user_id: UUID,
        notifications: Sequence[BotFollowerNotification],
    ) -> None:
        lines = [
            "*Suspicious follower activity*",
            f"User: `{user_id}`",
            f"Flagged signals: {len(notifications)}",
        ]
        for n in list(notifications)[:10]:
            lines.append(f"- follower `{n.bot_follower_id}` (signal `{n.signal_id}`)")
        await self._send("\n".join(lines))

    async def send_badge_status_update(
        self,
        user_id: UUID,
        status: BadgeStatus,
        reason: Optional[str] = None,
    ) -> None:
        lines = [
            "*Badge status update*",
            f"User: `{user_id}`",
            f"Status: {status.value.upper()}",
        ]
        if reason:
            lines.append(f"Reason: {reason}")
        await self._send("\n".join(lines))

    async def _send(self, text: str) -> None:
        url = f"{self.API_BASE}/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": "Markdown",
        }

        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, timeout=self._timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(url, json=payload, timeout=self._timeout)
        except httpx.HTTPError as e:
            raise NotificationError(
                f"Telegram request failed: {e}", channel="telegram"
            ) from e

        if response.status_code != 200:
            raise NotificationError(
                f"Telegram returned HTTP {response.status_code}",
                channel="telegram",
                status_code=response.status_code,
            )


# ============================================================
# COMPOSITE NOTIFIER
# ============================================================


class CompositeNotifier:
    """
    Deliver through every configured notifier.

    Individual failures are logged. Raises only when every
    notifier failed.
    """

    def __init__(self, notifiers: List[BotNotifier]):
        self._notifiers = list(notifiers)

    async def send_bot_follower_notification(
        self,
        user_id: UUID,
        notifications: Sequence[BotFollowerNotification],
    ) -> None:
        errors = []
        for notifier in self._notifiers:
            try:
                await notifier.send_bot_follower_notification(user_id, notifications)
            except NotificationError as e:
                logger.error(f"{type(notifier).__name__} failed for user {user_id}: {e}")
                errors.append(e)
        self._raise_if_all_failed(errors)

    async def send_badge_status_update(
        self,
        user_id: UUID,
        status: BadgeStatus,
        reason: Optional[str] = None,
    ) -> None:
        errors = []
        for notifier in self._notifiers:
            try:
                await notifier.send_badge_status_update(user_id, status, reason)
            except NotificationError as e:
                logger.error(f"{type(notifier).__name__} failed for user {user_id}: {e}")
                errors.append(e)
        self._raise_if_all_failed(errors)

    def _raise_if_all_failed(self, errors: List[NotificationError]) -> None:
        if self._notifiers and len(errors) == len(self._notifiers):
            raise NotificationError(
                f"All {len(errors)} notifiers failed",
                details={"errors": [e.message for e in errors]},
            )


def create_notifier(config: Optional[NotifierConfig] = None) -> BotNotifier:
    """Build the notifier chain described by configuration."""
    config = config or NotifierConfig()
    notifiers: List[BotNotifier] = [LoggingNotifier()]
    if config.telegram_enabled:
        notifiers.append(TelegramNotifier.from_config(config))
    if len(notifiers) == 1:
        return notifiers[0]
    return CompositeNotifier(notifiers)
