"""
Thin notification senders. Each platform maps to a callable taking the channel
target and message text and returning True on success.
"""

import logging
from typing import Callable

import httpx

from habit_reminders.app.core.config import settings

logger = logging.getLogger(__name__)


def _send_webhook(target: str, text: str) -> bool:
    response = httpx.post(target, json={"text": text}, timeout=settings.webhook_timeout_seconds)
    if response.is_success:
        return True
    logger.warning("Webhook %s answered %s", target, response.status_code)
    return False


def _send_log(target: str, text: str) -> bool:
    logger.info("[REMINDER] to=%s | %s", target, text)
    return True


SENDERS: dict[str, Callable[[str, str], bool]] = {
    "webhook": _send_webhook,
    "log": _send_log,
}


def send_notification(channel: dict, text: str) -> bool:
    """Deliver `text` over `channel`. Transport errors propagate to the caller."""
    sender = SENDERS.get(channel["platform"])
    if sender is None:
        logger.warning("No sender for platform %r (channel %s)", channel["platform"], channel.get("id"))
        return False
    return sender(channel["target"], text)
