# =============================================================================
# TELEGRAM NOTIFICATIONS
# =============================================================================
#
# Chat sink: one sendMessage POST per proposal. Non-2xx is a hard error.
# No retry here; a failed item is retried by the next tick.
#
# =============================================================================

import logging
from typing import Any, Dict, Optional

import requests

from shared.exceptions import ChatDeliveryError

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org/bot{token}"
DEFAULT_TIMEOUT = 10
MAX_MESSAGE_LENGTH = 4096


def channel_chat_id(channel_id: str) -> str:
    """Channel ids are configured without the -100 supergroup prefix."""
    channel_id = channel_id.strip()
    if channel_id.startswith("-"):
        return channel_id
    return f"-100{channel_id}"


class TelegramChatSink:
    """Posts proposal notifications to a Telegram channel."""

    def __init__(
        self,
        token: str,
        channel_id: str,
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = TELEGRAM_API_BASE.format(token=token) + "/sendMessage"
        self.chat_id = channel_chat_id(channel_id)
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, text: str, proposal_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Send a message.

        Returns:
            Parsed Telegram response

        Raises:
            ChatDeliveryError: On transport failure or non-2xx status
        """
        payload = {
            "chat_id": self.chat_id,
            "text": text[:MAX_MESSAGE_LENGTH],
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        }
        try:
            resp = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise ChatDeliveryError("Telegram: timeout while sending", proposal_id)
        except requests.RequestException as e:
            raise ChatDeliveryError(f"Telegram: request failed: {e}", proposal_id)

        if not resp.ok:
            raise ChatDeliveryError(
                f"Telegram API error: {resp.status_code} {resp.text[:100]}",
                proposal_id,
            )

        logger.debug("Telegram: message sent")
        try:
            return resp.json()
        except ValueError:
            return {}
