from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging

import httpx

from .metrics import notifications_sent_total
from .storage import KeyValueStore

logger = logging.getLogger("spotswitch")


class Messenger(ABC):
    @abstractmethod
    async def send(self, text: str) -> bool:
        """Deliver ``text``; return False instead of raising on failure."""


@dataclass
class TelegramMessenger(Messenger):
    """Posts messages through the Telegram Bot API ``sendMessage`` method."""

    token: str
    chat_id: str
    timeout: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None

    @property
    def url(self) -> str:
        return f"https://api.telegram.org/bot{self.token}/sendMessage"

    async def send(self, text: str) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.url, json={"chat_id": self.chat_id, "text": text})
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("Telegram rejected message: %s", exc.response.status_code)
            return False
        except httpx.HTTPError as exc:
            logger.error("Error sending telegram message: %s", exc)
            return False
        return True


class Notifier:
    """Logs status messages and forwards them to the key/value store and messenger.

    Args:
        device_name: Prefix identifying the sender in external messages
        kvs: Store receiving messages that carry a ``persist_key``
        messenger: External sink, None when messaging is disabled
    """

    def __init__(
        self,
        device_name: str,
        kvs: KeyValueStore | None = None,
        messenger: Messenger | None = None,
    ) -> None:
        self.device_name = device_name
        self.kvs = kvs
        self.messenger = messenger

    async def notify(
        self, message: str, send_externally: bool, persist_key: str | None = None
    ) -> None:
        logger.info("%s", message)
        if persist_key is not None and self.kvs is not None:
            try:
                await self.kvs.set(persist_key, message)
            except Exception as exc:
                logger.warning("Failed to persist message under %s: %s", persist_key, exc)
        if self.messenger is not None and send_externally:
            sent = await self.messenger.send(f"{self.device_name}: {message}")
            notifications_sent_total.labels(result="success" if sent else "error").inc()
