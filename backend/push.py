"""Push delivery. The transport itself is external; this module only defines the seam."""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

# Status codes a push gateway uses to say the address no longer exists
INVALID_ADDRESS_STATUSES = (404, 410)


@dataclass(frozen=True)
class PushMessage:
    title: str
    body: str


@dataclass(frozen=True)
class PushResult:
    ok: bool
    reason: Optional[str] = None
    # True when the address is stale and should be dropped from the registry
    invalid_address: bool = False

    @classmethod
    def success(cls) -> "PushResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str, invalid_address: bool = False) -> "PushResult":
        return cls(ok=False, reason=reason, invalid_address=invalid_address)


class PushSender(Protocol):
    async def send(self, address: str, message: PushMessage) -> PushResult:
        ...


class LoggingPushSender:
    """Development sender: records the message in the log and reports success."""

    async def send(self, address: str, message: PushMessage) -> PushResult:
        logger.info("Push to %s...: %s - %s", address[:12], message.title, message.body)
        return PushResult.success()


class WebhookPushSender:
    """
    Hands messages to an HTTP push gateway as JSON:
        {"token": ..., "notification": {"title": ..., "body": ...}}

    Never raises: transport errors become failed PushResults.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def send(self, address: str, message: PushMessage) -> PushResult:
        payload = {
            "token": address,
            "notification": {"title": message.title, "body": message.body},
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("Push gateway unreachable: %s", e)
            return PushResult.failure(f"transport error: {e}")

        if resp.status_code in INVALID_ADDRESS_STATUSES:
            return PushResult.failure(f"address not registered ({resp.status_code})", invalid_address=True)
        if resp.status_code >= 400:
            return PushResult.failure(f"gateway returned {resp.status_code}")
        return PushResult.success()


def build_push_sender(webhook_url: Optional[str], timeout: float = 10.0) -> PushSender:
    if webhook_url:
        return WebhookPushSender(webhook_url, timeout=timeout)
    return LoggingPushSender()
