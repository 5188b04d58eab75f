"""Concrete delivery channels: Resend for email, Telnyx for SMS.

Both talk to their provider over a shared httpx.AsyncClient with a
bounded timeout. LogOnlyChannel stands in when no provider is configured.
"""

import logging
from typing import Optional
from uuid import uuid4

import httpx

from channels.base import BaseChannel, DeliveryResult, OutboundMessage
from core.constants import Channel

logger = logging.getLogger(__name__)


class HttpProviderChannel(BaseChannel):
    """Shared plumbing for JSON-over-HTTPS providers."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def _post(self, path: str, payload: dict, recipient: str) -> DeliveryResult:
        try:
            response = await self._client.post(
                f"{self.base_url}{path}",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.TransportError as e:
            # Timeouts, refused connections, DNS: nothing reached the provider.
            logger.warning(f"{self.channel_type.value} transport error: {e!r}")
            return DeliveryResult(
                success=False,
                channel=self.channel_type,
                recipient=recipient,
                error=f"{type(e).__name__}: {e}",
                transient=True,
            )

        if response.is_success:
            return DeliveryResult.delivered(
                self.channel_type, recipient, external_id=self._external_id(response)
            )

        logger.warning(
            f"{self.channel_type.value} provider rejected send "
            f"(HTTP {response.status_code}): {response.text[:200]}"
        )
        return DeliveryResult(
            success=False,
            channel=self.channel_type,
            recipient=recipient,
            error=f"HTTP {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
        )

    def _external_id(self, response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("id") if isinstance(body, dict) else None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# ─── Email Channel ─────────────────────────────────────────────

class ResendEmailChannel(HttpProviderChannel):
    """Send email through the Resend HTTP API."""

    channel_type = Channel.EMAIL

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.resend.com",
        default_from: str = "hello@example.com",
        default_from_name: Optional[str] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(base_url, api_key, timeout=timeout, client=client)
        self.default_from = default_from
        self.default_from_name = default_from_name

    async def send(self, message: OutboundMessage) -> DeliveryResult:
        address = message.from_address or self.default_from
        name = message.from_name or self.default_from_name
        payload = {
            "from": f"{name} <{address}>" if name else address,
            "to": [message.recipient],
            "subject": message.subject or "",
            "html": message.body,
        }
        if message.text_body:
            payload["text"] = message.text_body
        if message.metadata:
            payload["tags"] = [
                {"name": k, "value": str(v)} for k, v in message.metadata.items() if v is not None
            ]
        return await self._post("/emails", payload, message.recipient)


# ─── SMS Channel ───────────────────────────────────────────────

class TelnyxSmsChannel(HttpProviderChannel):
    """Send SMS through the Telnyx messaging API."""

    channel_type = Channel.SMS

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.telnyx.com/v2",
        default_from: str = "",
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(base_url, api_key, timeout=timeout, client=client)
        self.default_from = default_from

    async def send(self, message: OutboundMessage) -> DeliveryResult:
        payload = {
            "from": message.from_address or self.default_from,
            "to": message.recipient,
            "text": message.body,
        }
        return await self._post("/messages", payload, message.recipient)

    def _external_id(self, response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        data = body.get("data") if isinstance(body, dict) else None
        return data.get("id") if isinstance(data, dict) else None


# ─── Log-only Channel ──────────────────────────────────────────

class LogOnlyChannel(BaseChannel):
    """Pretend delivery for environments without provider credentials."""

    def __init__(self, channel_type: Channel):
        self.channel_type = channel_type

    async def send(self, message: OutboundMessage) -> DeliveryResult:
        logger.info(
            f"[{self.channel_type.value}] would send to {message.recipient}: "
            f"{(message.subject or message.body)[:80]!r}"
        )
        return DeliveryResult.delivered(self.channel_type, message.recipient, f"log-{uuid4().hex[:12]}")
