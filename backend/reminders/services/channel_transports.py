"""Channel Transports - External delivery for email relay, Slack and Teams

Each transport posts a small JSON payload to a configured webhook. A channel
whose URL is not configured has no transport; the dispatcher fails such
deliveries terminally.
"""
from typing import Any, Dict, Optional
import httpx

from ..config.settings import Settings, settings as default_settings
from ..domain.enums import Channel
from ..domain.errors import ChannelDeliveryError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WebhookTransport:
    """POST notifications to a webhook URL"""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        frontend_url: str = "",
        client: Optional[httpx.AsyncClient] = None
    ):
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.frontend_url = frontend_url.rstrip("/")
        self._client = client

    def build_payload(
        self,
        channel: Channel,
        recipient_id: str,
        title: str,
        message: str,
        action_url: Optional[str]
    ) -> Dict[str, Any]:
        link = f"{self.frontend_url}{action_url}" if action_url else None
        payload: Dict[str, Any] = {
            "channel": Channel(channel).value,
            "recipient_id": recipient_id,
            "title": title,
            "message": message,
            "action_url": link,
        }
        if channel in (Channel.SLACK, Channel.TEAMS):
            # Incoming-webhook formats only look at "text"
            payload["text"] = f"*{title}*\n{message}" + (f"\n{link}" if link else "")
        return payload

    async def send(
        self,
        channel: Channel,
        recipient_id: str,
        title: str,
        message: str,
        action_url: Optional[str]
    ) -> bool:
        """
        Deliver one message

        Raises:
            ChannelDeliveryError: the webhook rejected the request
        """
        payload = self.build_payload(channel, recipient_id, title, message, action_url)

        if self._client is not None:
            response = await self._client.post(self.url, json=payload, timeout=self.timeout_seconds)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.url, json=payload)

        if response.status_code >= 400:
            raise ChannelDeliveryError(
                f"{Channel(channel).value} webhook returned {response.status_code}",
                details={"channel": Channel(channel).value, "status_code": response.status_code}
            )
        return True


def build_transports(config: Optional[Settings] = None) -> Dict[Channel, WebhookTransport]:
    """Transports for every channel with a configured URL"""
    config = config or default_settings
    urls = {
        Channel.EMAIL: config.email_relay_url,
        Channel.SLACK: config.slack_webhook_url,
        Channel.TEAMS: config.teams_webhook_url,
    }

    transports = {}
    for channel, url in urls.items():
        if url:
            transports[channel] = WebhookTransport(
                url,
                timeout_seconds=config.webhook_timeout_seconds,
                frontend_url=config.frontend_url
            )
        else:
            logger.info(f"No transport configured for {channel.value}")
    return transports
