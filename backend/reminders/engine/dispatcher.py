"""Dispatcher - Delivers composed messages per (recipient, channel)

Every pair gets its own inbox record and is delivered independently: one
slow or failing channel never blocks or rolls back another. ``in_app``
delivery is the inbox write itself. External channels go through a
ChannelTransport with a per-attempt timeout and bounded exponential backoff;
once attempts are exhausted the record is marked failed for operators.
"""
import asyncio
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from .interfaces import ChannelTransport
from ..config.settings import settings
from ..domain.enums import Channel, DeliveryStatus
from ..domain.models import ComposedMessage, DeliveryOutcome, DispatchContext, Notification
from ..repositories.inbox_repo import InboxRepository
from ..utils.idgen import generate_notification_id
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class Dispatcher:
    """Fan a message out to recipients over channels"""

    def __init__(
        self,
        inbox: InboxRepository,
        transports: Optional[Dict[Channel, ChannelTransport]] = None,
        max_attempts: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        attempt_timeout_seconds: Optional[float] = None,
        concurrency: Optional[int] = None,
        sleep: Sleep = asyncio.sleep
    ):
        self.inbox = inbox
        self.transports: Dict[Channel, ChannelTransport] = dict(transports or {})
        self.max_attempts = max(1, max_attempts or settings.dispatch_max_attempts)
        self.backoff_base_seconds = (
            settings.dispatch_backoff_base_seconds if backoff_base_seconds is None else backoff_base_seconds
        )
        self.backoff_max_seconds = (
            settings.dispatch_backoff_max_seconds if backoff_max_seconds is None else backoff_max_seconds
        )
        self.attempt_timeout_seconds = attempt_timeout_seconds or settings.dispatch_attempt_timeout_seconds
        self.concurrency = max(1, concurrency or settings.dispatch_concurrency)
        self._sleep = sleep
        self._slots: Optional[asyncio.Semaphore] = None
        self._slots_loop: Optional[asyncio.AbstractEventLoop] = None

    def _delivery_slots(self) -> asyncio.Semaphore:
        """One pool of delivery slots shared by every dispatch on the running loop"""
        loop = asyncio.get_running_loop()
        if self._slots is None or self._slots_loop is not loop:
            self._slots = asyncio.Semaphore(self.concurrency)
            self._slots_loop = loop
        return self._slots

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based), capped"""
        return min(self.backoff_base_seconds * (2 ** (attempt - 1)), self.backoff_max_seconds)

    async def dispatch(
        self,
        recipients: Iterable[str],
        channels: Iterable[Channel],
        message: ComposedMessage,
        context: DispatchContext
    ) -> List[DeliveryOutcome]:
        """
        Deliver one message to every (recipient, channel) pair

        Args:
            recipients: Resolved user IDs
            channels: Rule channels
            message: Composed title and body
            context: Origin of the message (rule, entity, kind)

        Returns:
            One outcome per pair, ordered by (recipient, channel)
        """
        pairs: List[Tuple[str, Channel]] = sorted(
            {(recipient, Channel(channel)) for recipient in recipients for channel in channels},
            key=lambda pair: (pair[0], pair[1].value)
        )
        if not pairs:
            return []

        slots = self._delivery_slots()

        async def run(recipient_id: str, channel: Channel) -> DeliveryOutcome:
            async with slots:
                return await self._deliver_pair(recipient_id, channel, message, context)

        return list(await asyncio.gather(*(run(r, c) for r, c in pairs)))

    async def _deliver_pair(
        self,
        recipient_id: str,
        channel: Channel,
        message: ComposedMessage,
        context: DispatchContext
    ) -> DeliveryOutcome:
        notification = self.inbox.append(Notification(
            notification_id=generate_notification_id(),
            recipient_id=recipient_id,
            notification_type=context.notification_type,
            kind=context.kind,
            channel=channel,
            rule_id=context.rule_id,
            entity_type=context.entity_type,
            entity_id=context.entity_id,
            project_id=context.project_id,
            escalation_level=context.escalation_level,
            title=message.title,
            message=message.message,
            action_url=context.action_url,
            created_at=utc_now()
        ))

        if channel == Channel.IN_APP:
            self.inbox.mark_delivered(notification.notification_id, attempts=1)
            return self._outcome(notification, DeliveryStatus.DELIVERED, attempts=1)

        return await self._deliver_external(notification, message, context)

    async def _deliver_external(
        self,
        notification: Notification,
        message: ComposedMessage,
        context: DispatchContext
    ) -> DeliveryOutcome:
        transport = self.transports.get(notification.channel)
        if transport is None:
            error = f"No transport configured for channel {notification.channel.value}"
            self.inbox.mark_failed(notification.notification_id, attempts=0, error=error)
            return self._outcome(notification, DeliveryStatus.FAILED, attempts=0, error=error)

        last_error = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                sent = await asyncio.wait_for(
                    transport.send(
                        notification.channel,
                        notification.recipient_id,
                        message.title,
                        message.message,
                        context.action_url
                    ),
                    timeout=self.attempt_timeout_seconds
                )
                if sent:
                    self.inbox.mark_delivered(notification.notification_id, attempts=attempt)
                    logger.info(
                        f"Delivered notification over {notification.channel.value}",
                        extra={
                            "notification_id": notification.notification_id,
                            "channel": notification.channel.value,
                            "recipient_id": notification.recipient_id,
                        }
                    )
                    return self._outcome(notification, DeliveryStatus.DELIVERED, attempts=attempt)
                last_error = "transport reported failure"
            except asyncio.TimeoutError:
                last_error = f"timed out after {self.attempt_timeout_seconds}s"
            except Exception as e:
                last_error = f"{type(e).__name__}: {e}"

            logger.warning(
                f"Delivery attempt {attempt}/{self.max_attempts} failed: {last_error}",
                extra={
                    "notification_id": notification.notification_id,
                    "channel": notification.channel.value,
                    "recipient_id": notification.recipient_id,
                }
            )
            if attempt < self.max_attempts:
                self.inbox.record_attempt(notification.notification_id, attempts=attempt, error=last_error)
                await self._sleep(self.backoff_delay(attempt))

        self.inbox.mark_failed(notification.notification_id, attempts=self.max_attempts, error=last_error)
        return self._outcome(
            notification, DeliveryStatus.FAILED, attempts=self.max_attempts, error=last_error
        )

    @staticmethod
    def _outcome(
        notification: Notification,
        status: DeliveryStatus,
        attempts: int,
        error: Optional[str] = None
    ) -> DeliveryOutcome:
        return DeliveryOutcome(
            notification_id=notification.notification_id,
            recipient_id=notification.recipient_id,
            channel=notification.channel,
            status=status,
            attempts=attempts,
            error=error
        )
