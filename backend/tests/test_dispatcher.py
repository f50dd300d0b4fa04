"""Dispatcher tests - per-pair delivery, retries and backoff"""
import asyncio

import pytest

from reminders.domain.enums import Channel, DeliveryStatus, EntityKind, NotificationType
from reminders.domain.models import ComposedMessage, DispatchContext
from reminders.engine.dispatcher import Dispatcher

from .factories import FakeTransport, SleepRecorder, run

MESSAGE = ComposedMessage(title="Milestone Due Reminder", message='Milestone "Quay wall" is due in 9 days')
CONTEXT = DispatchContext(
    rule_id="RULE-1",
    entity_type=EntityKind.MILESTONE,
    entity_id="MS-1",
    project_id="P-1",
    notification_type=NotificationType.MILESTONE_UPCOMING,
    action_url="/projects/P-1/milestones"
)


def by_channel(outcomes):
    return {(o.recipient_id, o.channel): o for o in outcomes}


class CountingTransport:
    """Records the most deliveries in flight at once"""

    def __init__(self):
        self.in_flight = 0
        self.peak = 0

    async def send(self, channel, recipient_id, title, message, action_url) -> bool:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        return True


class TestInApp:

    def test_inbox_write_is_the_delivery(self, dispatcher, inbox):
        outcomes = run(dispatcher.dispatch({"u-owner"}, [Channel.IN_APP], MESSAGE, CONTEXT))

        assert [o.status for o in outcomes] == [DeliveryStatus.DELIVERED]
        stored = inbox.get_notifications_for_user("u-owner")
        assert len(stored) == 1
        assert stored[0].delivery_status == DeliveryStatus.DELIVERED
        assert stored[0].rule_id == "RULE-1"
        assert stored[0].notification_type == NotificationType.MILESTONE_UPCOMING
        assert stored[0].is_read is False

    def test_no_pairs_no_records(self, dispatcher, inbox):
        assert run(dispatcher.dispatch(set(), [Channel.IN_APP], MESSAGE, CONTEXT)) == []
        assert run(dispatcher.dispatch({"u-owner"}, [], MESSAGE, CONTEXT)) == []
        assert inbox.count_for_user("u-owner") == 0

    def test_pairs_are_deduplicated_and_ordered(self, dispatcher, email_transport):
        outcomes = run(dispatcher.dispatch(
            ["u-b", "u-a", "u-b"],
            [Channel.IN_APP, Channel.EMAIL, Channel.IN_APP],
            MESSAGE,
            CONTEXT
        ))

        assert [(o.recipient_id, o.channel) for o in outcomes] == [
            ("u-a", Channel.EMAIL),
            ("u-a", Channel.IN_APP),
            ("u-b", Channel.EMAIL),
            ("u-b", Channel.IN_APP),
        ]
        assert len(email_transport.calls) == 2


class TestExternalChannels:

    def test_failing_channel_does_not_affect_in_app(self, dispatcher, email_transport, sleeper, inbox):
        email_transport.default = False

        outcomes = by_channel(run(dispatcher.dispatch(
            {"u-owner"}, [Channel.IN_APP, Channel.EMAIL], MESSAGE, CONTEXT
        )))

        assert outcomes[("u-owner", Channel.IN_APP)].status == DeliveryStatus.DELIVERED
        failed = outcomes[("u-owner", Channel.EMAIL)]
        assert failed.status == DeliveryStatus.FAILED
        assert failed.attempts == 3
        assert len(email_transport.calls) == 3
        assert sleeper.delays == [1.0, 2.0]

        dead_letters = inbox.list_failed()
        assert [n.notification_id for n in dead_letters] == [failed.notification_id]
        assert dead_letters[0].attempts == 3
        assert dead_letters[0].last_error == "transport reported failure"

    def test_succeeds_on_second_attempt(self, dispatcher, email_transport, sleeper, inbox):
        email_transport.outcomes = [False]

        [outcome] = run(dispatcher.dispatch({"u-owner"}, [Channel.EMAIL], MESSAGE, CONTEXT))

        assert outcome.status == DeliveryStatus.DELIVERED
        assert outcome.attempts == 2
        assert sleeper.delays == [1.0]

    def test_concurrent_dispatches_share_the_delivery_limit(self, inbox):
        transport = CountingTransport()
        dispatcher = Dispatcher(inbox, transports={Channel.EMAIL: transport}, concurrency=2)

        async def three_rules_at_once():
            return await asyncio.gather(*(
                dispatcher.dispatch({f"u-{rule}a", f"u-{rule}b"}, [Channel.EMAIL], MESSAGE, CONTEXT)
                for rule in range(3)
            ))

        batches = run(three_rules_at_once())

        assert [len(batch) for batch in batches] == [2, 2, 2]
        assert transport.peak == 2
        assert run(dispatcher.dispatch({"u-later"}, [Channel.EMAIL], MESSAGE, CONTEXT))[0].status == (
            DeliveryStatus.DELIVERED
        )
        assert inbox.get_notification(outcome.notification_id).attempts == 2

    def test_transport_exceptions_are_retried(self, dispatcher, email_transport):
        email_transport.outcomes = [RuntimeError("relay down"), RuntimeError("relay down")]

        [outcome] = run(dispatcher.dispatch({"u-owner"}, [Channel.EMAIL], MESSAGE, CONTEXT))

        assert outcome.delivered
        assert outcome.attempts == 3

    def test_transport_receives_message_and_link(self, dispatcher, email_transport):
        run(dispatcher.dispatch({"u-owner"}, [Channel.EMAIL], MESSAGE, CONTEXT))

        assert email_transport.calls == [{
            "channel": Channel.EMAIL,
            "recipient_id": "u-owner",
            "title": MESSAGE.title,
            "message": MESSAGE.message,
            "action_url": "/projects/P-1/milestones",
        }]

    def test_channel_without_transport_fails_immediately(self, dispatcher, inbox):
        [outcome] = run(dispatcher.dispatch({"u-owner"}, [Channel.SLACK], MESSAGE, CONTEXT))

        assert outcome.status == DeliveryStatus.FAILED
        assert outcome.attempts == 0
        assert "No transport configured" in outcome.error
        assert len(inbox.list_failed()) == 1

    def test_slow_transport_times_out(self, inbox):
        sleeper = SleepRecorder()
        dispatcher = Dispatcher(
            inbox,
            transports={Channel.TEAMS: FakeTransport(delay=0.5)},
            max_attempts=2,
            backoff_base_seconds=1.0,
            backoff_max_seconds=30.0,
            attempt_timeout_seconds=0.01,
            concurrency=2,
            sleep=sleeper
        )

        [outcome] = run(dispatcher.dispatch({"u-owner"}, [Channel.TEAMS], MESSAGE, CONTEXT))

        assert outcome.status == DeliveryStatus.FAILED
        assert outcome.error.startswith("timed out")
        assert sleeper.delays == [1.0]


@pytest.mark.parametrize("attempt,delay", [(1, 1.0), (2, 2.0), (3, 4.0), (4, 5.0), (9, 5.0)])
def test_backoff_is_exponential_and_capped(inbox, attempt, delay):
    dispatcher = Dispatcher(inbox, max_attempts=10, backoff_base_seconds=1.0, backoff_max_seconds=5.0)

    assert dispatcher.backoff_delay(attempt) == delay
