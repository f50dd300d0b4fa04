"""
Pytest Configuration and Fixtures

This file contains shared fixtures and configuration for all tests.
MongoDB is replaced by mongomock; collaborators by the fakes in factories.
"""

import mongomock
import pytest

from reminders.domain.enums import Channel
from reminders.domain.models import ProjectInfo
from reminders.engine.dispatcher import Dispatcher
from reminders.engine.evaluator import RuleEvaluator
from reminders.engine.state_tracker import StateTracker
from reminders.engine.sweep import ReminderEngine
from reminders.repositories.fire_record_repo import FireRecordRepository
from reminders.repositories.inbox_repo import InboxRepository
from reminders.repositories.rule_repo import RuleRepository

from .factories import NOW, FakeDirectory, FakeProvider, FakeTransport, SleepRecorder


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def mongo_db():
    """A fresh in-memory database per test"""
    return mongomock.MongoClient()["reminders_test"]


@pytest.fixture
def rule_repo(mongo_db):
    return RuleRepository(mongo_db["reminder_rules"])


@pytest.fixture
def fire_repo(mongo_db):
    return FireRecordRepository(mongo_db["fire_records"])


@pytest.fixture
def inbox(mongo_db):
    return InboxRepository(mongo_db["notifications"])


@pytest.fixture
def tracker(fire_repo):
    return StateTracker(fire_repo)


@pytest.fixture
def directory():
    return FakeDirectory(
        roles={
            "pm": {"u-pm"},
            "pmo": {"u-pmo"},
            "finance": {"u-finance", "u-cfo"},
            "admin": {"u-admin"},
        },
        projects={
            "P-1": ProjectInfo(project_id="P-1", code="PRJ-001", name="Harbour Expansion", pm_id="u-pm"),
            "P-2": ProjectInfo(project_id="P-2", code="PRJ-002", name="Rail Depot", pm_id="u-pm2"),
        },
        users={"u-owner", "u-pm", "u-dev", "u-auditor"}
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def email_transport():
    return FakeTransport()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def evaluator():
    return RuleEvaluator(inclusive=True, calendar_days=False)


@pytest.fixture
def dispatcher(inbox, email_transport, sleeper):
    return Dispatcher(
        inbox,
        transports={Channel.EMAIL: email_transport},
        max_attempts=3,
        backoff_base_seconds=1.0,
        backoff_max_seconds=30.0,
        attempt_timeout_seconds=5.0,
        concurrency=4,
        sleep=sleeper
    )


@pytest.fixture
def engine(rule_repo, provider, directory, tracker, dispatcher, evaluator):
    return ReminderEngine(
        rules=rule_repo,
        provider=provider,
        directory=directory,
        tracker=tracker,
        dispatcher=dispatcher,
        evaluator=evaluator,
        concurrency=4,
        timeout_seconds=60
    )
