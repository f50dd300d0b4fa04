"""Structured logging tests"""
import json
import logging

from reminders.domain.enums import Channel
from reminders.utils.logger import JsonFormatter, correlation_scope, get_correlation_id


def make_record(**extra):
    record = logging.LogRecord("reminders.test", logging.WARNING, __file__, 1, "Delivery attempt failed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_extras_and_correlation_id_are_emitted():
    record = make_record(rule_id="RULE-1", channel=Channel.EMAIL, password="hunter2")

    with correlation_scope("SWP-abc"):
        line = json.loads(JsonFormatter().format(record))

    assert line["level"] == "WARNING"
    assert line["message"] == "Delivery attempt failed"
    assert line["correlation_id"] == "SWP-abc"
    assert line["rule_id"] == "RULE-1"
    assert line["channel"] == "email"
    assert "password" not in line


def test_correlation_scope_restores_previous_id():
    with correlation_scope("COR-outer"):
        with correlation_scope("SWP-inner"):
            assert get_correlation_id() == "SWP-inner"
        assert get_correlation_id() == "COR-outer"
