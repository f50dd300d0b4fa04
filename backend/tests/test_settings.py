"""Settings validation tests"""
import pytest
from pydantic import ValidationError

from reminders.config.settings import Settings


def test_calendar_granularity_from_environment(monkeypatch):
    monkeypatch.setenv("TRIGGER_DAY_GRANULARITY", "calendar")

    assert Settings().uses_calendar_days is True


def test_elapsed_granularity_counts_elapsed_days():
    assert Settings(trigger_day_granularity="elapsed").uses_calendar_days is False


@pytest.mark.parametrize("value", ["calender", "days", ""])
def test_unknown_granularity_is_rejected(value):
    with pytest.raises(ValidationError):
        Settings(trigger_day_granularity=value)
