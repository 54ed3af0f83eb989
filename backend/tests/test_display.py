from datetime import datetime, timedelta, timezone

import pytest

from levelcert import models
from levelcert.config import settings
from levelcert.services import display_score, display_time


@pytest.fixture(autouse=True)
def beijing_offset(monkeypatch):
    monkeypatch.setattr(settings, 'DISPLAY_TZ_OFFSET_HOURS', 8)


def test_utcnow_is_timezone_aware():
    now = models.utcnow()
    assert now.tzinfo is not None
    assert now.utcoffset() == timedelta(0)


@pytest.mark.parametrize('value', [
    datetime(2024, 1, 1, 0, 0, 0),
    datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc),
    datetime(2024, 1, 1, 2, 0, 0, tzinfo=timezone(timedelta(hours=2))),
    '2024-01-01 00:00:00',
    '2024-01-01 00:00:00.123456',
    '2024-01-01 00:00:00+00:00',
])
def test_display_time_normalizes_to_utc_then_shifts(value):
    assert display_time(value) == '2024-01-01 08:00:00'


def test_display_time_none():
    assert display_time(None) is None


def test_display_score():
    assert display_score(None) is None
    assert display_score(95.0) == 95
    assert isinstance(display_score(95.0), int)
    assert display_score(77.5) == 77.5
    assert display_score(88) == 88
