from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from biabook.core.time import convert_timezone, ensure_tz, is_valid_timezone, parse_datetime


@pytest.mark.parametrize(
    ("name", "ok"),
    [("America/New_York", True), ("UTC", True), ("Mars/Olympus", False), ("", False), (None, False)],
)
def test_is_valid_timezone(name, ok):
    assert is_valid_timezone(name) is ok


def test_parse_datetime_accepts_z_and_naive_values():
    utc = parse_datetime("2026-03-10T15:00:00Z", "America/New_York")
    assert utc.utcoffset().total_seconds() == 0

    naive = parse_datetime("2026-03-10T10:00:00", "America/Chicago")
    assert naive.tzinfo == ZoneInfo("America/Chicago")


def test_ensure_tz_leaves_aware_datetimes_alone():
    aware = datetime(2026, 1, 1, 12, tzinfo=ZoneInfo("Europe/London"))
    assert ensure_tz(aware, "America/New_York") is aware


def test_convert_business_time_to_customer_time():
    business = datetime(2026, 7, 1, 9, 0)
    customer = convert_timezone(business, to_timezone="America/Los_Angeles", from_timezone="America/New_York")
    assert (customer.hour, customer.minute) == (6, 0)
    assert customer.tzinfo == ZoneInfo("America/Los_Angeles")


def test_convert_timezone_rejects_unknown_zone():
    with pytest.raises(ValueError, match="Unknown timezone"):
        convert_timezone(datetime(2026, 1, 1), to_timezone="Nowhere/Land")
