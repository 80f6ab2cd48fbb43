from datetime import date, datetime, timedelta, timezone

from frontdesk.dates import (
    days_between,
    display_date,
    month_folder,
    normalize_checkin_ymd,
    normalize_folder_date,
    parse_iso,
    safe_name,
    ymd,
)


def test_date_formats():
    d = date(2025, 1, 5)
    assert ymd(d) == "2025-01-05"
    assert display_date(d) == "05-01-2025"
    assert month_folder(d) == "jan"
    assert month_folder(date(2025, 12, 1)) == "dec"


def test_normalize_folder_date():
    assert normalize_folder_date("2025-01-05") == "2025-01-05"
    assert normalize_folder_date("05-01-2025") == "2025-01-05"
    assert normalize_folder_date("5-1-2025") == "2025-01-05"
    assert normalize_folder_date("January") is None
    assert normalize_folder_date("") is None


def test_normalize_checkin_ymd_prefers_iso_checkin():
    assert normalize_checkin_ymd({"checkIn": "2025-03-04T10:00:00Z", "checkInDate": "01/01/2020"}) == "2025-03-04"
    assert normalize_checkin_ymd({"checkInDate": "2025-03-04"}) == "2025-03-04"
    assert normalize_checkin_ymd({"checkInDate": "4/3/2025"}) == "2025-03-04"
    assert normalize_checkin_ymd({"checkInDate": "yesterday"}) == ""
    assert normalize_checkin_ymd({}) == ""


def test_parse_iso():
    assert parse_iso("2025-03-04T10:00:00") == datetime(2025, 3, 4, 10, 0)
    assert parse_iso("2025-03-04T10:00:00Z").tzinfo is not None
    assert parse_iso("not a date") is None
    assert parse_iso(None) is None


def test_safe_name():
    assert safe_name("A. Kumar") == "A_Kumar"
    assert safe_name("Ravi-K") == "Ravi-K"
    assert safe_name("Priya / Sharma") == "Priya_Sharma"


def test_days_between_rounds_up_and_is_at_least_one():
    start = datetime(2025, 1, 1, 10, 0)
    assert days_between(start, start) == 1
    assert days_between(start, start + timedelta(hours=3)) == 1
    assert days_between(start, start + timedelta(hours=25)) == 2
    assert days_between(start, start + timedelta(days=2)) == 2


def test_days_between_mixed_timezones():
    aware = datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert days_between(aware, datetime(2025, 1, 3, 9, 0)) == 2
