from datetime import datetime, timezone

import pytest

from utils import (
    ExpiringCache,
    custom_field_value,
    normalize_search_text,
    parse_pipedrive_time,
    quarter_from_date,
    quarter_range,
    to_finite_number,
)


@pytest.mark.parametrize("value,expected", [
    (12, 12.0),
    ("12", 12.0),
    (" 7.5 ", 7.5),
    ("", None),
    ("abc", None),
    (None, None),
    (True, None),
    (float("nan"), None),
    ("inf", None),
    ({"value": 3}, None),
])
def test_to_finite_number(value, expected) -> None:
    assert to_finite_number(value) == expected


def test_normalize_search_text() -> None:
    assert normalize_search_text("José") == normalize_search_text("jose") == normalize_search_text("JOSÉ ") == "jose"
    assert normalize_search_text("Federico Iñigo") == "federico inigo"
    assert normalize_search_text(None) == ""


def test_custom_field_value_reads_v1_and_v2_shapes() -> None:
    assert custom_field_value({"custom_fields": {"k": 5}}, "k") == 5
    assert custom_field_value({"k": "x"}, "k") == "x"
    assert custom_field_value({"custom_fields": {"k": {"value": 9, "currency": "USD"}}}, "k") == 9
    assert custom_field_value({"k": 1}, "") is None


def test_parse_pipedrive_time() -> None:
    assert parse_pipedrive_time("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
    assert parse_pipedrive_time("2024-03-01 10:00:00") == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
    assert parse_pipedrive_time("yesterday") is None
    assert parse_pipedrive_time(None) is None


def test_quarters() -> None:
    assert [quarter_from_date(datetime(2024, m, 1)) for m in (1, 3, 4, 6, 7, 9, 10, 12)] == [1, 1, 2, 2, 3, 3, 4, 4]
    assert quarter_range(2024, 4) == (
        datetime(2024, 10, 1, tzinfo=timezone.utc),
        datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


def test_expiring_cache() -> None:
    now = [100.0]
    cache = ExpiringCache(ttl=60, clock=lambda: now[0])

    cache.set("k", [1])
    now[0] = 159.0
    assert cache.get("k") == [1]
    now[0] = 160.0
    assert cache.get("k") is None
    assert cache.get("missing") is None


def test_expiring_cache_sweeps_expired_entries_on_write() -> None:
    now = [0.0]
    cache = ExpiringCache(ttl=60, clock=lambda: now[0])

    cache.set("ana:2024:1", [1])
    cache.set("bea:2024:1", [2])
    now[0] = 61.0
    cache.set("ana:2024:2", [3])

    assert len(cache) == 1
    assert cache.get("ana:2024:2") == [3]
