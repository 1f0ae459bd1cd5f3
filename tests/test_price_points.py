"""Price point cache tests."""

from __future__ import annotations

import json
from datetime import date

import pytest

from app.core.errors import PriceCacheError
from app.services.price_points import PricePointCache


def _cache(tmp_path, clock=lambda: 1_700_000_000.0) -> PricePointCache:
    return PricePointCache(
        tmp_path / ".price-cache" / "prices.json",
        default_prices={"USDC": 1.0, "SUI": 0.0, "DEEP": 0.0},
        default_tokens_available=998_942,
        clock=clock,
    )


def test_first_merge_starts_from_default_record(tmp_path):
    cache = _cache(tmp_path)

    point = cache.merge("2024-03-01", prices={"SUI": 1.8})

    assert point.prices == {"USDC": 1.0, "SUI": 1.8, "DEEP": 0.0}
    assert point.funds_usd == 0.0
    assert point.tokens_available == 998_942
    assert point.timestamp == 1_700_000_000_000
    stored = json.loads(cache.path.read_text())
    assert stored == [
        {
            "date": "2024-03-01",
            "USDC": 1.0,
            "SUI": 1.8,
            "DEEP": 0.0,
            "FUNDS": 0.0,
            "TOKENS_AVAILABLE": 998942.0,
            "timestamp": 1_700_000_000_000,
        }
    ]


def test_merge_is_idempotent(tmp_path):
    cache = _cache(tmp_path)

    cache.merge(date(2024, 3, 1), prices={"SUI": 1.8}, funds_usd=1250.5)
    once = cache.path.read_text()
    cache.merge(date(2024, 3, 1), prices={"SUI": 1.8}, funds_usd=1250.5)

    assert cache.path.read_text() == once


def test_merge_preserves_unsupplied_fields_and_other_dates(tmp_path):
    cache = _cache(tmp_path)
    cache.merge("2024-03-01", prices={"SUI": 1.8, "DEEP": 0.2}, funds_usd=1000)
    cache.merge("2024-03-02", prices={"SUI": 1.9}, funds_usd=1100)

    cache.merge("2024-03-01", funds_usd=1010)

    first = cache.get("2024-03-01")
    assert first.prices["SUI"] == 1.8
    assert first.prices["DEEP"] == 0.2
    assert first.funds_usd == 1010
    second = cache.get("2024-03-02")
    assert second.funds_usd == 1100
    assert second.prices["SUI"] == 1.9


def test_store_is_sorted_newest_first(tmp_path):
    cache = _cache(tmp_path)
    for day in ("2024-03-02", "2024-02-28", "2024-03-05", "2024-03-01"):
        cache.merge(day, prices={"SUI": 1.0})

    stored_dates = [record["date"] for record in json.loads(cache.path.read_text())]

    assert stored_dates == ["2024-03-05", "2024-03-02", "2024-03-01", "2024-02-28"]
    assert cache.latest().date == "2024-03-05"
    assert cache.get("2024-03-03") is None


def test_price_for_date_falls_back_to_nearest_prior(tmp_path):
    cache = _cache(tmp_path)
    cache.merge("2024-03-01", prices={"DEEP": 0.5})
    cache.merge("2024-03-03", prices={"DEEP": 0.0})
    cache.merge("2024-03-05", prices={"DEEP": 0.7})

    assert cache.price_for_date("DEEP", "2024-03-05") == 0.7
    assert cache.price_for_date("DEEP", date(2024, 3, 4)) == 0.5
    assert cache.price_for_date("DEEP", "2024-02-29") is None
    assert cache.price_for_date("BTC", "2024-03-05") is None


def test_malformed_records_are_skipped(tmp_path):
    cache = _cache(tmp_path)
    cache.path.parent.mkdir(parents=True)
    cache.path.write_text(
        json.dumps(
            [
                {"date": "2024-03-02", "SUI": 2.0, "FUNDS": 5, "TOKENS_AVAILABLE": 10},
                {"date": "not-a-date", "SUI": 1.0},
                {"SUI": 3.0},
                "junk",
            ]
        )
    )

    points = cache.all()

    assert [point.date for point in points] == ["2024-03-02"]
    assert points[0].prices == {"SUI": 2.0}


def test_corrupt_file_is_never_overwritten(tmp_path):
    cache = _cache(tmp_path)
    cache.path.parent.mkdir(parents=True)
    cache.path.write_text("{not json")

    assert cache.all() == []
    with pytest.raises(PriceCacheError):
        cache.merge("2024-03-01", prices={"SUI": 1.0})
    assert cache.path.read_text() == "{not json"


def test_rejects_invalid_dates(tmp_path):
    cache = _cache(tmp_path)
    with pytest.raises(ValueError):
        cache.merge("03/01/2024", prices={"SUI": 1.0})
    assert not cache.path.exists()


def test_share_price_uses_unsold_tokens(tmp_path):
    cache = _cache(tmp_path)
    point = cache.merge("2024-03-01", funds_usd=2116.0, tokens_available=998_942)
    assert point.shares_outstanding(1_000_000) == 1058
    assert point.share_price(1_000_000) == pytest.approx(2.0)
    assert cache.default_point("2024-03-02").share_price(998_942) == 0.0


def test_merge_keeps_unparseable_records_for_other_dates(tmp_path):
    cache = _cache(tmp_path)
    cache.path.parent.mkdir(parents=True)
    malformed = {"date": "2024-03-01", "SUI": 1.7, "FUNDS": "n/a"}
    foreign = {"date": "03/04/2024", "SUI": 1.1}
    cache.path.write_text(
        json.dumps(
            [
                {"date": "2024-03-02", "SUI": 2.0, "note": "manual", "FUNDS": 5, "TOKENS_AVAILABLE": 10},
                malformed,
                foreign,
                "junk",
            ]
        )
    )

    cache.merge("2024-03-05", prices={"SUI": 2.5})

    stored = json.loads(cache.path.read_text())
    assert [record["date"] if isinstance(record, dict) else record for record in stored] == [
        "2024-03-05",
        "2024-03-02",
        "2024-03-01",
        "03/04/2024",
        "junk",
    ]
    assert stored[1] == {"date": "2024-03-02", "SUI": 2.0, "note": "manual", "FUNDS": 5, "TOKENS_AVAILABLE": 10}
    assert stored[2] == malformed
    assert stored[3] == foreign


def test_merge_into_a_malformed_record_leaves_file_untouched(tmp_path):
    cache = _cache(tmp_path)
    cache.path.parent.mkdir(parents=True)
    cache.path.write_text(json.dumps([{"date": "2024-03-01", "SUI": 1.7, "FUNDS": "n/a"}]))
    before = cache.path.read_text()

    with pytest.raises(PriceCacheError):
        cache.merge("2024-03-01", funds_usd=100.0)
    assert cache.path.read_text() == before


def test_merge_rewrites_non_numeric_keys_of_the_merged_day(tmp_path):
    cache = _cache(tmp_path)
    cache.path.parent.mkdir(parents=True)
    cache.path.write_text(json.dumps([{"date": "2024-03-01", "SUI": 1.7, "source": "manual"}]))

    point = cache.merge("2024-03-01", funds_usd=100.0)

    assert point.extra == {"source": "manual"}
    (stored,) = json.loads(cache.path.read_text())
    assert stored["source"] == "manual"
    assert stored["SUI"] == 1.7
    assert stored["FUNDS"] == 100.0
