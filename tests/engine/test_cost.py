from __future__ import annotations

import pytest

from trip_curator.config import PricingConfig
from trip_curator.engine import CostTracker


def test_cost_breakdown_prices_each_unit_kind() -> None:
    tracker = CostTracker(PricingConfig(), run_id="20260301-120000")
    tracker.record_tokens("perplexity", input_tokens=1_000_000, output_tokens=100_000)
    tracker.record_calls("places", 10)
    tracker.record_units("youtube", 300)

    breakdown = tracker.breakdown()
    assert list(breakdown.providers) == ["perplexity", "places", "youtube"]
    assert breakdown.providers["perplexity"].cost == pytest.approx(4.5)
    assert breakdown.providers["places"].calls == 10
    assert breakdown.providers["places"].cost == pytest.approx(0.32)
    assert breakdown.providers["youtube"].cost == 0
    assert breakdown.total == pytest.approx(4.82)
    assert breakdown.to_document()["total"] == pytest.approx(4.82)


def test_merge_adds_previous_spend() -> None:
    first = CostTracker()
    first.record_calls("places", 2)
    resumed = CostTracker()
    resumed.merge(first.breakdown())
    resumed.record_calls("places", 1)
    assert resumed.breakdown().providers["places"].calls == 3


def test_empty_tracker_costs_nothing() -> None:
    breakdown = CostTracker().breakdown()
    assert breakdown.providers == {}
    assert breakdown.total == 0
