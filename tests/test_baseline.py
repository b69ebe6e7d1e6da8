"""
Unit tests for baseline computation.

Tests the trailing 7-day window taken from ledger records.
"""

from datetime import datetime, timedelta, timezone

import pytest

from cost_ledger.core.baseline import (
    BASELINE_DAYS,
    BaselineState,
    ResourceBaseline,
    TrailingBaseline,
    compute_trailing_baseline,
    percent_change,
    sort_window,
)
from cost_ledger.storage.models import LedgerRecord, ResourceCost

START = datetime(2025, 10, 1, tzinfo=timezone.utc)


def record(day_offset, cost, resources=None, service_id="aws"):
    timestamp = START + timedelta(days=day_offset)
    return LedgerRecord(
        service_id=service_id,
        timestamp=timestamp,
        total_cost=cost,
        currency="USD",
        resources=resources or [],
        metadata={},
        created_at=timestamp,
        updated_at=timestamp,
    )


class TestPercentChange:
    """Test percent change against an average."""

    def test_increase(self):
        assert percent_change(15.0, 10.0) == pytest.approx(50.0)

    def test_decrease_is_negative(self):
        assert percent_change(5.0, 10.0) == pytest.approx(-50.0)

    def test_zero_average_is_zero(self):
        """No division by zero: a zero baseline never reports a change."""
        assert percent_change(100.0, 0.0) == 0.0


class TestComputeTrailingBaseline:
    """Test baseline computation from a service window."""

    def test_empty_window_is_cold(self):
        baseline = compute_trailing_baseline([])

        assert baseline.state == BaselineState.COLD
        assert baseline.current is None
        assert baseline.window_start is None

    def test_insufficient_history_is_cold(self):
        window = [record(d, 1.0) for d in range(BASELINE_DAYS)]

        baseline = compute_trailing_baseline(window)

        assert baseline.state == BaselineState.COLD
        assert baseline.current.timestamp == START + timedelta(days=BASELINE_DAYS - 1)
        assert len(baseline.baseline_records) == BASELINE_DAYS - 1

    def test_warm_with_exactly_eight_records(self):
        window = [record(d, float(d + 1)) for d in range(BASELINE_DAYS + 1)]

        baseline = compute_trailing_baseline(window)

        assert baseline.state == BaselineState.WARM
        assert baseline.average_cost == pytest.approx(4.0)  # mean of 1..7
        assert baseline.current.total_cost == 8.0
        assert baseline.window_start == START
        assert baseline.window_end == START + timedelta(days=6)

    def test_only_most_recent_prior_days_are_used(self):
        window = [record(d, 1000.0) for d in range(5)]
        window += [record(d, 2.0) for d in range(5, 13)]

        baseline = compute_trailing_baseline(window)

        assert baseline.average_cost == pytest.approx(2.0)
        assert baseline.window_start == START + timedelta(days=5)

    def test_window_order_does_not_matter(self):
        window = [record(d, float(d)) for d in range(10)]

        forward = compute_trailing_baseline(window)
        backward = compute_trailing_baseline(list(reversed(window)))

        assert forward == backward

    def test_resource_average_uses_only_days_listing_it(self):
        window = []
        for d in range(BASELINE_DAYS):
            resources = [ResourceCost("ec2", "EC2", "Service", 4.0)]
            if d < 3:
                resources.append(ResourceCost("s3", "S3", "Service", float(d + 1)))
            window.append(record(d, sum(r.cost for r in resources), resources))
        window.append(record(BASELINE_DAYS, 4.0, [ResourceCost("ec2", "EC2", "Service", 4.0)]))

        baseline = compute_trailing_baseline(window)

        assert baseline.resources["ec2"] == ResourceBaseline("ec2", 4.0, 7)
        assert baseline.resources["s3"].average_cost == pytest.approx(2.0)
        assert baseline.resources["s3"].sample_count == 3


class TestTrailingBaselineValidation:
    """Test invariants of a warm baseline."""

    def test_warm_requires_full_window(self):
        with pytest.raises(ValueError):
            TrailingBaseline(
                state=BaselineState.WARM,
                current=record(3, 1.0),
                baseline_records=[record(d, 1.0) for d in range(3)],
            )

    def test_warm_baseline_must_precede_current(self):
        with pytest.raises(ValueError, match="precede"):
            TrailingBaseline(
                state=BaselineState.WARM,
                current=record(0, 1.0),
                baseline_records=[record(d, 1.0) for d in range(1, 8)],
            )

    def test_resource_baseline_rejects_empty_sample(self):
        with pytest.raises(ValueError):
            ResourceBaseline("ec2", 1.0, 0)


class TestSortWindow:
    def test_ties_broken_by_key(self):
        same_day = [record(0, 1.0, service_id="b"), record(0, 1.0, service_id="a")]

        assert [r.service_id for r in sort_window(same_day)] == ["a", "b"]
