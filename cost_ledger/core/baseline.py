"""
Trailing baseline computation.

Establishes the normal daily spend of a service and of each of its
resources from the days immediately preceding the day under inspection.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence

from cost_ledger.storage.models import LedgerRecord

# Fixed length of the trailing window; not a tunable
BASELINE_DAYS = 7


class BaselineState(Enum):
    """State of baseline computation based on data availability."""
    COLD = "cold"  # Fewer than BASELINE_DAYS prior days
    WARM = "warm"  # Full trailing window available


@dataclass(frozen=True)
class ResourceBaseline:
    """Average cost of one resource over the baseline days that list it."""
    resource_id: str
    average_cost: float
    sample_count: int

    def __post_init__(self):
        if self.sample_count <= 0:
            raise ValueError("sample_count must be > 0")
        if self.average_cost < 0:
            raise ValueError("average_cost cannot be negative")


@dataclass(frozen=True)
class TrailingBaseline:
    """Baseline of one service relative to its most recent ledger day."""
    state: BaselineState
    current: Optional[LedgerRecord]
    baseline_records: List[LedgerRecord] = field(default_factory=list)
    average_cost: float = 0.0
    resources: Dict[str, ResourceBaseline] = field(default_factory=dict)

    def __post_init__(self):
        """Validate that a warm baseline is complete and strictly precedes the current day."""
        if self.state == BaselineState.WARM:
            if self.current is None or len(self.baseline_records) != BASELINE_DAYS:
                raise ValueError(f"warm baseline needs {BASELINE_DAYS} prior records and a current record")
            if self.baseline_records[-1].timestamp > self.current.timestamp:
                raise ValueError("baseline must precede the current record")

    @property
    def window_start(self) -> Optional[datetime]:
        return self.baseline_records[0].timestamp if self.baseline_records else None

    @property
    def window_end(self) -> Optional[datetime]:
        return self.baseline_records[-1].timestamp if self.baseline_records else None


def sort_window(window: Sequence[LedgerRecord]) -> List[LedgerRecord]:
    """Order records ascending by day; ties fall back to the ledger key."""
    return sorted(window, key=lambda r: (r.timestamp, r.key))


def compute_trailing_baseline(window: Sequence[LedgerRecord]) -> TrailingBaseline:
    """Compute the trailing baseline of a single service's window.

    The most recent record is the day under inspection; the baseline is the
    BASELINE_DAYS records immediately before it, never an all-time average.
    A resource's average only counts the baseline days that list it.

    Args:
        window: Ledger records of one service, in any order

    Returns:
        TrailingBaseline, COLD when there is not enough history
    """
    ordered = sort_window(window)
    if not ordered:
        return TrailingBaseline(state=BaselineState.COLD, current=None)

    current = ordered[-1]
    prior = ordered[:-1]
    if len(prior) < BASELINE_DAYS:
        return TrailingBaseline(state=BaselineState.COLD, current=current, baseline_records=prior)

    baseline_records = prior[-BASELINE_DAYS:]
    average_cost = sum(r.total_cost for r in baseline_records) / len(baseline_records)

    totals: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    for record in baseline_records:
        for resource in record.resources:
            totals[resource.resource_id] = totals.get(resource.resource_id, 0.0) + resource.cost
            counts[resource.resource_id] = counts.get(resource.resource_id, 0) + 1

    resources = {
        resource_id: ResourceBaseline(
            resource_id=resource_id,
            average_cost=totals[resource_id] / counts[resource_id],
            sample_count=counts[resource_id],
        )
        for resource_id in totals
    }

    return TrailingBaseline(
        state=BaselineState.WARM,
        current=current,
        baseline_records=baseline_records,
        average_cost=average_cost,
        resources=resources,
    )


def percent_change(current: float, average: float) -> float:
    """Percent increase of current over average; 0 when the average is 0."""
    if average == 0:
        return 0.0
    return (current - average) / average * 100
