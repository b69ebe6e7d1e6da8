"""
Cost reporting over ledger records.

Aggregations behind the summary and resource views: totals per service and
per-resource totals with their daily data points.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from cost_ledger.storage.models import LedgerRecord


@dataclass
class ServiceSummary:
    """Spend of one service over the reported records."""
    service_id: str
    total_cost: float = 0.0
    count: int = 0
    currency: str = "USD"
    first_date: Optional[str] = None
    last_date: Optional[str] = None


@dataclass
class ResourceTotal:
    """Spend of one resource across records, with its (date, cost) data points."""
    resource_id: str
    resource_type: str
    total_cost: float = 0.0
    tags: Dict[str, str] = field(default_factory=dict)
    data_points: List[Tuple[str, float]] = field(default_factory=list)


@dataclass
class CostSummary:
    services: Dict[str, ServiceSummary]
    total_cost: float
    last_updated: Optional[str]


def summarize_by_service(records: Sequence[LedgerRecord]) -> CostSummary:
    """Aggregate total cost, record count and date span per service."""
    services: Dict[str, ServiceSummary] = {}
    total_cost = 0.0
    last_updated: Optional[str] = None

    for record in records:
        summary = services.get(record.service_id)
        if summary is None:
            summary = ServiceSummary(
                service_id=record.service_id,
                currency=record.currency,
                first_date=record.date,
                last_date=record.date,
            )
            services[record.service_id] = summary

        summary.total_cost += record.total_cost
        summary.count += 1
        summary.first_date = min(summary.first_date, record.date)
        summary.last_date = max(summary.last_date, record.date)
        total_cost += record.total_cost
        if last_updated is None or record.date > last_updated:
            last_updated = record.date

    return CostSummary(
        services={sid: services[sid] for sid in sorted(services)},
        total_cost=total_cost,
        last_updated=last_updated,
    )


def _matches(tags: Mapping[str, str], tag_filter: Optional[Mapping[str, str]]) -> bool:
    if not tag_filter:
        return True
    return all(tags.get(key) == value for key, value in tag_filter.items())


def aggregate_resources(
    records: Sequence[LedgerRecord],
    tag_filter: Optional[Mapping[str, str]] = None,
) -> List[ResourceTotal]:
    """Sum each resource's cost across records.

    Args:
        records: Ledger records, usually of one service
        tag_filter: Only resources whose tags match every pair exactly

    Returns:
        Resource totals, most expensive first
    """
    resources: Dict[str, ResourceTotal] = {}
    for record in sorted(records, key=lambda r: (r.timestamp, r.key)):
        for resource in record.resources:
            if not _matches(resource.tags, tag_filter):
                continue
            total = resources.get(resource.resource_id)
            if total is None:
                total = ResourceTotal(
                    resource_id=resource.resource_id,
                    resource_type=resource.type,
                    tags=dict(resource.tags),
                )
                resources[resource.resource_id] = total
            total.total_cost += resource.cost
            total.data_points.append((record.date, resource.cost))

    return sorted(resources.values(), key=lambda r: (-r.total_cost, r.resource_id))
