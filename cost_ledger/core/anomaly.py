"""
Anomaly detection for cost patterns.

Flags days whose spend, for a whole service or for a single resource, rose
above a caller supplied percentage over the trailing baseline.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog

from cost_ledger.storage.models import LedgerRecord, utc_now
from cost_ledger.storage.repository import LedgerRepository

from .baseline import (
    BASELINE_DAYS,
    BaselineState,
    compute_trailing_baseline,
    percent_change,
)
from .validation import normalize_service_id

logger = structlog.get_logger()

# Increase above which a spike is HIGH rather than MEDIUM
HIGH_SEVERITY_PERCENT = 100.0


class AnomalyType(Enum):
    """Granularity at which an anomaly was detected."""
    COST_SPIKE = "cost_spike"
    RESOURCE_SPIKE = "resource_spike"


class AnomalySeverity(Enum):
    """Severity levels for detected anomalies."""
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class AnomalyEvent:
    """Detected anomaly with details and explanation. Computed, never stored."""
    service_id: str
    type: AnomalyType
    severity: AnomalySeverity
    current_cost: float
    average_cost: float
    percent_change: float
    timestamp: datetime
    message: str
    resource_id: Optional[str] = None
    resource_name: Optional[str] = None
    resource_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "serviceId": self.service_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "currentCost": self.current_cost,
            "averageCost": self.average_cost,
            "percentChange": self.percent_change,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
        }
        if self.type == AnomalyType.RESOURCE_SPIKE:
            data.update(
                resourceId=self.resource_id,
                resourceName=self.resource_name,
                resourceType=self.resource_type,
            )
        return data


def _severity(change: float) -> AnomalySeverity:
    return AnomalySeverity.HIGH if change > HIGH_SEVERITY_PERCENT else AnomalySeverity.MEDIUM


def detect_anomalies(window: Sequence[LedgerRecord], threshold_percent: float) -> List[AnomalyEvent]:
    """Detect cost and resource spikes on the most recent day of a window.

    Rules:
    - cost_spike: day total rose more than threshold_percent over the
      average of the BASELINE_DAYS preceding days
    - resource_spike: same comparison per resource of the current day,
      against that resource's own baseline average
    - severity is HIGH above a 100% increase, MEDIUM otherwise

    Args:
        window: Ledger records of a single service, in any order
        threshold_percent: Percent increase that must be exceeded (strictly)

    Returns:
        Service event first, then resource events in the current day's
        resource order. Empty if there are fewer than BASELINE_DAYS prior days.

    Raises:
        ValueError: If the window mixes services or the threshold is invalid
    """
    if threshold_percent is None or threshold_percent < 0:
        raise ValueError("threshold_percent must be >= 0")

    services = {record.service_id for record in window}
    if len(services) > 1:
        raise ValueError(f"Window mixes services: {sorted(services)}")

    baseline = compute_trailing_baseline(window)
    if baseline.state == BaselineState.COLD:
        return []

    current = baseline.current
    anomalies: List[AnomalyEvent] = []

    change = percent_change(current.total_cost, baseline.average_cost)
    if change > threshold_percent:
        anomalies.append(AnomalyEvent(
            service_id=current.service_id,
            type=AnomalyType.COST_SPIKE,
            severity=_severity(change),
            current_cost=current.total_cost,
            average_cost=baseline.average_cost,
            percent_change=change,
            timestamp=current.timestamp,
            message=(
                f"Cost spike on {current.date}: ${current.total_cost:,.2f} vs "
                f"{BASELINE_DAYS}-day average ${baseline.average_cost:,.2f} (+{change:,.1f}%)"
            ),
        ))

    for resource in current.resources:
        resource_baseline = baseline.resources.get(resource.resource_id)
        if resource_baseline is None:
            continue
        change = percent_change(resource.cost, resource_baseline.average_cost)
        if change > threshold_percent:
            anomalies.append(AnomalyEvent(
                service_id=current.service_id,
                type=AnomalyType.RESOURCE_SPIKE,
                severity=_severity(change),
                current_cost=resource.cost,
                average_cost=resource_baseline.average_cost,
                percent_change=change,
                timestamp=current.timestamp,
                message=(
                    f"Resource spike on {current.date}: {resource.name} ${resource.cost:,.2f} vs "
                    f"average ${resource_baseline.average_cost:,.2f} (+{change:,.1f}%)"
                ),
                resource_id=resource.resource_id,
                resource_name=resource.name,
                resource_type=resource.type,
            ))

    return anomalies


class AnomalyDetector:
    """Runs anomaly detection against the ledger, one service window at a time."""

    def __init__(
        self,
        ledger: LedgerRepository,
        lookback_days: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ):
        if lookback_days <= BASELINE_DAYS:
            raise ValueError(f"lookback_days must be > {BASELINE_DAYS}")
        self.ledger = ledger
        self.lookback_days = lookback_days
        self.clock = clock

    def window_for(self, service_id: str) -> List[LedgerRecord]:
        """Ledger records of one service within the lookback period, oldest first."""
        today = self.clock().date()
        start = today - timedelta(days=self.lookback_days)
        return self.ledger.get_records(
            service_id=service_id,
            start_date=start.isoformat(),
            end_date=today.isoformat(),
        )

    def detect(self, threshold_percent: float, service_id: Optional[str] = None) -> List[AnomalyEvent]:
        """Detect anomalies for one service, or for every service in the ledger.

        Each service is evaluated against its own window only.
        """
        if service_id is not None:
            service_ids = [normalize_service_id(service_id)]
        else:
            service_ids = self.ledger.list_service_ids()

        anomalies: List[AnomalyEvent] = []
        for sid in service_ids:
            found = detect_anomalies(self.window_for(sid), threshold_percent)
            if found:
                logger.info("anomalies_detected", service_id=sid, count=len(found))
            anomalies.extend(found)
        return anomalies
