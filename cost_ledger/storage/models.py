"""
Data models for storage layer.

Defines the normalized cost entry shape emitted by collectors, the
deduplicated ledger record and the per-service collection status, together
with their document (camelCase) representations.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from cost_ledger.errors import ValidationError

LEDGER_COLLECTION = "costs"
STATUS_COLLECTION = "collection_status"
DEFAULT_CURRENCY = "USD"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse a timestamp from a datetime, date or ISO-8601 string.

    Naive values are taken as UTC.

    Raises:
        ValidationError: If the value cannot be interpreted as a timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"Unparseable timestamp: {value!r}")
    else:
        raise ValidationError(f"Unparseable timestamp: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def ledger_date(timestamp: datetime) -> str:
    """UTC calendar day of a timestamp as YYYY-MM-DD."""
    return parse_timestamp(timestamp).date().isoformat()


def ledger_key(service_id: str, timestamp: datetime) -> str:
    """Composite ledger key: ``{serviceId}_{YYYY-MM-DD}``."""
    return f"{service_id.strip().lower()}_{ledger_date(timestamp)}"


def _to_float(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number, got {value!r}")


@dataclass(frozen=True)
class ResourceCost:
    """Cost of one resource (model, product line, cloud service) within a day."""
    resource_id: str
    name: str
    type: str
    cost: float
    tags: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resourceId": self.resource_id,
            "name": self.name,
            "type": self.type,
            "cost": self.cost,
            "tags": dict(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResourceCost":
        if not isinstance(data, Mapping):
            raise ValidationError(f"Resource must be a mapping, got {type(data).__name__}")
        resource_id = data.get("resourceId") or data.get("name")
        if not resource_id:
            raise ValidationError("Resource is missing resourceId")
        tags = data.get("tags") or {}
        if not isinstance(tags, Mapping):
            raise ValidationError(f"Tags of resource {resource_id!r} must be a mapping")
        return cls(
            resource_id=str(resource_id),
            name=str(data.get("name") or resource_id),
            type=str(data.get("type") or ""),
            cost=_to_float(data.get("cost", 0), f"cost of resource {resource_id!r}"),
            tags={str(k): str(v) for k, v in tags.items()},
        )


@dataclass(frozen=True)
class CostEntry:
    """Normalized cost of one service for one calendar day.

    This is the contract every collector adapter emits. Entries are not
    validated on construction; ``cost_ledger.core.validation`` decides
    which entries of a batch are accepted.
    """
    service_id: str
    timestamp: datetime
    total_cost: float
    currency: str = DEFAULT_CURRENCY
    resources: List[ResourceCost] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def date(self) -> str:
        return ledger_date(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serviceId": self.service_id,
            "timestamp": parse_timestamp(self.timestamp).isoformat(),
            "totalCost": self.total_cost,
            "currency": self.currency,
            "resources": [r.to_dict() for r in self.resources],
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CostEntry":
        """Parse the camelCase document shape produced by collectors.

        Raises:
            ValidationError: If a field cannot be parsed
        """
        if not isinstance(data, Mapping):
            raise ValidationError(f"Cost entry must be a mapping, got {type(data).__name__}")
        if "totalCost" not in data:
            raise ValidationError("Cost entry is missing totalCost")

        resources = data.get("resources") or []
        if not isinstance(resources, list):
            raise ValidationError("resources must be a list")
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, Mapping):
            raise ValidationError("metadata must be a mapping")

        return cls(
            service_id=str(data.get("serviceId") or ""),
            timestamp=parse_timestamp(data.get("timestamp")),
            total_cost=_to_float(data["totalCost"], "totalCost"),
            currency=str(data.get("currency") or DEFAULT_CURRENCY),
            resources=[ResourceCost.from_dict(r) for r in resources],
            metadata=dict(metadata),
        )


@dataclass(frozen=True)
class LedgerRecord:
    """Persisted, deduplicated form of a cost entry.

    Exactly one record exists per (service_id, date). ``created_at`` is set
    on first write and never changes; ``updated_at`` moves on every write.
    """
    service_id: str
    timestamp: datetime
    total_cost: float
    currency: str
    resources: List[ResourceCost]
    metadata: Dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @property
    def date(self) -> str:
        return ledger_date(self.timestamp)

    @property
    def key(self) -> str:
        return ledger_key(self.service_id, self.timestamp)

    @classmethod
    def from_entry(cls, entry: CostEntry, created_at: datetime, updated_at: datetime) -> "LedgerRecord":
        day = parse_timestamp(entry.timestamp).date()
        return cls(
            service_id=entry.service_id.strip().lower(),
            timestamp=datetime(day.year, day.month, day.day, tzinfo=timezone.utc),
            total_cost=float(entry.total_cost),
            currency=entry.currency,
            resources=[replace(r, cost=float(r.cost), tags=dict(r.tags)) for r in entry.resources],
            metadata=dict(entry.metadata),
            created_at=created_at,
            updated_at=updated_at,
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "serviceId": self.service_id,
            "date": self.date,
            "timestamp": self.timestamp.isoformat(),
            "totalCost": self.total_cost,
            "currency": self.currency,
            "resources": [r.to_dict() for r in self.resources],
            "metadata": dict(self.metadata),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "LedgerRecord":
        return cls(
            service_id=doc["serviceId"],
            timestamp=parse_timestamp(doc["timestamp"]),
            total_cost=float(doc.get("totalCost") or 0),
            currency=doc.get("currency") or DEFAULT_CURRENCY,
            resources=[ResourceCost.from_dict(r) for r in doc.get("resources") or []],
            metadata=dict(doc.get("metadata") or {}),
            created_at=parse_timestamp(doc["createdAt"]),
            updated_at=parse_timestamp(doc["updatedAt"]),
        )


class CollectionState(Enum):
    """Outcome of the most recent collection attempt."""
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class CollectionStatus:
    """Last collection outcome of one service. Overwritten on every attempt."""
    service_id: str
    status: CollectionState
    last_run: datetime
    costs_collected: int = 0
    warning: Optional[str] = None
    error: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "serviceId": self.service_id,
            "status": self.status.value,
            "lastRun": self.last_run.isoformat(),
            "costsCollected": self.costs_collected,
            "warning": self.warning,
            "error": self.error,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "CollectionStatus":
        return cls(
            service_id=doc["serviceId"],
            status=CollectionState(doc["status"]),
            last_run=parse_timestamp(doc["lastRun"]),
            costs_collected=int(doc.get("costsCollected") or 0),
            warning=doc.get("warning"),
            error=doc.get("error"),
        )
