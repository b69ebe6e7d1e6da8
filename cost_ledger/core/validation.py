"""
Cost entry validation.

Entries are checked one by one before any ledger key is derived; a bad
entry is skipped without failing the rest of its batch.
"""

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from numbers import Real
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from cost_ledger.errors import ValidationError
from cost_ledger.storage.models import CostEntry, ResourceCost, parse_timestamp

SERVICE_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*$")


@dataclass(frozen=True)
class SkippedEntry:
    """An entry of a batch rejected by validation."""
    index: int
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "reason": self.reason}


def normalize_service_id(service_id: str) -> str:
    """Lowercase and check a service id.

    Raises:
        ValidationError: If the id is empty or not a lowercase token
    """
    if not isinstance(service_id, str) or not service_id.strip():
        raise ValidationError("service id is required")
    normalized = service_id.strip().lower()
    if not SERVICE_ID_PATTERN.match(normalized):
        raise ValidationError(f"Invalid service id: {service_id!r}")
    return normalized


def _check_cost(value: Any, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        raise ValidationError(f"{name} must be a number")
    finite = value.is_finite() if isinstance(value, Decimal) else math.isfinite(value)
    if not finite:
        raise ValidationError(f"{name} must be finite")
    if value < 0:
        raise ValidationError(f"{name} cannot be negative")


def validate_entry(entry: CostEntry, service_id: str) -> None:
    """Validate a single entry against the service it is reconciled for.

    Raises:
        ValidationError: Describing the first problem found
    """
    if not isinstance(entry, CostEntry):
        raise ValidationError(f"Expected CostEntry, got {type(entry).__name__}")
    if not isinstance(entry.service_id, str) or not entry.service_id.strip():
        raise ValidationError("Entry is missing service id")
    if entry.service_id.strip().lower() != service_id:
        raise ValidationError(
            f"Entry belongs to service {entry.service_id!r}, not {service_id!r}"
        )
    parse_timestamp(entry.timestamp)
    _check_cost(entry.total_cost, "totalCost")
    if not isinstance(entry.currency, str) or not entry.currency.strip():
        raise ValidationError("currency cannot be empty")
    if not isinstance(entry.metadata, Mapping):
        raise ValidationError("metadata must be a mapping")

    if not isinstance(entry.resources, (list, tuple)):
        raise ValidationError("resources must be a list")
    seen = set()
    for resource in entry.resources:
        if not isinstance(resource, ResourceCost):
            raise ValidationError(f"Expected ResourceCost, got {type(resource).__name__}")
        if not resource.resource_id:
            raise ValidationError("Resource is missing resourceId")
        if resource.resource_id in seen:
            raise ValidationError(f"Duplicate resourceId {resource.resource_id!r} in entry")
        seen.add(resource.resource_id)
        _check_cost(resource.cost, f"cost of resource {resource.resource_id!r}")
        if not isinstance(resource.tags, Mapping):
            raise ValidationError(f"Tags of resource {resource.resource_id!r} must be a mapping")


def partition_entries(
    service_id: str,
    batch: Sequence[CostEntry],
) -> Tuple[List[CostEntry], List[SkippedEntry]]:
    """Split a batch into valid entries (batch order kept) and skipped ones."""
    valid: List[CostEntry] = []
    skipped: List[SkippedEntry] = []
    for index, entry in enumerate(batch):
        try:
            validate_entry(entry, service_id)
        except ValidationError as e:
            skipped.append(SkippedEntry(index=index, reason=e.message))
            continue
        valid.append(entry)
    return valid, skipped
