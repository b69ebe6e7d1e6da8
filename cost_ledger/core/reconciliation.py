"""
Reconciliation of collected cost batches into the ledger.

Merges a batch of cost entries into the ledger with at most one record per
(service, calendar day), telling new records apart from updated ones.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Sequence

import structlog

from cost_ledger.errors import StoreError, StoreReadError, StoreWriteError
from cost_ledger.storage.documents import DocumentStore
from cost_ledger.storage.models import (
    LEDGER_COLLECTION,
    CostEntry,
    LedgerRecord,
    ledger_key,
    parse_timestamp,
    utc_now,
)

from .validation import SkippedEntry, normalize_service_id, partition_entries

logger = structlog.get_logger()


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconciliation call."""
    service_id: str
    new_records: int
    updated_records: int
    superseded: int = 0
    skipped: List[SkippedEntry] = field(default_factory=list)

    @property
    def processed(self) -> int:
        """Valid entries processed; always new_records + updated_records."""
        return self.new_records + self.updated_records

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serviceId": self.service_id,
            "newRecords": self.new_records,
            "updatedRecords": self.updated_records,
            "superseded": self.superseded,
            "skipped": [s.to_dict() for s in self.skipped],
        }


class ReconciliationStore:
    """Owns the merge of cost batches into the ledger.

    Each call performs at most two store round trips: one batched existence
    check and one batched write. Within a batch the last entry for a key
    wins; earlier entries for the same key count as updates of the record
    they would have produced.
    """

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def reconcile(self, service_id: str, batch: Sequence[CostEntry]) -> ReconcileResult:
        """Merge a batch of cost entries into the ledger.

        Args:
            service_id: Service the batch was collected for
            batch: Cost entries, possibly containing invalid ones

        Returns:
            ReconcileResult with new/updated counts and skipped entries

        Raises:
            ValidationError: If service_id itself is invalid
            StoreReadError: If the existence check fails (nothing written)
            StoreWriteError: If the batched write fails (may be partial)
        """
        service_id = normalize_service_id(service_id)
        valid, skipped = partition_entries(service_id, batch)
        for entry in skipped:
            logger.warning("cost_entry_skipped", service_id=service_id, index=entry.index, reason=entry.reason)

        # Batch order is kept; a later entry replaces the earlier one for its key
        latest: Dict[str, CostEntry] = {}
        occurrences: Dict[str, int] = {}
        for entry in valid:
            key = ledger_key(service_id, parse_timestamp(entry.timestamp))
            latest[key] = entry
            occurrences[key] = occurrences.get(key, 0) + 1
        superseded = sum(count - 1 for count in occurrences.values())

        if not latest:
            logger.info("reconcile_empty_batch", service_id=service_id, skipped=len(skipped))
            return ReconcileResult(service_id, 0, 0, 0, skipped)

        try:
            existing = self.store.batch_get(LEDGER_COLLECTION, list(latest))
        except StoreError:
            raise
        except Exception as e:
            raise StoreReadError(f"Existence check failed for {service_id}: {e}") from e

        now = self.clock()
        documents: Dict[str, Dict[str, Any]] = {}
        new_records = 0
        updated_records = superseded
        for key, entry in latest.items():
            if key in existing:
                created_at = parse_timestamp(existing[key].get("createdAt") or now)
                updated_records += 1
            else:
                created_at = now
                new_records += 1
            record = LedgerRecord.from_entry(entry, created_at=created_at, updated_at=now)
            documents[key] = record.to_document()

        try:
            self.store.batch_write(LEDGER_COLLECTION, documents)
        except StoreError:
            raise
        except Exception as e:
            raise StoreWriteError(f"Ledger write failed for {service_id}: {e}") from e

        logger.info(
            "reconcile_complete",
            service_id=service_id,
            new_records=new_records,
            updated_records=updated_records,
            superseded=superseded,
            skipped=len(skipped),
        )
        return ReconcileResult(service_id, new_records, updated_records, superseded, skipped)
