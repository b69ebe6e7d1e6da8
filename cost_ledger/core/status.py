"""
Collection status tracking.

Keeps the outcome of the most recent collection attempt per service for
health reporting. No history is kept.
"""

from datetime import datetime
from typing import Callable, Dict, Optional

import structlog

from cost_ledger.storage.documents import DocumentStore
from cost_ledger.storage.models import (
    STATUS_COLLECTION,
    CollectionState,
    CollectionStatus,
    utc_now,
)

from .validation import normalize_service_id

logger = structlog.get_logger()


class CollectionStatusTracker:
    """Records success or failure of collection attempts per service."""

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def _write(self, status: CollectionStatus) -> CollectionStatus:
        self.store.batch_write(STATUS_COLLECTION, {status.service_id: status.to_document()})
        return status

    def record_success(self, service_id: str, count: int, warning: Optional[str] = None) -> CollectionStatus:
        """Overwrite the service status with a successful attempt."""
        if count < 0:
            raise ValueError("count cannot be negative")
        status = CollectionStatus(
            service_id=normalize_service_id(service_id),
            status=CollectionState.SUCCESS,
            last_run=self.clock(),
            costs_collected=count,
            warning=warning or None,
        )
        return self._write(status)

    def record_failure(self, service_id: str, error_message: str) -> CollectionStatus:
        """Overwrite the service status with a failed attempt."""
        status = CollectionStatus(
            service_id=normalize_service_id(service_id),
            status=CollectionState.ERROR,
            last_run=self.clock(),
            costs_collected=0,
            error=error_message or "Unknown error",
        )
        return self._write(status)

    def get(self, service_id: str) -> Optional[CollectionStatus]:
        key = normalize_service_id(service_id)
        found = self.store.batch_get(STATUS_COLLECTION, [key])
        if key not in found:
            return None
        return CollectionStatus.from_document(found[key])

    def get_all(self) -> Dict[str, CollectionStatus]:
        """Latest status of every service that was ever collected, by service id."""
        docs = self.store.all(STATUS_COLLECTION)
        return {key: CollectionStatus.from_document(docs[key]) for key in sorted(docs)}
