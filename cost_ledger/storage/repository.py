"""
Repository pattern for ledger access.

Read access to ledger records plus the administrative delete. Writes go
through the reconciliation store only.
"""

from typing import List, Optional

import structlog

from .documents import DocumentStore
from .models import LEDGER_COLLECTION, LedgerRecord

logger = structlog.get_logger()

DEFAULT_LIMIT = 100


class LedgerRepository:
    """Typed view over the ledger collection of a document store."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get(self, key: str) -> Optional[LedgerRecord]:
        """Fetch one record by its composite key."""
        found = self.store.batch_get(LEDGER_COLLECTION, [key])
        if key not in found:
            return None
        return LedgerRecord.from_document(found[key])

    def get_records(
        self,
        service_id: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[LedgerRecord]:
        """Get records with optional filtering.

        Args:
            service_id: Optional filter for one service
            start_date: Optional inclusive lower bound (YYYY-MM-DD)
            end_date: Optional inclusive upper bound (YYYY-MM-DD)

        Returns:
            Records ordered by date (oldest first)
        """
        docs = self.store.query(
            LEDGER_COLLECTION,
            service_id=service_id,
            start_date=start_date,
            end_date=end_date,
        )
        return [LedgerRecord.from_document(doc) for doc in docs]

    def get_recent_records(
        self,
        service_id: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> List[LedgerRecord]:
        """Newest records first, at most `limit` of them."""
        if limit <= 0:
            raise ValueError("limit must be > 0")
        docs = self.store.query(
            LEDGER_COLLECTION,
            service_id=service_id,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            newest_first=True,
        )
        return [LedgerRecord.from_document(doc) for doc in docs]

    def list_service_ids(self) -> List[str]:
        """Every service id with at least one ledger record, sorted."""
        return self.store.distinct_service_ids(LEDGER_COLLECTION)

    def delete_record(self, key: str) -> bool:
        """Remove a record. Administrative action, never used by reconciliation."""
        deleted = self.store.delete(LEDGER_COLLECTION, key)
        logger.info("ledger_record_deleted", key=key, deleted=deleted)
        return deleted
