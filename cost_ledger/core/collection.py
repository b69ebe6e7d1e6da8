"""
Collection orchestration.

Runs one collection attempt per service (collector -> reconciliation ->
status) and exposes the inbound operations used by the CLI or a scheduler.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

import structlog

from cost_ledger.collectors.base import CollectorRegistry, CredentialProvider
from cost_ledger.errors import AdapterError, CostLedgerError
from cost_ledger.storage.models import CollectionStatus

from .anomaly import AnomalyDetector, AnomalyEvent
from .reconciliation import ReconciliationStore
from .status import CollectionStatusTracker
from .validation import SkippedEntry, normalize_service_id

logger = structlog.get_logger()


class ServiceLocks:
    """One lock per service id, so a service is never collected twice at once."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, service_id: str) -> threading.Lock:
        with self._guard:
            if service_id not in self._locks:
                self._locks[service_id] = threading.Lock()
            return self._locks[service_id]

    @contextmanager
    def hold(self, service_id: str) -> Iterator[None]:
        lock = self._lock_for(service_id)
        with lock:
            yield


@dataclass(frozen=True)
class CollectionResult:
    """Outcome of one triggered collection. Exactly one of summary or error applies."""
    service_id: str
    costs_collected: int = 0
    new_records: int = 0
    updated_records: int = 0
    skipped: List[SkippedEntry] = field(default_factory=list)
    warning: Optional[str] = None
    error: Optional[CostLedgerError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"serviceId": self.service_id, "success": False, "error": self.error.to_dict()}
        data: Dict[str, Any] = {
            "serviceId": self.service_id,
            "success": True,
            "costsCollected": self.costs_collected,
            "newRecords": self.new_records,
            "updatedRecords": self.updated_records,
        }
        if self.skipped:
            data["skipped"] = [s.to_dict() for s in self.skipped]
        if self.warning:
            data["warning"] = self.warning
        return data


class CollectionService:
    """Entry point for triggering collections and reading their results.

    All collaborators are passed in; the service holds no other state than
    the per-service locks.
    """

    def __init__(
        self,
        registry: CollectorRegistry,
        credentials: CredentialProvider,
        reconciler: ReconciliationStore,
        tracker: CollectionStatusTracker,
        detector: AnomalyDetector,
        default_threshold_percent: float = 50.0,
    ):
        self.registry = registry
        self.credentials = credentials
        self.reconciler = reconciler
        self.tracker = tracker
        self.detector = detector
        self.default_threshold_percent = default_threshold_percent
        self._locks = ServiceLocks()

    def trigger_collection(self, service_id: str) -> CollectionResult:
        """Collect, reconcile and record the status of one service.

        Never raises: failures are recorded as the service's status and
        returned in ``CollectionResult.error``.
        """
        try:
            service_id = normalize_service_id(service_id)
        except CostLedgerError as e:
            return CollectionResult(service_id=str(service_id), error=e)

        try:
            adapter = self.registry.get(service_id)
        except CostLedgerError as e:
            logger.warning("collection_unknown_service", service_id=service_id)
            return CollectionResult(service_id=service_id, error=e)

        with self._locks.hold(service_id):
            log = logger.bind(service_id=service_id)
            log.info("collection_started")
            try:
                credentials = self.credentials.get(service_id)
                try:
                    collected = adapter.collect(credentials)
                except CostLedgerError:
                    raise
                except Exception as e:
                    raise AdapterError(str(e) or type(e).__name__) from e

                reconciled = self.reconciler.reconcile(service_id, collected.entries)
            except Exception as e:
                error = e if isinstance(e, CostLedgerError) else CostLedgerError(str(e) or type(e).__name__)
                log.error("collection_failed", code=error.code, error=error.message, exc_info=True)
                self._record_failure(service_id, error)
                return CollectionResult(service_id=service_id, error=error)

            warning = self._combine_warnings(collected.warning, reconciled.skipped)
            self._record_success(service_id, reconciled.processed, warning)
            log.info(
                "collection_complete",
                costs_collected=reconciled.processed,
                new_records=reconciled.new_records,
                updated_records=reconciled.updated_records,
            )
            return CollectionResult(
                service_id=service_id,
                costs_collected=reconciled.processed,
                new_records=reconciled.new_records,
                updated_records=reconciled.updated_records,
                skipped=reconciled.skipped,
                warning=warning,
            )

    def trigger_all(self) -> List[CollectionResult]:
        """Trigger every registered service, one after the other."""
        return [self.trigger_collection(service_id) for service_id in self.registry.service_ids()]

    def get_anomalies(
        self,
        service_id: Optional[str] = None,
        threshold_percent: Optional[float] = None,
    ) -> List[AnomalyEvent]:
        """Anomalies for one service or all services, at the configured default threshold."""
        if threshold_percent is None:
            threshold_percent = self.default_threshold_percent
        return self.detector.detect(threshold_percent, service_id=service_id)

    def get_collection_statuses(self) -> Dict[str, CollectionStatus]:
        return self.tracker.get_all()

    def get_collection_status(self, service_id: str) -> Optional[CollectionStatus]:
        return self.tracker.get(service_id)

    @staticmethod
    def _combine_warnings(warning: Optional[str], skipped: List[SkippedEntry]) -> Optional[str]:
        parts = [warning] if warning else []
        if skipped:
            parts.append(f"Skipped {len(skipped)} invalid entries")
        return "; ".join(parts) or None

    def _record_success(self, service_id: str, count: int, warning: Optional[str]) -> None:
        try:
            self.tracker.record_success(service_id, count, warning)
        except Exception:
            logger.error("status_record_failed", service_id=service_id, outcome="success", exc_info=True)

    def _record_failure(self, service_id: str, error: CostLedgerError) -> None:
        try:
            self.tracker.record_failure(service_id, error.message)
        except Exception:
            logger.error("status_record_failed", service_id=service_id, outcome="error", exc_info=True)
