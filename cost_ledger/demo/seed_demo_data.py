# cost_ledger/demo/seed_demo_data.py

from datetime import datetime, timedelta, timezone

from cost_ledger.core.reconciliation import ReconciliationStore
from cost_ledger.storage.db import DEFAULT_DB_PATH
from cost_ledger.storage.documents import SQLiteDocumentStore
from cost_ledger.storage.models import CostEntry, ResourceCost


def demo_entries(service_id: str, daily_costs, today=None):
    """One entry per day ending today, split over two resources."""
    today = today or datetime.now(timezone.utc).date()
    entries = []
    for offset, cost in enumerate(reversed(daily_costs)):
        day = today - timedelta(days=offset)
        entries.append(CostEntry(
            service_id=service_id,
            timestamp=datetime(day.year, day.month, day.day, tzinfo=timezone.utc),
            total_cost=cost,
            resources=[
                ResourceCost("compute", "Compute", "Service", round(cost * 0.7, 2)),
                ResourceCost("storage", "Storage", "Service", round(cost * 0.3, 2), {"env": "prod"}),
            ],
            metadata={"source": "demo"},
        ))
    return list(reversed(entries))


def seed(db_path: str = DEFAULT_DB_PATH) -> None:
    store = SQLiteDocumentStore(db_path)
    store.initialize_schema()
    reconciler = ReconciliationStore(store)
    reconciler.reconcile("aws", demo_entries("aws", [12.0, 11.5, 12.4, 12.1, 11.9, 12.0, 12.3, 31.8]))  # spike
    reconciler.reconcile("chatgpt", demo_entries("chatgpt", [3.2, 3.1, 3.4, 3.0, 3.3, 3.2, 3.1, 3.3]))


if __name__ == "__main__":
    seed()
    print("Demo cost data inserted")
