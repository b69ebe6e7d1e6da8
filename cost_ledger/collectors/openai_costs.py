"""
OpenAI organization costs collector.

Reads daily cost buckets from the OpenAI costs endpoint and normalizes them
into one cost entry per day with one resource per line item.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

import openai
import structlog
from openai import OpenAI

from cost_ledger.errors import AdapterError
from cost_ledger.storage.models import CostEntry, ResourceCost, utc_now

from .base import CollectorAdapter, CollectorResult

logger = structlog.get_logger()

COSTS_PATH = "/organization/costs"
SOURCE = "OpenAI Costs API"
MAX_PAGES = 50


class OpenAICostsCollector(CollectorAdapter):
    """Collects OpenAI API spend for the last ``days`` days.

    Credentials: ``apiKey`` (admin key, required) and ``organizationId``
    (optional).
    """

    def __init__(
        self,
        service_id: str = "chatgpt",
        days: int = 30,
        client_factory: Callable[..., Any] = OpenAI,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(service_id)
        if days <= 0:
            raise ValueError("days must be > 0")
        self.days = days
        self.client_factory = client_factory
        self.clock = clock

    def collect(self, credentials: Mapping[str, str]) -> CollectorResult:
        api_key = credentials.get("apiKey")
        if not api_key:
            raise AdapterError("OpenAI API key is required", code="missing_credentials")

        client = self.client_factory(api_key=api_key, organization=credentials.get("organizationId"))
        today = self.clock().date()
        start = datetime(today.year, today.month, today.day, tzinfo=timezone.utc) - timedelta(days=self.days)

        try:
            buckets = self._fetch_buckets(client, start)
        except openai.AuthenticationError as e:
            raise AdapterError(
                "Authentication failed. Verify that the API key is a valid admin key "
                "and that the organization id is correct.",
                code="adapter_auth_error",
            ) from e
        except openai.OpenAIError as e:
            raise AdapterError(f"Failed to collect OpenAI costs: {e}") from e

        entries = [self._to_entry(bucket) for bucket in buckets]
        total = sum(entry.total_cost for entry in entries)
        logger.info("openai_costs_collected", service_id=self.service_id, days=len(entries), total_cost=total)

        warning = None
        if total == 0:
            warning = (
                f"No OpenAI API usage detected in the last {self.days} days. "
                "If you have usage, check your OpenAI dashboard."
            )
        return CollectorResult(entries=entries, warning=warning)

    def _fetch_buckets(self, client: Any, start: datetime) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {
            "start_time": int(start.timestamp()),
            "bucket_width": "1d",
            "group_by": ["line_item"],
            "limit": self.days + 1,
        }
        buckets: List[Dict[str, Any]] = []
        for _ in range(MAX_PAGES):
            page = client.get(COSTS_PATH, cast_to=object, options={"params": params})
            buckets.extend(page.get("data") or [])
            next_page: Optional[str] = page.get("next_page")
            if not page.get("has_more") or not next_page:
                break
            params = dict(params, page=next_page)
        return buckets

    def _to_entry(self, bucket: Mapping[str, Any]) -> CostEntry:
        day = datetime.fromtimestamp(int(bucket["start_time"]), tz=timezone.utc)
        by_line_item: Dict[str, float] = {}
        currency = "USD"
        for result in bucket.get("results") or []:
            amount = result.get("amount") or {}
            line_item = result.get("line_item") or "unknown"
            by_line_item[line_item] = by_line_item.get(line_item, 0.0) + float(amount.get("value") or 0)
            currency = str(amount.get("currency") or currency).upper()

        resources = [
            ResourceCost(
                resource_id=line_item,
                name=line_item,
                type="OpenAI Line Item",
                cost=cost,
                tags={"source": SOURCE},
            )
            for line_item, cost in by_line_item.items()
        ]
        return CostEntry(
            service_id=self.service_id,
            timestamp=day,
            total_cost=sum(by_line_item.values()),
            currency=currency,
            resources=resources,
            metadata={
                "granularity": "DAILY",
                "source": SOURCE,
                "dashboardUrl": "https://platform.openai.com/usage",
            },
        )
