"""
File import collector.

Loads cost entries exported from a billing console (or written by hand) as
YAML or JSON, for sources without an API integration.
"""

import json
from pathlib import Path
from typing import Any, List, Mapping

import structlog
import yaml

from cost_ledger.errors import AdapterError, ValidationError
from cost_ledger.storage.models import CostEntry

from .base import CollectorAdapter, CollectorResult

logger = structlog.get_logger()


class FileCollector(CollectorAdapter):
    """Reads ``{costs: [...]}`` or a bare list of entries from a file.

    Entries missing a service id are attributed to this collector's service.
    Entries that cannot be parsed are left out and reported in the warning.
    """

    def __init__(self, service_id: str, path: str):
        super().__init__(service_id)
        self.path = path

    def collect(self, credentials: Mapping[str, str]) -> CollectorResult:
        raw_entries = self._load()
        entries: List[CostEntry] = []
        problems: List[str] = []
        for index, raw in enumerate(raw_entries):
            if isinstance(raw, Mapping) and not raw.get("serviceId"):
                raw = dict(raw, serviceId=self.service_id)
            try:
                entries.append(CostEntry.from_dict(raw))
            except ValidationError as e:
                problems.append(f"#{index}: {e.message}")

        warning = None
        if problems:
            warning = f"Ignored {len(problems)} unparseable entries in {self.path} ({'; '.join(problems)})"
            logger.warning("file_entries_ignored", service_id=self.service_id, path=self.path, count=len(problems))
        return CollectorResult(entries=entries, warning=warning)

    def _load(self) -> List[Any]:
        path = Path(self.path)
        if not path.exists():
            raise AdapterError(f"Cost export file not found: {self.path}", code="adapter_file_error")

        with open(path, 'r', encoding='utf-8') as f:
            try:
                if path.suffix.lower() == ".json":
                    content = json.load(f)
                else:
                    content = yaml.safe_load(f)
            except (json.JSONDecodeError, yaml.YAMLError) as e:
                raise AdapterError(f"Invalid cost export file {self.path}: {e}", code="adapter_file_error") from e

        if isinstance(content, Mapping):
            content = content.get("costs")
        if content is None:
            return []
        if not isinstance(content, list):
            raise AdapterError(
                f"Cost export file {self.path} must contain a list of entries",
                code="adapter_file_error",
            )
        return content
