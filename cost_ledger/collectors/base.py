"""
Collector adapter contract.

A collector turns one billing source into a batch of normalized cost
entries. Collectors are registered by service id and receive their
credentials on every call.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from cost_ledger.errors import AdapterError
from cost_ledger.storage.models import CostEntry


@dataclass(frozen=True)
class CollectorResult:
    """Batch returned by a collector, with an optional warning for the status."""
    entries: List[CostEntry] = field(default_factory=list)
    warning: Optional[str] = None


class CollectorAdapter(ABC):
    """Base class for billing source integrations."""

    def __init__(self, service_id: str):
        self.service_id = service_id

    @abstractmethod
    def collect(self, credentials: Mapping[str, str]) -> CollectorResult:
        """Fetch and normalize cost entries for this service.

        Raises:
            Any exception on failure; the trigger reports it as AdapterError
        """


class CollectorRegistry:
    """Collectors keyed by service id."""

    def __init__(self, adapters: Optional[List[CollectorAdapter]] = None):
        self._adapters: Dict[str, CollectorAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: CollectorAdapter) -> None:
        if adapter.service_id in self._adapters:
            raise ValueError(f"Collector already registered for {adapter.service_id}")
        self._adapters[adapter.service_id] = adapter

    def get(self, service_id: str) -> CollectorAdapter:
        try:
            return self._adapters[service_id]
        except KeyError:
            raise AdapterError(
                f"No collector configured for service {service_id!r}",
                code="unknown_service",
            )

    def service_ids(self) -> List[str]:
        return sorted(self._adapters)


class CredentialProvider(ABC):
    """Source of credentials per service."""

    @abstractmethod
    def get(self, service_id: str) -> Dict[str, str]:
        """Credentials of a service.

        Raises:
            AdapterError: If the service's credentials are not available
        """


class EnvCredentialProvider(CredentialProvider):
    """Resolves credentials from environment variables.

    ``mapping`` gives, per service, credential name -> environment variable.
    """

    def __init__(self, mapping: Mapping[str, Mapping[str, str]], environ: Optional[Mapping[str, str]] = None):
        self.mapping = {sid: dict(creds) for sid, creds in mapping.items()}
        self.environ = environ if environ is not None else os.environ

    def get(self, service_id: str) -> Dict[str, str]:
        credentials: Dict[str, str] = {}
        missing = []
        for name, variable in self.mapping.get(service_id, {}).items():
            value = self.environ.get(variable)
            if value:
                credentials[name] = value
            else:
                missing.append(variable)
        if missing:
            raise AdapterError(
                f"No credentials configured for service {service_id!r}: "
                f"missing environment variables {', '.join(missing)}",
                code="missing_credentials",
            )
        return credentials
