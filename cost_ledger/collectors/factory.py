"""
Builds collectors and credential providers from configuration.
"""

from typing import Dict

from cost_ledger.config.loader import AppConfig, CollectorKind, ServiceConfig

from .base import CollectorAdapter, CollectorRegistry, EnvCredentialProvider
from .file_import import FileCollector
from .openai_costs import OpenAICostsCollector


def build_collector(service: ServiceConfig) -> CollectorAdapter:
    """Instantiate the collector configured for one service."""
    if service.collector == CollectorKind.OPENAI:
        return OpenAICostsCollector(service_id=service.service_id, days=service.options.get("days", 30))
    if service.collector == CollectorKind.FILE:
        return FileCollector(service_id=service.service_id, path=service.options["path"])
    raise ValueError(f"Unsupported collector: {service.collector}")


def build_registry(config: AppConfig) -> CollectorRegistry:
    """Registry with one collector per configured service."""
    return CollectorRegistry([build_collector(service) for service in config.services.values()])


def build_credential_provider(config: AppConfig) -> EnvCredentialProvider:
    mapping: Dict[str, Dict[str, str]] = {
        service_id: dict(service.credentials) for service_id, service in config.services.items()
    }
    return EnvCredentialProvider(mapping)
