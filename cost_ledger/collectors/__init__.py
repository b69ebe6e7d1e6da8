"""
Collector adapters for billing sources.

Each adapter normalizes one provider's cost reports into cost entries.
"""

from .base import (
    CollectorAdapter,
    CollectorRegistry,
    CollectorResult,
    CredentialProvider,
    EnvCredentialProvider,
)
from .file_import import FileCollector
from .openai_costs import OpenAICostsCollector

__all__ = [
    "CollectorAdapter",
    "CollectorRegistry",
    "CollectorResult",
    "CredentialProvider",
    "EnvCredentialProvider",
    "FileCollector",
    "OpenAICostsCollector",
]
