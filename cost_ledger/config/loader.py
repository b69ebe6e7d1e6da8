"""
Configuration management and loading.

Handles the YAML configuration of storage, anomaly policy, logging and the
collected services.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from cost_ledger.core.baseline import BASELINE_DAYS
from cost_ledger.core.validation import SERVICE_ID_PATTERN
from cost_ledger.storage.db import DEFAULT_DB_PATH, DEFAULT_TIMEOUT

DEFAULT_THRESHOLD_PERCENT = 50.0
DEFAULT_LOOKBACK_DAYS = 30


class CollectorKind(Enum):
    """Collector implementations that can be configured for a service."""
    OPENAI = "openai"
    FILE = "file"


@dataclass(frozen=True)
class DatabaseConfig:
    """Document store location."""
    path: str = DEFAULT_DB_PATH
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self):
        if not self.path:
            raise ValueError("database path cannot be empty")
        if self.timeout <= 0:
            raise ValueError("database timeout must be > 0")


@dataclass(frozen=True)
class AnomalyConfig:
    """Anomaly policy defaults applied at the trigger boundary."""
    threshold_percent: float = DEFAULT_THRESHOLD_PERCENT
    lookback_days: int = DEFAULT_LOOKBACK_DAYS

    def __post_init__(self):
        if self.threshold_percent < 0:
            raise ValueError("threshold_percent must be >= 0")
        if self.lookback_days <= BASELINE_DAYS:
            raise ValueError(f"lookback_days must be > {BASELINE_DAYS}")


@dataclass(frozen=True)
class LoggingConfig:
    """Log level and output format."""
    level: str = "info"
    json: bool = False

    def __post_init__(self):
        if self.level not in {"debug", "info", "warning", "error"}:
            raise ValueError("logging level must be one of: debug, info, warning, error")


@dataclass(frozen=True)
class ServiceConfig:
    """One collected billing source."""
    service_id: str
    collector: CollectorKind
    credentials: Dict[str, str] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    anomaly: AnomalyConfig = field(default_factory=AnomalyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    services: Dict[str, ServiceConfig] = field(default_factory=dict)


def default_config() -> AppConfig:
    """Built-in configuration used when no file is present."""
    return AppConfig()


def load_config(path: str) -> AppConfig:
    """Load and validate configuration from YAML file.

    Unknown keys are rejected so that a typo never silently falls back to a
    default.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return default_config()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    _check_keys(raw_config, {'database', 'anomaly', 'logging', 'services'}, "configuration")

    database = DatabaseConfig(**_section(raw_config, 'database', {'path', 'timeout'}))
    anomaly = AnomalyConfig(**_section(raw_config, 'anomaly', {'threshold_percent', 'lookback_days'}))
    logging_config = LoggingConfig(**_section(raw_config, 'logging', {'level', 'json'}))

    services_data = raw_config.get('services') or {}
    if not isinstance(services_data, dict):
        raise ValueError("'services' must be a dictionary")

    services = {}
    for service_id, service_data in services_data.items():
        services[str(service_id)] = _parse_service_config(str(service_id), service_data)

    return AppConfig(
        database=database,
        anomaly=anomaly,
        logging=logging_config,
        services=services,
    )


def load_config_or_default(path: Optional[str]) -> AppConfig:
    """Load ``path`` if it exists, else fall back to the defaults."""
    if path and Path(path).exists():
        return load_config(path)
    return default_config()


def _check_keys(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _section(raw_config: Dict, name: str, allowed: set) -> Dict[str, Any]:
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    _check_keys(data, allowed, name)

    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key in ('timeout', 'threshold_percent'):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"'{name}.{key}' must be a number")
            values[key] = float(value)
        elif key == 'lookback_days':
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"'{name}.{key}' must be an integer")
            values[key] = value
        elif key == 'json':
            if not isinstance(value, bool):
                raise ValueError(f"'{name}.{key}' must be true or false")
            values[key] = value
        else:
            if not isinstance(value, str):
                raise ValueError(f"'{name}.{key}' must be a string")
            values[key] = value.lower() if key == 'level' else value
    return values


def _parse_service_config(service_id: str, data: Any) -> ServiceConfig:
    """Parse and validate one service entry.

    Raises:
        ValueError: If the entry is invalid
    """
    path = f"services.{service_id}"
    if not SERVICE_ID_PATTERN.match(service_id):
        raise ValueError(f"Invalid service id {service_id!r}: use lowercase letters, digits and '-'")
    if not isinstance(data, dict):
        raise ValueError(f"Service '{service_id}' must be a dictionary")
    _check_keys(data, {'collector', 'credentials', 'options'}, path)

    if 'collector' not in data:
        raise ValueError(f"Missing required 'collector' in {path}")
    collector_str = data['collector']
    if not isinstance(collector_str, str):
        raise ValueError(f"'collector' in {path} must be a string")
    try:
        collector = CollectorKind(collector_str.lower())
    except ValueError:
        valid_kinds = [kind.value for kind in CollectorKind]
        raise ValueError(f"'collector' in {path} must be one of: {valid_kinds}")

    credentials = data.get('credentials') or {}
    if not isinstance(credentials, dict):
        raise ValueError(f"'credentials' in {path} must be a dictionary")
    for name, variable in credentials.items():
        if not isinstance(variable, str) or not variable:
            raise ValueError(f"Credential '{name}' in {path} must name an environment variable")

    options = data.get('options') or {}
    if not isinstance(options, dict):
        raise ValueError(f"'options' in {path} must be a dictionary")

    if collector == CollectorKind.FILE:
        _check_keys(options, {'path'}, f"{path}.options")
        if not isinstance(options.get('path'), str) or not options['path']:
            raise ValueError(f"Missing required 'path' option in {path}")
    elif collector == CollectorKind.OPENAI:
        _check_keys(options, {'days'}, f"{path}.options")
        days = options.get('days', 30)
        if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
            raise ValueError(f"'days' option in {path} must be a positive integer")

    return ServiceConfig(
        service_id=service_id,
        collector=collector,
        credentials={str(k): v for k, v in credentials.items()},
        options=dict(options),
    )
