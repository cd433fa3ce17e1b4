"""Configuration loading and validation for clickhouse_metrics."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError

DEFAULT_SECURE_PORT = 9440
DEFAULT_PORT = 9000


@dataclass
class ClickHouseConfig:
    """ClickHouse connection settings.

    ``endpoint``, ``username``, ``password`` and ``database`` have no
    defaults and must be supplied by the YAML file or the environment.
    """

    endpoint: str = ""
    username: str = ""
    password: str = ""
    database: str = ""
    secure: bool = True
    table: str = "metrics"
    settings: dict[str, Any] = field(default_factory=lambda: {"max_execution_time": 60})
    compression: str = ""
    connect_timeout: float = 10.0

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` if a mandatory value is missing."""
        missing = [
            name for name in ("endpoint", "username", "password", "database")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                "missing ClickHouse configuration: " + ", ".join(missing)
            )
        # raises on a malformed port
        _ = self.port

    @property
    def host(self) -> str:
        host = self.endpoint.rpartition(":")[0] if self._has_port() else self.endpoint
        return host.strip("[]")

    @property
    def port(self) -> int:
        if not self._has_port():
            return DEFAULT_SECURE_PORT if self.secure else DEFAULT_PORT
        raw = self.endpoint.rpartition(":")[2]
        try:
            port = int(raw)
        except ValueError:
            raise ConfigurationError(f"invalid port in endpoint {self.endpoint!r}") from None
        if not 0 < port < 65536:
            raise ConfigurationError(f"invalid port in endpoint {self.endpoint!r}")
        return port

    @property
    def qualified_table(self) -> str:
        """Table name qualified with the database unless already qualified."""
        if "." in self.table or not self.database:
            return self.table
        return f"{self.database}.{self.table}"

    def _has_port(self) -> bool:
        # bare IPv6 literals contain colons but no port
        if self.endpoint.startswith("["):
            return "]:" in self.endpoint
        return self.endpoint.count(":") == 1


@dataclass
class ExporterConfig:
    """Periodic export settings used when running inside a MeterProvider."""

    export_interval_ms: int = 10000
    export_timeout_ms: int = 10000
    service_name: str = "clickhouse-metrics"


@dataclass
class CollectorConfig:
    """Host metrics source settings."""

    enabled: bool = True
    cpu: bool = True
    memory: bool = True
    network: bool = True


@dataclass
class AppConfig:
    """Top-level clickhouse_metrics configuration."""

    clickhouse: ClickHouseConfig = field(default_factory=ClickHouseConfig)
    exporter: ExporterConfig = field(default_factory=ExporterConfig)
    collector: CollectorConfig = field(default_factory=CollectorConfig)


_ENV_FALLBACKS = {
    "CLICKHOUSE_ENDPOINT": "endpoint",
    "CLICKHOUSE_USERNAME": "username",
    "CLICKHOUSE_PASSWORD": "password",
    "CLICKHOUSE_DATABASE": "database",
    "CLICKHOUSE_SECURE": "secure",
    "CLICKHOUSE_TABLE": "table",
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}


def _apply_env_fallbacks(data: dict[str, Any]) -> dict[str, Any]:
    """Fill unset ``clickhouse`` values from ``CLICKHOUSE_*`` variables.

    Values present in the file take precedence over the environment.
    """
    section = data.get("clickhouse")
    if not isinstance(section, dict):
        section = {}
        data["clickhouse"] = section
    for env_key, key in _ENV_FALLBACKS.items():
        value = os.environ.get(env_key)
        if not value or section.get(key) not in (None, ""):
            continue
        if key == "secure":
            section[key] = value.strip().lower() in _TRUE_STRINGS
        else:
            section[key] = value
    return data


def _section(cls: type, data: Any) -> Any:
    if not isinstance(data, dict):
        data = {}
    return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def _dict_to_config(data: dict[str, Any]) -> AppConfig:
    """Convert a raw dictionary to an :class:`AppConfig`."""
    cfg = AppConfig(
        clickhouse=_section(ClickHouseConfig, data.get("clickhouse")),
        exporter=_section(ExporterConfig, data.get("exporter")),
        collector=_section(CollectorConfig, data.get("collector")),
    )
    # YAML reads numeric-looking passwords as numbers
    if cfg.clickhouse.password is None:
        cfg.clickhouse.password = ""
    cfg.clickhouse.password = str(cfg.clickhouse.password)
    return cfg


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a YAML file with environment fallbacks.

    Looks for ``clickhouse_metrics.yaml`` in the current directory if *path*
    is None. The result is not validated; see :meth:`ClickHouseConfig.validate`.
    """
    data: dict[str, Any] = {}
    if path is None:
        path = Path("clickhouse_metrics.yaml")
    else:
        path = Path(path)

    if path.exists():
        with open(path, encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh)
            if isinstance(loaded, dict):
                data = loaded

    data = _apply_env_fallbacks(data)
    return _dict_to_config(data)
