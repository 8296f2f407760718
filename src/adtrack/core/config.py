from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DEFAULT_IP_HASH_SALT = "default-salt-change-me"


@dataclass(frozen=True)
class StorageConfig:
    duckdb_path: str
    clean_slate: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class TrackingConfig:
    ip_hash_salt: str = DEFAULT_IP_HASH_SALT
    retention_days: int = 90


@dataclass(frozen=True)
class FraudConfig:
    enabled: bool = True
    clicks_per_minute: int = 5
    impressions_per_minute: int = 10
    window_seconds: float = 60.0


@dataclass(frozen=True)
class AdTrackConfig:
    storage: StorageConfig
    logging: LoggingConfig
    tracking: TrackingConfig
    fraud: FraudConfig
    raw: dict[str, Any]  # original parsed YAML (for debugging)


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    data = yaml.safe_load(p.read_text())
    if not isinstance(data, dict):
        raise ValueError("Config YAML must parse to a dict at the top level.")
    return data


def resolve_secret(value: Any, *, env_fallback: str, default: str) -> str:
    """
    "env:NAME" reads NAME from the environment (must be set).
    Empty/missing falls back to env_fallback, then default.
    """
    if isinstance(value, str) and value.startswith("env:"):
        env_var = value[4:]
        resolved = os.environ.get(env_var)
        if resolved is None:
            raise ValueError(f"Environment variable '{env_var}' not set")
        return resolved
    if value:
        return str(value)
    return os.environ.get(env_fallback) or default


def parse_config(data: dict[str, Any]) -> AdTrackConfig:
    for key in ["storage", "logging"]:
        if key not in data:
            raise ValueError(f"Missing required top-level config section: '{key}'")

    storage = data.get("storage") or {}
    logging_cfg = data.get("logging") or {}
    tracking = data.get("tracking") or {}
    fraud = data.get("fraud") or {}

    if "duckdb_path" not in storage:
        raise ValueError("storage.duckdb_path is required")

    storage_cfg = StorageConfig(
        duckdb_path=str(storage["duckdb_path"]),
        clean_slate=bool(storage.get("clean_slate", False)),
    )

    log_cfg = LoggingConfig(level=str(logging_cfg.get("level", "INFO")).upper())

    retention_days = int(tracking.get("retention_days", 90))
    if retention_days <= 0:
        raise ValueError("tracking.retention_days must be > 0")

    tracking_cfg = TrackingConfig(
        ip_hash_salt=resolve_secret(
            tracking.get("ip_hash_salt"),
            env_fallback="IP_HASH_SALT",
            default=DEFAULT_IP_HASH_SALT,
        ),
        retention_days=retention_days,
    )

    fraud_cfg = FraudConfig(
        enabled=bool(fraud.get("enabled", True)),
        clicks_per_minute=int(fraud.get("clicks_per_minute", 5)),
        impressions_per_minute=int(fraud.get("impressions_per_minute", 10)),
        window_seconds=float(fraud.get("window_seconds", 60.0)),
    )
    if fraud_cfg.window_seconds <= 0:
        raise ValueError("fraud.window_seconds must be > 0")

    return AdTrackConfig(
        storage=storage_cfg,
        logging=log_cfg,
        tracking=tracking_cfg,
        fraud=fraud_cfg,
        raw=data,
    )


def load_config(path: str | Path) -> AdTrackConfig:
    data = load_yaml(path)
    return parse_config(data)
