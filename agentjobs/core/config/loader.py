"""Configuration loader: YAML file, env override, then command-line overrides."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from agentjobs.core.config.schema import Config
from agentjobs.core.jobs.errors import StoreConfigurationError

CONFIG_ENV = "AGENTJOBS_CONFIG"
DEFAULT_CONFIG_FILE = Path("config.yaml")


def load_config(
    config_path: str | Path | None = None, *, tenant_id: str | None = None
) -> Config:
    """
    Load configuration and check it can back a job store.

    Config file:
        1. ``config_path`` argument, else ``AGENTJOBS_CONFIG``; a file named
           either way must exist
        2. ``./config.yaml`` when present, else defaults only

    Values: ``tenant_id`` argument > env vars > .env > YAML > defaults.
    """
    source = _config_file(config_path)
    config = Config(**_read_yaml(source))
    if tenant_id is not None:
        config.workspace = config.workspace.model_copy(update={"tenant_id": tenant_id.strip()})
    _check(config, source)
    logger.debug(f"Config loaded from {source or 'defaults'} (tenant={config.tenant_id})")
    return config


def _config_file(config_path: str | Path | None) -> Path | None:
    named = config_path or os.environ.get(CONFIG_ENV)
    if named:
        path = Path(named)
        if not path.is_file():
            raise StoreConfigurationError(f"config file not found: {path}")
        return path
    return DEFAULT_CONFIG_FILE if DEFAULT_CONFIG_FILE.is_file() else None


def _read_yaml(path: Path | None) -> dict[str, Any]:
    if path is None:
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise StoreConfigurationError(f"config file must hold a mapping: {path}")
    return data


def _check(config: Config, source: Path | None) -> None:
    if not config.tenant_id.strip():
        raise StoreConfigurationError(
            f"workspace.tenant_id is empty ({source or 'defaults'})"
        )
    worker = config.worker
    if worker.enabled and worker.run_timeout_s <= worker.poll_interval_s:
        logger.warning(
            f"worker.run_timeout_s ({worker.run_timeout_s}s) is not above "
            f"worker.poll_interval_s ({worker.poll_interval_s}s); "
            "runs may be timed out while still executing"
        )
