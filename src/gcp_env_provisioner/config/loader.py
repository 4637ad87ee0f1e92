"""YAML configuration file loader."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.constructor import SafeConstructor

from gcp_env_provisioner.config.schema import EnvironmentSpec

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised for configuration loading, validation and graph-building errors.

    Always raised before any Google Cloud call is made.
    """


# Field name → environment variable.
_PROVIDER_ENV_MAP: dict[str, str] = {
    "environment": "GCP_ENVIRONMENT",
    "region": "GCP_REGION",
    "credentials": "GCP_CREDENTIALS",
    "poll_interval": "GCP_POLL_INTERVAL",
    "operation_timeout": "GCP_OPERATION_TIMEOUT",
}

_PROJECT_ENV_MAP: dict[str, str] = {
    "create_project": "GCP_CREATE_PROJECT",
    "existing_project_id": "GCP_EXISTING_PROJECT_ID",
    "project_prefix": "GCP_PROJECT_PREFIX",
    "billing_account": "GCP_BILLING_ACCOUNT",
    "folder_id": "GCP_FOLDER_ID",
}

_BOOL_FIELDS: frozenset[str] = frozenset({"create_project"})


def _resolve_env(
    raw: dict[str, Any], env_map: dict[str, str], dotenv_vals: dict[str, str | None]
) -> dict[str, Any]:
    """Resolve *env_map* fields from YAML, env vars, and ``.env`` values.

    Priority (highest wins): YAML value > env var > ``.env`` file.
    """
    resolved: dict[str, Any] = {}
    for field, env_key in env_map.items():
        val = raw.get(field)
        if val is None:
            val = os.environ.get(env_key)
        if val is None:
            val = dotenv_vals.get(env_key)
        if val is not None:
            if field in _BOOL_FIELDS and isinstance(val, str):
                if val.lower() not in SafeConstructor.bool_values:
                    raise ConfigurationError(f"Invalid boolean for {env_key}: {val!r}")
                val = SafeConstructor.bool_values[val.lower()]
            resolved[field] = val
    return resolved


def load_config(path: Path | str, *, environment: str | None = None) -> EnvironmentSpec:
    """Load a YAML configuration file and return an ``EnvironmentSpec``.

    *environment* (the CLI ``--environment`` option) overrides every other
    source of ``provider.environment``.

    Raises:
        ConfigurationError: On YAML parse errors or validation failures.
    """
    path = Path(path)

    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigurationError(f"Failed to read {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path}: expected a mapping at the top level")

    env_file = path.parent / ".env"
    dotenv_vals = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}

    raw_provider = raw.get("provider") or {}
    if not isinstance(raw_provider, dict):
        raise ConfigurationError(f"{path}: 'provider' must be a mapping")
    provider = {**raw_provider, **_resolve_env(raw_provider, _PROVIDER_ENV_MAP, dotenv_vals)}
    if environment is not None:
        provider["environment"] = environment
    raw["provider"] = provider
    raw.update(_resolve_env(raw, _PROJECT_ENV_MAP, dotenv_vals))

    try:
        config = EnvironmentSpec.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc

    config.config_dir = path.parent

    logger.info("Loaded config from %s (environment %s)", path, config.environment)
    return config
