"""Layered loading of :class:`HostingConfig`.

Sources are applied in order, each overriding the previous one:

1. a YAML or JSON file (optional)
2. ``LOTTO_``-prefixed environment variables, ``__`` separating sections::

       LOTTO_INGEST__CONCURRENCY=8                    ingest.concurrency = 8
       LOTTO_INGEST__ALLOWED_HOSTS='["galottery.com"]' ingest.allowed_hosts = [...]

3. overrides passed by the CLI

Scrapers historically opt into local sources with ``ALLOW_LOCALHOST=1``; that
switch maps to ``ingest.allow_localhost`` when nothing more specific sets it.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .models import HostingConfig

__all__ = ["ENV_PREFIX", "export_config_schema", "load_config", "validate_config_file"]

logger = logging.getLogger(__name__)

ENV_PREFIX = "LOTTO_"

_PARSERS = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.loads,
}


def _load_mapping(path: str) -> dict[str, Any]:
    """Parse a config file into a mapping.

    Raises:
        ValueError: Missing, unreadable, unparsable or non-mapping file, or an
            unsupported extension.
    """
    source = Path(path)
    parser = _PARSERS.get(source.suffix.lower())
    if parser is None:
        raise ValueError(f"{path}: unsupported config format (expected .yaml, .yml or .json)")
    try:
        text = source.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ValueError(f"{path}: config file does not exist") from None
    except OSError as exc:
        raise ValueError(f"{path}: unreadable ({exc})") from exc

    try:
        loaded = parser(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ValueError(f"{path}: parse error ({exc})") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(loaded).__name__}")
    return loaded


def _env_value(raw: str) -> Any:
    # JSON covers numbers, lists, objects and lowercase booleans
    try:
        return json.loads(raw)
    except ValueError:
        pass
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    return raw


def _set_path(target: dict[str, Any], path: list[str], value: Any) -> None:
    node = target
    for part in path[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[path[-1]] = value


def _apply_env(data: dict[str, Any], env: Mapping[str, str], prefix: str) -> dict[str, Any]:
    for name in sorted(env):
        if not name.startswith(prefix) or len(name) == len(prefix):
            continue
        path = name[len(prefix):].lower().split("__")
        value = _env_value(env[name])
        _set_path(data, path, value)
        logger.debug(f"Config from env: {name} -> {'.'.join(path)}={value!r}")

    if env.get("ALLOW_LOCALHOST") == "1":
        ingest = data.setdefault("ingest", {})
        if isinstance(ingest, dict):
            ingest.setdefault("allow_localhost", True)
    return data


def _deep_update(base: dict[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``updates`` into ``base`` section by section; scalars replace."""
    for key, value in updates.items():
        if isinstance(value, Mapping):
            current = base.get(key)
            base[key] = _deep_update(current if isinstance(current, dict) else {}, value)
        else:
            base[key] = value
    return base


def load_config(
    path: str | None = None,
    *,
    env: Mapping[str, str] | None = None,
    env_prefix: str = ENV_PREFIX,
    cli_overrides: Mapping[str, Any] | None = None,
) -> HostingConfig:
    """Build the effective configuration for one run.

    Args:
        path: YAML/JSON file, if any
        env: Environment to read (``os.environ`` when omitted)
        env_prefix: Prefix of override variables
        cli_overrides: Nested overrides from the command line

    Raises:
        ValueError: The file could not be loaded.
        pydantic.ValidationError: The merged values are invalid.
    """
    data: dict[str, Any] = _load_mapping(path) if path else {}
    if path:
        logger.info(f"Config file {path} loaded")

    _apply_env(data, os.environ if env is None else env, env_prefix)
    if cli_overrides:
        _deep_update(data, cli_overrides)

    config = HostingConfig.model_validate(data)
    logger.debug(f"Effective config hash {config.config_hash()[:8]}")
    return config


def validate_config_file(path: str) -> bool:
    """Validate ``path`` alone, ignoring environment overrides.

    Raises:
        ValueError: The file could not be loaded.
        pydantic.ValidationError: Its values are invalid.
    """
    HostingConfig.model_validate(_load_mapping(path))
    return True


def export_config_schema() -> dict[str, Any]:
    """JSON Schema of :class:`HostingConfig`."""
    return HostingConfig.model_json_schema()
