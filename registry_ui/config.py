"""Settings resolution from a config file and ``REGISTRYUI_*`` env vars."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from registry_ui.registry.endpoint import RegistryEndpoint, parse_endpoint

logger = logging.getLogger(__name__)

ENV_PREFIX = "REGISTRYUI_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


class ConfigError(Exception):
    """Raised when the configuration is missing or invalid."""


@dataclass
class Settings:
    """Resolved runtime settings.

    Attributes:
        hub_uri: Registry URI (``host[:port]`` or full URL).
        account_mgmt_enabled: Flag passed through into the catalog.
        account_mgmt_config: Account management config file, required when
            account management is enabled.
        insecure: Skip TLS certificate verification.
        disable_compression: Ask the registry for uncompressed bodies.
    """

    hub_uri: str
    account_mgmt_enabled: bool = False
    account_mgmt_config: str | None = None
    insecure: bool = False
    disable_compression: bool = False

    def endpoint(self) -> RegistryEndpoint:
        try:
            return parse_endpoint(self.hub_uri)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> Settings:
    """Resolve settings.

    Order of precedence (highest first):
    1. Keyword *overrides* whose value is not ``None`` (CLI options)
    2. ``REGISTRYUI_*`` environment variables (e.g. ``REGISTRYUI_HUB_URI``)
    3. The YAML or JSON config file at *path*

    Raises:
        ConfigError: If a value is invalid or a required one is missing.
    """
    if environ is None:
        environ = os.environ

    values: dict[str, Any] = {}
    if path is not None:
        values.update(_load_file(Path(path)))

    known = {f.name: f for f in fields(Settings)}
    for name in known:
        env_value = environ.get(ENV_PREFIX + name.upper())
        if env_value is not None:
            values[name] = env_value

    for name, value in overrides.items():
        if name not in known:
            raise ConfigError(f"Unknown setting '{name}'")
        if value is not None:
            values[name] = value

    unknown = sorted(set(values) - set(known))
    if unknown:
        raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")

    for name in ("account_mgmt_enabled", "insecure", "disable_compression"):
        if name in values:
            values[name] = _to_bool(name, values[name])

    hub_uri = str(values.get("hub_uri") or "").strip()
    if not hub_uri:
        raise ConfigError("no registry uri provided")
    values["hub_uri"] = hub_uri

    settings = Settings(**values)
    if settings.account_mgmt_enabled and not settings.account_mgmt_config:
        raise ConfigError("account management enabled but no config file")

    # Fail early on an unusable registry URI.
    settings.endpoint()
    logger.debug("Resolved settings: %s", settings)
    return settings


def _load_file(path: Path) -> dict[str, Any]:
    """Load a settings mapping from a YAML or JSON file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, ValueError) as exc:
        raise ConfigError(f"Cannot parse config file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _to_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"Invalid boolean for '{name}': {value!r}")
