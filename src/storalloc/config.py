"""Configuration loader for storalloc.

Configuration values are merged from several sources, later sources winning:

1. Built-in defaults.
2. ``/etc/storalloc/config.yml`` (or an override path).
3. Environment variables prefixed with ``STORALLOC_``.
4. Explicit overrides supplied programmatically by the embedding adapter.

Environment keys use double underscores to express nesting, e.g.::

    export STORALLOC_USE_MANAGED_DISKS=true
    export STORALLOC_NAME_GENERATION__MAX_ATTEMPTS=50

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access and type safety.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load storalloc configuration. Install with "
        "`pip install storalloc` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "STORALLOC_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class NameGenerationConfig:
    """Bounds for the random account-name search."""

    max_attempts: int = 20
    backoff_seconds: float = 0.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"max_attempts": self.max_attempts, "backoff_seconds": self.backoff_seconds}


@dataclass(frozen=True)
class LegacyProbeConfig:
    """Exponential retry settings for the legacy marker probe."""

    retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "retries": self.retries,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
        }


@dataclass(frozen=True)
class AllocatorConfig:
    """Resolved configuration values for storalloc."""

    config_file: Path
    resource_group_name: str
    storage_account_name: str | None
    use_managed_disks: bool
    storage_dns_suffix: str
    user_agent_prefix: str
    lock_dir: Path
    lock_timeout: float
    logs_dir: Path
    max_disk_number: int
    name_generation: NameGenerationConfig
    legacy_probe: LegacyProbeConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "resource_group_name": self.resource_group_name,
            "storage_account_name": self.storage_account_name,
            "use_managed_disks": self.use_managed_disks,
            "storage_dns_suffix": self.storage_dns_suffix,
            "user_agent_prefix": self.user_agent_prefix,
            "lock_dir": str(self.lock_dir),
            "lock_timeout": self.lock_timeout,
            "logs_dir": str(self.logs_dir),
            "max_disk_number": self.max_disk_number,
            "name_generation": self.name_generation.to_dict(),
            "legacy_probe": self.legacy_probe.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/storalloc/config.yml",
    "resource_group_name": "",
    "storage_account_name": None,
    "use_managed_disks": False,
    "storage_dns_suffix": "core.windows.net",
    "user_agent_prefix": "BOSH-AZURE-CPI",
    "lock_dir": "/tmp/storalloc/locks",
    "lock_timeout": 180.0,
    "logs_dir": "/var/log/storalloc",
    "max_disk_number": 30,
    "name_generation": {
        "max_attempts": 20,
        "backoff_seconds": 0.0,
    },
    "legacy_probe": {
        "retries": 3,
        "base_delay": 1.0,
        "max_delay": 30.0,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
NESTED_KEYS: dict[str, set[str]] = {
    "name_generation": {"max_attempts", "backoff_seconds"},
    "legacy_probe": {"retries", "base_delay", "max_delay"},
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AllocatorConfig:
    """Load and merge configuration sources into an :class:`AllocatorConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_config(merged)


def _determine_config_path(
    default_path: str,
    explicit: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if explicit:
        return Path(explicit)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in NESTED_KEYS.items():
        value = raw.get(section)
        if value is None:
            continue
        mapping = _as_dict(value, section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    account_name = raw.get("storage_account_name")
    if isinstance(account_name, bool) or not isinstance(account_name, (str, int, type(None))):
        raise ConfigError("storage_account_name must be a string or null.")


def _build_config(raw: Mapping[str, object]) -> AllocatorConfig:
    account_name_value = raw.get("storage_account_name")
    storage_account_name = (
        str(account_name_value).strip() if account_name_value is not None else None
    ) or None

    max_disk_number = _expect_int(raw.get("max_disk_number"), "max_disk_number", default=30)
    if max_disk_number <= 0:
        raise ConfigError("max_disk_number must be greater than zero.")

    naming_mapping = _as_dict(raw.get("name_generation"), "name_generation")
    max_attempts = _expect_int(
        naming_mapping.get("max_attempts"), "name_generation.max_attempts", default=20
    )
    if max_attempts <= 0:
        raise ConfigError("name_generation.max_attempts must be greater than zero.")
    name_generation = NameGenerationConfig(
        max_attempts=max_attempts,
        backoff_seconds=_expect_non_negative_float(
            naming_mapping.get("backoff_seconds"),
            "name_generation.backoff_seconds",
            default=0.0,
        ),
    )

    probe_mapping = _as_dict(raw.get("legacy_probe"), "legacy_probe")
    retries = _expect_int(probe_mapping.get("retries"), "legacy_probe.retries", default=3)
    if retries < 0:
        raise ConfigError("legacy_probe.retries must be non-negative.")
    legacy_probe = LegacyProbeConfig(
        retries=retries,
        base_delay=_expect_non_negative_float(
            probe_mapping.get("base_delay"), "legacy_probe.base_delay", default=1.0
        ),
        max_delay=_expect_non_negative_float(
            probe_mapping.get("max_delay"), "legacy_probe.max_delay", default=30.0
        ),
    )

    return AllocatorConfig(
        config_file=_to_path(raw.get("config_file")),
        resource_group_name=str(raw.get("resource_group_name") or "").strip(),
        storage_account_name=storage_account_name,
        use_managed_disks=_expect_bool(
            raw.get("use_managed_disks"), "use_managed_disks", default=False
        ),
        storage_dns_suffix=_expect_optional_str(
            raw.get("storage_dns_suffix"), "storage_dns_suffix", default="core.windows.net"
        ),
        user_agent_prefix=_expect_optional_str(
            raw.get("user_agent_prefix"), "user_agent_prefix", default="BOSH-AZURE-CPI"
        ),
        lock_dir=_to_path(raw.get("lock_dir")),
        lock_timeout=_expect_positive_float(raw.get("lock_timeout"), "lock_timeout", default=180.0),
        logs_dir=_to_path(raw.get("logs_dir")),
        max_disk_number=max_disk_number,
        name_generation=name_generation,
        legacy_probe=legacy_probe,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_optional_str(value: object | None, label: str, *, default: str) -> str:
    if value is None:
        return default
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ConfigError(f"{label} must not be empty.")
        return stripped
    raise ConfigError(f"Expected {label} to be a string. Got {value!r}.")


def _expect_number(value: object, label: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be numeric. Got {type(value).__name__}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    numeric = _expect_number(value, label)
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _expect_non_negative_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    numeric = _expect_number(value, label)
    if numeric < 0:
        raise ConfigError(f"{label} must be non-negative. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AllocatorConfig",
    "ConfigError",
    "LegacyProbeConfig",
    "NameGenerationConfig",
    "load_config",
]
