"""Data model shared by the allocation engine and its collaborators."""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .errors import InvalidPlacementRequest

STEMCELL_STORAGE_ACCOUNT_TAGS: Mapping[str, str] = MappingProxyType(
    {"user-agent": "bosh", "type": "stemcell"}
)
DIAGNOSTICS_STORAGE_ACCOUNT_TAGS: Mapping[str, str] = MappingProxyType(
    {"user-agent": "bosh", "type": "bootdiagnostics"}
)

DISK_CONTAINER = "bosh"
STEMCELL_CONTAINER = "stemcell"
DEFAULT_CONTAINERS: tuple[str, ...] = (DISK_CONTAINER, STEMCELL_CONTAINER)

STANDARD_LRS = "Standard_LRS"
DEFAULT_MAX_DISK_NUMBER = 30
LEGACY_MARKER_TABLE = "stemcells"
ACCOUNT_NAME_INVALID = "AccountNameInvalid"


@dataclass(frozen=True, slots=True)
class StorageAccount:
    """A provider storage account as observed by the allocation engine."""

    name: str
    location: str
    account_type: str = STANDARD_LRS
    tags: Mapping[str, str] = field(default_factory=dict)
    endpoints: Mapping[str, str] = field(default_factory=dict)
    keys: tuple[str, ...] = ()

    def has_tags(self, tags: Mapping[str, str]) -> bool:
        """Return ``True`` when the account carries exactly *tags*."""
        return dict(self.tags) == dict(tags)

    @property
    def is_standard(self) -> bool:
        """Return ``True`` for Standard tier accounts (which can host tables)."""
        return self.account_type.lower().startswith("standard")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation without access keys."""
        return {
            "name": self.name,
            "location": self.location,
            "account_type": self.account_type,
            "tags": dict(self.tags),
            "endpoints": dict(self.endpoints),
        }


@dataclass(frozen=True, slots=True)
class NameAvailability:
    """Outcome of a provider name-availability check."""

    available: bool
    reason: str | None = None
    message: str | None = None

    @classmethod
    def ok(cls) -> NameAvailability:
        """Return a result describing an available name."""
        return cls(available=True)


@dataclass(frozen=True, slots=True)
class ResourceGroup:
    """Resource group metadata used to locate the default account."""

    name: str
    location: str


@dataclass(frozen=True, slots=True)
class ResourcePlacementRequest:
    """Per-call placement properties taken from the adapter's resource pool."""

    instance_class: str
    storage_account_name: str | None = None
    storage_account_type: str | None = None
    storage_account_max_disk_number: int | None = None

    @property
    def is_pattern(self) -> bool:
        """Return ``True`` when the requested account name is a wildcard pattern."""
        return self.storage_account_name is not None and "*" in self.storage_account_name

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ResourcePlacementRequest:
        """Build a request from an adapter resource-pool mapping."""
        instance_class = raw.get("instance_class", raw.get("instance_type", ""))
        name = _optional_str(raw.get("storage_account_name"), "storage_account_name")
        account_type = _optional_str(raw.get("storage_account_type"), "storage_account_type")
        limit = _optional_positive_int(
            raw.get("storage_account_max_disk_number"),
            "storage_account_max_disk_number",
        )
        return cls(
            instance_class=str(instance_class or ""),
            storage_account_name=name,
            storage_account_type=account_type,
            storage_account_max_disk_number=limit,
        )


def _optional_str(value: object, label: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidPlacementRequest(f"{label} must be a string. Got {type(value).__name__}.")
    stripped = value.strip()
    return stripped or None


def _optional_positive_int(value: object, label: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidPlacementRequest(f"{label} must be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        try:
            number = int(value, 0)
        except ValueError as exc:
            raise InvalidPlacementRequest(f"Invalid integer for {label}: {value!r}.") from exc
    else:
        raise InvalidPlacementRequest(f"{label} must be an integer. Got {type(value).__name__}.")
    if number <= 0:
        raise InvalidPlacementRequest(f"{label} must be greater than zero. Got {number}.")
    return number


def as_tag_set(tags: Mapping[str, str] | None) -> dict[str, str]:
    """Return a plain ``dict`` copy of *tags* with string keys and values."""
    if not tags:
        return {}
    return {str(key): str(value) for key, value in tags.items()}


def container_tuple(containers: Sequence[str] | None) -> tuple[str, ...]:
    """Normalise a container list into an immutable tuple."""
    return tuple(containers or ())


__all__ = [
    "ACCOUNT_NAME_INVALID",
    "DEFAULT_CONTAINERS",
    "DEFAULT_MAX_DISK_NUMBER",
    "DIAGNOSTICS_STORAGE_ACCOUNT_TAGS",
    "DISK_CONTAINER",
    "LEGACY_MARKER_TABLE",
    "NameAvailability",
    "ResourceGroup",
    "ResourcePlacementRequest",
    "STANDARD_LRS",
    "STEMCELL_CONTAINER",
    "STEMCELL_STORAGE_ACCOUNT_TAGS",
    "StorageAccount",
    "as_tag_set",
    "container_tuple",
]
