"""Collaborator contracts consumed by the allocation engine.

The engine never talks to a cloud SDK directly. Adapters hand it objects that
satisfy these protocols; :mod:`storalloc.providers.memory` ships in-memory
implementations for tests and dry runs.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Protocol, runtime_checkable

from ..models import NameAvailability, ResourceGroup, StorageAccount


class ProviderError(RuntimeError):
    """Raised by collaborators when a provider call fails."""


class TransientProviderError(ProviderError):
    """Raised for faults worth retrying (throttling, timeouts, 5xx responses)."""


class LegacyMarkerNotFound(ProviderError):
    """Raised by a legacy client when the requested table does not exist."""


@runtime_checkable
class StorageClient(Protocol):
    """Account management API of the cloud provider."""

    def check_name_availability(self, name: str) -> NameAvailability:
        """Return whether *name* can be used for a new account."""
        ...

    def create_account(
        self,
        name: str,
        location: str,
        account_type: str,
        tags: Mapping[str, str],
    ) -> None:
        """Create an account and block until the provider reports it provisioned."""
        ...

    def get_account_by_name(self, name: str) -> StorageAccount | None:
        """Return the account called *name*, or ``None`` if it does not exist."""
        ...

    def list_accounts(self) -> Sequence[StorageAccount]:
        """Return every account visible to the adapter, in provider order."""
        ...

    def get_account_keys(self, name: str) -> Sequence[str]:
        """Return the access keys for *name*."""
        ...

    def update_tags(self, name: str, tags: Mapping[str, str]) -> None:
        """Replace the tags of account *name* with *tags*."""
        ...

    def get_resource_group(self, name: str) -> ResourceGroup:
        """Return metadata for resource group *name*."""
        ...


@runtime_checkable
class ContainerService(Protocol):
    """Blob container provisioning for a freshly created account."""

    def prepare_containers(
        self,
        account_name: str,
        container_names: Sequence[str],
        is_default: bool,
    ) -> None:
        """Create *container_names* on *account_name*."""
        ...


@runtime_checkable
class DiskService(Protocol):
    """Per-account disk enumeration."""

    def list_disks(self, account_name: str) -> Sequence[object]:
        """Return the disks stored on *account_name*."""
        ...


@runtime_checkable
class LegacyClient(Protocol):
    """Table client opened against a single account."""

    def get_table(self, table_name: str, *, request_id: str) -> object:
        """Return table metadata or raise :class:`LegacyMarkerNotFound`."""
        ...


@runtime_checkable
class LegacyClientFactory(Protocol):
    """Open :class:`LegacyClient` objects using an account's credentials."""

    def open(
        self,
        account_name: str,
        access_key: str,
        *,
        dns_suffix: str,
        user_agent_prefix: str,
    ) -> LegacyClient:
        """Return a client bound to *account_name*."""
        ...


__all__ = [
    "ContainerService",
    "DiskService",
    "LegacyClient",
    "LegacyClientFactory",
    "LegacyMarkerNotFound",
    "ProviderError",
    "StorageClient",
    "TransientProviderError",
]
