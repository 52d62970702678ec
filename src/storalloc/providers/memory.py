"""In-memory collaborators for tests and dry runs.

These objects keep state in process memory and record every call so tests can
assert on provider traffic. All of them are safe to share between threads.
"""
from __future__ import annotations

import threading
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace

from ..models import ACCOUNT_NAME_INVALID, NameAvailability, ResourceGroup, StorageAccount
from .base import LegacyMarkerNotFound, ProviderError


class InMemoryStorageClient:
    """Account store implementing :class:`~storalloc.providers.base.StorageClient`."""

    def __init__(
        self,
        accounts: Iterable[StorageAccount] = (),
        *,
        resource_groups: Mapping[str, str] | None = None,
        keys: Mapping[str, Sequence[str]] | None = None,
        reserved_names: Iterable[str] = (),
        create_delay: float = 0.0,
    ) -> None:
        """Seed the store with *accounts* and resource group locations."""
        self._lock = threading.RLock()
        self._accounts: dict[str, StorageAccount] = {account.name: account for account in accounts}
        self._resource_groups = dict(resource_groups or {})
        self._keys = {name: tuple(values) for name, values in (keys or {}).items()}
        self._reserved = set(reserved_names)
        self._create_delay = create_delay
        self.calls: list[tuple[str, tuple[object, ...]]] = []

    # Introspection -----------------------------------------------------
    def calls_to(self, method: str) -> list[tuple[object, ...]]:
        """Return argument tuples recorded for *method*."""
        with self._lock:
            return [args for name, args in self.calls if name == method]

    @property
    def accounts(self) -> list[StorageAccount]:
        """Return the stored accounts in insertion order."""
        with self._lock:
            return list(self._accounts.values())

    def reserve_name(self, name: str) -> None:
        """Mark *name* as taken elsewhere in the provider namespace."""
        with self._lock:
            self._reserved.add(name)

    def _record(self, method: str, *args: object) -> None:
        with self._lock:
            self.calls.append((method, args))

    # StorageClient -----------------------------------------------------
    def check_name_availability(self, name: str) -> NameAvailability:
        """Report availability using storage naming rules and known names."""
        self._record("check_name_availability", name)
        if not (3 <= len(name) <= 24) or not name.isalnum() or name.lower() != name:
            return NameAvailability(
                available=False,
                reason=ACCOUNT_NAME_INVALID,
                message=f"{name} is not a valid storage account name.",
            )
        with self._lock:
            taken = name in self._accounts or name in self._reserved
        if taken:
            return NameAvailability(
                available=False,
                reason="AlreadyExists",
                message=f"The storage account named {name} is already taken.",
            )
        return NameAvailability.ok()

    def create_account(
        self,
        name: str,
        location: str,
        account_type: str,
        tags: Mapping[str, str],
    ) -> None:
        """Create the account; duplicate names raise :class:`ProviderError`."""
        self._record("create_account", name, location, account_type, dict(tags))
        if self._create_delay:
            time.sleep(self._create_delay)
        with self._lock:
            if name in self._accounts:
                raise ProviderError(f"Storage account '{name}' already exists.")
            self._accounts[name] = StorageAccount(
                name=name,
                location=location,
                account_type=account_type,
                tags=dict(tags),
                endpoints={
                    "blob": f"https://{name}.blob.core.windows.net/",
                    "table": f"https://{name}.table.core.windows.net/",
                },
            )
            self._keys.setdefault(name, (f"{name}-key-1", f"{name}-key-2"))

    def get_account_by_name(self, name: str) -> StorageAccount | None:
        """Return the stored account or ``None``."""
        self._record("get_account_by_name", name)
        with self._lock:
            return self._accounts.get(name)

    def list_accounts(self) -> Sequence[StorageAccount]:
        """Return all stored accounts in insertion order."""
        self._record("list_accounts")
        with self._lock:
            return list(self._accounts.values())

    def get_account_keys(self, name: str) -> Sequence[str]:
        """Return the keys stored for *name*."""
        self._record("get_account_keys", name)
        with self._lock:
            if name not in self._accounts:
                raise ProviderError(f"Storage account '{name}' does not exist.")
            return self._keys.get(name, (f"{name}-key-1", f"{name}-key-2"))

    def update_tags(self, name: str, tags: Mapping[str, str]) -> None:
        """Replace the tags of *name*."""
        self._record("update_tags", name, dict(tags))
        with self._lock:
            account = self._accounts.get(name)
            if account is None:
                raise ProviderError(f"Storage account '{name}' does not exist.")
            self._accounts[name] = replace(account, tags=dict(tags))

    def get_resource_group(self, name: str) -> ResourceGroup:
        """Return the seeded resource group."""
        self._record("get_resource_group", name)
        with self._lock:
            location = self._resource_groups.get(name)
        if location is None:
            raise ProviderError(f"Resource group '{name}' does not exist.")
        return ResourceGroup(name=name, location=location)


class InMemoryContainerService:
    """Record container preparation; optionally fail for selected accounts."""

    def __init__(self, *, failing_accounts: Iterable[str] = ()) -> None:
        """Initialise with the accounts whose preparation should fail."""
        self._lock = threading.Lock()
        self._failing = set(failing_accounts)
        self.prepared: list[tuple[str, tuple[str, ...], bool]] = []

    def prepare_containers(
        self,
        account_name: str,
        container_names: Sequence[str],
        is_default: bool,
    ) -> None:
        """Record the request or raise for failing accounts."""
        with self._lock:
            self.prepared.append((account_name, tuple(container_names), is_default))
        if account_name in self._failing:
            raise ProviderError(f"failed to create containers on '{account_name}'")


class InMemoryDiskService:
    """Serve disk listings from a name-to-disks mapping."""

    def __init__(self, disks: Mapping[str, Sequence[object]] | None = None) -> None:
        """Seed the per-account disk listings."""
        self._lock = threading.Lock()
        self._disks = {name: list(values) for name, values in (disks or {}).items()}
        self.queried: list[str] = []

    def set_disks(self, account_name: str, disks: Sequence[object]) -> None:
        """Replace the disks stored on *account_name*."""
        with self._lock:
            self._disks[account_name] = list(disks)

    def list_disks(self, account_name: str) -> Sequence[object]:
        """Return the disks for *account_name* (empty when unknown)."""
        with self._lock:
            self.queried.append(account_name)
            return list(self._disks.get(account_name, []))


class InMemoryLegacyClient:
    """Table client over a fixed set of table names."""

    def __init__(self, account_name: str, tables: Iterable[str]) -> None:
        """Bind the client to *account_name* exposing *tables*."""
        self.account_name = account_name
        self._tables = set(tables)
        self.request_ids: list[str] = []

    def get_table(self, table_name: str, *, request_id: str) -> object:
        """Return table metadata or raise :class:`LegacyMarkerNotFound`."""
        self.request_ids.append(request_id)
        if table_name not in self._tables:
            raise LegacyMarkerNotFound(
                f"(404) table '{table_name}' not found on '{self.account_name}'"
            )
        return {"TableName": table_name}


class InMemoryLegacyClientFactory:
    """Open :class:`InMemoryLegacyClient` objects from a table catalogue."""

    def __init__(self, tables: Mapping[str, Iterable[str]] | None = None) -> None:
        """Seed the per-account table names."""
        self._tables = {name: set(values) for name, values in (tables or {}).items()}
        self.opened: list[dict[str, str]] = []

    def open(
        self,
        account_name: str,
        access_key: str,
        *,
        dns_suffix: str,
        user_agent_prefix: str,
    ) -> InMemoryLegacyClient:
        """Return a client for *account_name* (the key is recorded, never validated)."""
        self.opened.append(
            {
                "account_name": account_name,
                "access_key": access_key,
                "dns_suffix": dns_suffix,
                "user_agent_prefix": user_agent_prefix,
            }
        )
        return InMemoryLegacyClient(account_name, self._tables.get(account_name, ()))


__all__ = [
    "InMemoryContainerService",
    "InMemoryDiskService",
    "InMemoryLegacyClient",
    "InMemoryLegacyClientFactory",
    "InMemoryStorageClient",
]
