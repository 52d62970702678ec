"""Resolve the deployment's singleton default storage account.

Resolution order:

1. A name pinned in configuration is authoritative. With managed disks on,
   its tags are reconciled to the canonical stemcell tags.
2. An account in the resource group location carrying the stemcell tags.
3. A legacy account created before tag-based discovery existed, recognised by
   its ``stemcells`` table. It is adopted (and tagged) only if it lives in the
   resource group location; a default account is never relocated.
4. Otherwise a new account is provisioned through the tag-keyed creation lock.

The result is memoised on the resolver, which lives for one adapter invocation.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from .coordinator import AccountCreationCoordinator
from .errors import DefaultAccountMissing, LocationMismatch, StorageAccountError
from .models import (
    DEFAULT_CONTAINERS,
    LEGACY_MARKER_TABLE,
    STANDARD_LRS,
    STEMCELL_STORAGE_ACCOUNT_TAGS,
    StorageAccount,
)
from .providers.base import LegacyClientFactory, LegacyMarkerNotFound, StorageClient
from .providers.retry import ExponentialRetryPolicy

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DefaultAccountResolver:
    """Find, adopt, or create the default (stemcell) storage account."""

    client: StorageClient
    coordinator: AccountCreationCoordinator
    legacy_clients: LegacyClientFactory
    resource_group_name: str
    storage_account_name: str | None = None
    use_managed_disks: bool = False
    storage_dns_suffix: str = "core.windows.net"
    user_agent_prefix: str = "BOSH-AZURE-CPI"
    retry_policy: ExponentialRetryPolicy = field(default_factory=ExponentialRetryPolicy)
    request_id_factory: Callable[[], str] = field(
        default=lambda: str(uuid.uuid4()), repr=False
    )
    _cached: StorageAccount | None = field(default=None, init=False, repr=False)

    def resolve(self) -> StorageAccount:
        """Return the default account, resolving it on first use."""
        if self._cached is None:
            if self.storage_account_name:
                self._cached = self._resolve_pinned(self.storage_account_name)
            else:
                self._cached = self._resolve_by_discovery()
        return self._cached

    def default_account_name(self) -> str:
        """Return the name of the default account."""
        return self.resolve().name

    def reset(self) -> None:
        """Forget the memoised account."""
        self._cached = None

    # ------------------------------------------------------------------
    def _resolve_pinned(self, name: str) -> StorageAccount:
        account = self.coordinator.find_by_name(name)
        if account is None:
            raise DefaultAccountMissing(
                f"The default storage account '{name}' specified in the global "
                "configuration does not exist."
            )
        if self.use_managed_disks and not account.has_tags(STEMCELL_STORAGE_ACCOUNT_TAGS):
            LOGGER.info("Tagging default storage account %s for stemcell discovery.", name)
            self.client.update_tags(name, dict(STEMCELL_STORAGE_ACCOUNT_TAGS))
        return account

    def _resolve_by_discovery(self) -> StorageAccount:
        if not self.resource_group_name:
            raise StorageAccountError(
                "resource_group_name must be configured to discover the default storage account."
            )
        location = self.client.get_resource_group(self.resource_group_name).location

        account = self.coordinator.find_by_tags(STEMCELL_STORAGE_ACCOUNT_TAGS, location)
        if account is not None:
            LOGGER.debug("Default storage account %s found by tags.", account.name)
            return account

        legacy = self._find_legacy_account()
        if legacy is not None:
            if legacy.location != location:
                raise LocationMismatch(legacy.name, legacy.location, location)
            LOGGER.info("Adopting legacy default storage account %s.", legacy.name)
            self.client.update_tags(legacy.name, dict(STEMCELL_STORAGE_ACCOUNT_TAGS))
            return legacy

        LOGGER.info("No default storage account found; creating one in %s.", location)
        return self.coordinator.create_by_tags(
            STEMCELL_STORAGE_ACCOUNT_TAGS,
            STANDARD_LRS,
            location,
            DEFAULT_CONTAINERS,
            True,
        )

    def _find_legacy_account(self) -> StorageAccount | None:
        for account in self.client.list_accounts():
            if not account.is_standard:
                continue
            if self._has_legacy_marker(account):
                return account
        return None

    def _has_legacy_marker(self, account: StorageAccount) -> bool:
        keys = self.client.get_account_keys(account.name)
        if not keys:
            LOGGER.debug("Storage account %s returned no keys; skipping.", account.name)
            return False
        table_client = self.legacy_clients.open(
            account.name,
            keys[0],
            dns_suffix=self.storage_dns_suffix,
            user_agent_prefix=self.user_agent_prefix,
        )
        try:
            self.retry_policy.call(
                lambda: table_client.get_table(
                    LEGACY_MARKER_TABLE, request_id=self.request_id_factory()
                ),
                description=f"legacy marker lookup on {account.name}",
            )
        except LegacyMarkerNotFound:
            return False
        return True


__all__ = ["DefaultAccountResolver"]
