"""Choose the storage account for a workload placement request."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .coordinator import AccountCreationCoordinator
from .default_account import DefaultAccountResolver
from .errors import InvalidPatternSyntax, MissingProperty, NoAvailableAccount
from .models import (
    DEFAULT_CONTAINERS,
    DEFAULT_MAX_DISK_NUMBER,
    ResourcePlacementRequest,
    StorageAccount,
)
from .providers.base import DiskService, StorageClient

LOGGER = logging.getLogger(__name__)

PATTERN_RE = re.compile(r"^\*([a-z0-9]+)\*$")


def parse_pattern(pattern: str) -> str:
    """Return the body of a ``*body*`` pattern or raise :class:`InvalidPatternSyntax`."""
    match = PATTERN_RE.fullmatch(pattern)
    if match is None:
        raise InvalidPatternSyntax(pattern)
    return match.group(1)


@dataclass(slots=True)
class AccountSelector:
    """Resolve a placement request to an existing or newly created account.

    Three request shapes are supported:

    * no ``storage_account_name``: the deployment's default account;
    * a literal name: that account, created on demand when a type is given;
    * a ``*body*`` pattern: the first existing account whose name contains
      ``body`` and which holds fewer disks than the configured limit. The
      pattern path never creates accounts.
    """

    client: StorageClient
    disks: DiskService
    coordinator: AccountCreationCoordinator
    default_resolver: DefaultAccountResolver
    default_max_disk_number: int = DEFAULT_MAX_DISK_NUMBER

    def resolve(self, placement: ResourcePlacementRequest, location: str) -> StorageAccount:
        """Return the account that should host the placement's disks."""
        name = placement.storage_account_name
        if name is None:
            return self.default_resolver.resolve()
        if placement.is_pattern:
            return self._resolve_pattern(name, placement.storage_account_max_disk_number)
        return self._resolve_literal(name, placement, location)

    def _resolve_literal(
        self,
        name: str,
        placement: ResourcePlacementRequest,
        location: str,
    ) -> StorageAccount:
        account = self.coordinator.find_by_name(name)
        if account is not None:
            return account
        account_type = placement.storage_account_type
        if account_type is None:
            raise MissingProperty("storage_account_type")
        return self.coordinator.create_by_name(
            name, {}, account_type, location, DEFAULT_CONTAINERS, False
        )

    def _resolve_pattern(self, pattern: str, max_disk_number: int | None) -> StorageAccount:
        body = parse_pattern(pattern)
        candidates = [
            account for account in self.client.list_accounts() if body in account.name
        ]
        if not candidates:
            raise NoAvailableAccount(
                f"Cannot find an available storage account: no account name matches "
                f"the pattern '{pattern}'."
            )

        limit = max_disk_number or self.default_max_disk_number
        for account in candidates:
            disk_count = len(self.disks.list_disks(account.name))
            if disk_count < limit:
                LOGGER.debug(
                    "Selected storage account %s (%d disks, limit %d).",
                    account.name,
                    disk_count,
                    limit,
                )
                return account
        raise NoAvailableAccount(
            f"Cannot find an available storage account: every account matching "
            f"'{pattern}' already holds {limit} or more disks."
        )


__all__ = ["AccountSelector", "PATTERN_RE", "parse_pattern"]
