"""Facade wiring the allocation engine for one adapter invocation.

The adapter's command layer builds a :class:`StorageAccountManager` once per
process from :func:`storalloc.config.load_config` and its provider
collaborators, then calls the public methods below. Each call is recorded as
a structured operation; error messages surface unchanged.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .config import AllocatorConfig
from .coordinator import AccountCreationCoordinator, TagMatcher, tags_equal
from .default_account import DefaultAccountResolver
from .diagnostics import DiagnosticsAccountResolver
from .locking import LockManager
from .logging import StructuredLogger
from .models import ResourcePlacementRequest, StorageAccount
from .naming import NameGenerator
from .providers.base import ContainerService, DiskService, LegacyClientFactory, StorageClient
from .providers.retry import ExponentialRetryPolicy
from .selector import AccountSelector


@dataclass(slots=True)
class StorageAccountManager:
    """Entry point bundling the resolvers and the creation coordinator."""

    config: AllocatorConfig
    logger: StructuredLogger
    locks: LockManager
    names: NameGenerator
    coordinator: AccountCreationCoordinator
    default_resolver: DefaultAccountResolver
    selector: AccountSelector
    diagnostics: DiagnosticsAccountResolver

    @classmethod
    def from_config(
        cls,
        config: AllocatorConfig,
        *,
        client: StorageClient,
        containers: ContainerService,
        disks: DiskService,
        legacy_clients: LegacyClientFactory,
        logger: StructuredLogger | None = None,
        tag_matcher: TagMatcher = tags_equal,
    ) -> StorageAccountManager:
        """Build a manager and its components from *config*."""
        structured = logger or StructuredLogger(config.logs_dir)
        locks = LockManager(config.lock_dir, config.lock_timeout)
        names = NameGenerator(
            client,
            max_attempts=config.name_generation.max_attempts,
            backoff_seconds=config.name_generation.backoff_seconds,
        )
        coordinator = AccountCreationCoordinator(
            client,
            containers,
            names,
            locks.mutex,
            logger=structured,
            tag_matcher=tag_matcher,
        )
        default_resolver = DefaultAccountResolver(
            client=client,
            coordinator=coordinator,
            legacy_clients=legacy_clients,
            resource_group_name=config.resource_group_name,
            storage_account_name=config.storage_account_name,
            use_managed_disks=config.use_managed_disks,
            storage_dns_suffix=config.storage_dns_suffix,
            user_agent_prefix=config.user_agent_prefix,
            retry_policy=ExponentialRetryPolicy(
                retries=config.legacy_probe.retries,
                base_delay=config.legacy_probe.base_delay,
                max_delay=config.legacy_probe.max_delay,
            ),
        )
        selector = AccountSelector(
            client=client,
            disks=disks,
            coordinator=coordinator,
            default_resolver=default_resolver,
            default_max_disk_number=config.max_disk_number,
        )
        return cls(
            config=config,
            logger=structured,
            locks=locks,
            names=names,
            coordinator=coordinator,
            default_resolver=default_resolver,
            selector=selector,
            diagnostics=DiagnosticsAccountResolver(coordinator),
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def get_storage_account_from_resource_pool(
        self,
        resource_pool: Mapping[str, Any],
        location: str,
    ) -> StorageAccount:
        """Return the account for a VM's resource pool properties."""
        args = {
            key: resource_pool.get(key)
            for key in (
                "storage_account_name",
                "storage_account_type",
                "storage_account_max_disk_number",
            )
        }
        with self.logger.operation(
            "account resolve", args=args, target={"location": location}
        ) as op:
            placement = ResourcePlacementRequest.from_mapping(resource_pool)
            account = self.selector.resolve(placement, location)
            op.success("Resolved storage account.", context={"name": account.name})
            return account

    def default_storage_account(self) -> StorageAccount:
        """Return the deployment's default storage account."""
        with self.logger.operation(
            "account default", target={"resource_group": self.config.resource_group_name}
        ) as op:
            account = self.default_resolver.resolve()
            op.success("Resolved default storage account.", context={"name": account.name})
            return account

    def default_storage_account_name(self) -> str:
        """Return the name of the default storage account."""
        return self.default_storage_account().name

    def get_or_create_diagnostics_storage_account(self, location: str) -> StorageAccount:
        """Return the boot diagnostics account for *location*."""
        with self.logger.operation("account diagnostics", target={"location": location}) as op:
            account = self.diagnostics.resolve(location)
            op.success("Resolved diagnostics storage account.", context={"name": account.name})
            return account

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------
    def generate_storage_account_name(self) -> str:
        """Return an available random account name."""
        with self.logger.operation("account name") as op:
            name = self.names.generate_name()
            op.success("Generated storage account name.", context={"name": name})
            return name

    def create_storage_account(
        self,
        name: str,
        tags: Mapping[str, str] | None,
        account_type: str,
        location: str,
        containers: Sequence[str] | None,
        is_default: bool,
    ) -> StorageAccount:
        """Create (or adopt) account *name* under its creation lock.

        The coordinator records the call as its ``account create`` operation.
        """
        return self.coordinator.create_by_name(
            name, tags, account_type, location, containers, is_default
        )

    def create_storage_account_by_tags(
        self,
        tags: Mapping[str, str],
        account_type: str,
        location: str,
        containers: Sequence[str] | None,
        is_default: bool,
    ) -> StorageAccount:
        """Return the tagged account in *location*, creating it if needed.

        The coordinator records the call as ``account create-by-tags``.
        """
        return self.coordinator.create_by_tags(tags, account_type, location, containers, is_default)

    def find_storage_account_by_name(self, name: str) -> StorageAccount | None:
        """Return account *name* or ``None``."""
        with self.logger.operation("account find", target={"name": name}) as op:
            account = self.coordinator.find_by_name(name)
            op.success(_lookup_message(account), context={"found": account is not None})
            return account

    def find_storage_account_by_tags(
        self,
        tags: Mapping[str, str],
        location: str,
    ) -> StorageAccount | None:
        """Return the first account in *location* tagged *tags*, or ``None``."""
        target = {"location": location, "tags": dict(tags)}
        with self.logger.operation("account find-by-tags", target=target) as op:
            account = self.coordinator.find_by_tags(tags, location)
            context: dict[str, object] = {"found": account is not None}
            if account is not None:
                context["name"] = account.name
            op.success(_lookup_message(account), context=context)
            return account


def _lookup_message(account: StorageAccount | None) -> str:
    if account is None:
        return "Storage account not found."
    return "Storage account found."


__all__ = ["StorageAccountManager"]
