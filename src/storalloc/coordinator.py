"""Locked create-or-adopt logic for storage accounts.

Creation is serialised per identity with a named cross-process lock:

* by account name for :meth:`AccountCreationCoordinator.create_by_name`;
* by ``(location, tags)`` for :meth:`AccountCreationCoordinator.create_by_tags`.

The lock holder re-checks the provider before creating, so an account made by
a process that finished earlier is adopted instead of duplicated. Contenders
that lose the race wait for the holder and then look the account up; they
never call the provider's create operation themselves.
"""
from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager

from .errors import (
    ContainerPreparationFailed,
    CreationFailed,
    CreationNotObserved,
    InvalidName,
    NameUnavailable,
    describe_tags,
)
from .locking import AccountLock
from .logging import OperationScope, StructuredLogger
from .models import ACCOUNT_NAME_INVALID, StorageAccount, as_tag_set, container_tuple
from .naming import NameGenerator
from .providers.base import ContainerService, StorageClient

LOGGER = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "create-storage-account"

TagMatcher = Callable[[Mapping[str, str], Mapping[str, str]], bool]
LockFactory = Callable[[str], AccountLock]


def tags_equal(account_tags: Mapping[str, str], wanted: Mapping[str, str]) -> bool:
    """Exact tag-set equality: same keys and same values."""
    return dict(account_tags) == dict(wanted)


def tags_superset(account_tags: Mapping[str, str], wanted: Mapping[str, str]) -> bool:
    """Match accounts carrying at least the *wanted* tags."""
    return all(account_tags.get(key) == value for key, value in wanted.items())


def serialise_tags(tags: Mapping[str, str]) -> str:
    """Return the canonical JSON form of *tags* used in lock keys."""
    return json.dumps(dict(tags), sort_keys=True, separators=(",", ":"))


def name_lock_key(name: str) -> str:
    """Return the lock key guarding creation of account *name*."""
    return f"{LOCK_KEY_PREFIX}-{name}"


def tags_lock_key(location: str, tags: Mapping[str, str]) -> str:
    """Return the lock key guarding creation of the account tagged *tags* in *location*."""
    digest = hashlib.md5(serialise_tags(tags).encode("utf-8"), usedforsecurity=False).hexdigest()
    return f"{LOCK_KEY_PREFIX}-{location}-{digest}"


class AccountCreationCoordinator:
    """Create storage accounts so that each identity is created at most once."""

    def __init__(
        self,
        client: StorageClient,
        containers: ContainerService,
        names: NameGenerator,
        lock_factory: LockFactory,
        *,
        logger: StructuredLogger | None = None,
        tag_matcher: TagMatcher = tags_equal,
    ) -> None:
        """Wire the coordinator to its collaborators."""
        self.client = client
        self.containers = containers
        self.names = names
        self.lock_factory = lock_factory
        self.logger = logger
        self.tag_matcher = tag_matcher

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def find_by_name(self, name: str) -> StorageAccount | None:
        """Return the account called *name*, or ``None``."""
        return self.client.get_account_by_name(name)

    def find_by_tags(self, tags: Mapping[str, str], location: str) -> StorageAccount | None:
        """Return the first listed account in *location* whose tags match *tags*."""
        wanted = as_tag_set(tags)
        for account in self.client.list_accounts():
            if account.location == location and self.tag_matcher(account.tags, wanted):
                return account
        return None

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def create_by_name(
        self,
        name: str,
        tags: Mapping[str, str] | None,
        account_type: str,
        location: str,
        containers: Sequence[str] | None,
        is_default: bool,
    ) -> StorageAccount:
        """Create account *name* (or adopt it if it already exists)."""
        tag_set = as_tag_set(tags)
        container_names = container_tuple(containers)
        args = {
            "account_type": account_type,
            "location": location,
            "tags": tag_set,
            "containers": list(container_names),
            "is_default": is_default,
        }
        with self._operation("account create", args=args, target={"name": name}) as op:
            lock = self.lock_factory(name_lock_key(name))
            if not lock.try_lock():
                op.add_step("lock.contended", status="info", detail=name_lock_key(name))
                self._wait_for_holder(
                    lock,
                    op,
                    f"Failed to create storage account in location '{location}' with name "
                    f"'{name}' and tags '{describe_tags(tag_set)}'",
                )
                account = self.find_by_name(name)
                if account is None:
                    raise CreationNotObserved(f"Storage account '{name}' is not created.")
                op.success("Storage account was created by another process.")
                return account

            try:
                account, created = self._create_while_locked(
                    name, tag_set, account_type, location, container_names, is_default, op
                )
            finally:
                lock.unlock()
            if created:
                op.success("Storage account created.", changed=1)
            else:
                op.success("Storage account already exists.")
            return account

    def create_by_tags(
        self,
        tags: Mapping[str, str],
        account_type: str,
        location: str,
        containers: Sequence[str] | None,
        is_default: bool,
    ) -> StorageAccount:
        """Return the account tagged *tags* in *location*, creating it under a fresh name."""
        tag_set = as_tag_set(tags)
        container_names = container_tuple(containers)
        failure = (
            f"Failed to create storage account in location '{location}' with tags "
            f"'{describe_tags(tag_set)}'"
        )
        args = {
            "account_type": account_type,
            "containers": list(container_names),
            "is_default": is_default,
        }
        target = {"location": location, "tags": tag_set}
        with self._operation("account create-by-tags", args=args, target=target) as op:
            key = tags_lock_key(location, tag_set)
            lock = self.lock_factory(key)
            if not lock.try_lock():
                op.add_step("lock.contended", status="info", detail=key)
                self._wait_for_holder(lock, op, failure)
                account = self.find_by_tags(tag_set, location)
                if account is None:
                    raise CreationNotObserved(
                        f"Storage account for tags '{describe_tags(tag_set)}' is not created."
                    )
                op.success("Storage account was created by another process.")
                return account

            try:
                existing = self.find_by_tags(tag_set, location)
                if existing is not None:
                    op.add_step("account.found", detail=existing.name)
                    op.success("Storage account already exists.")
                    return existing
                name = self.names.generate_name()
                op.add_step("name.generate", detail=name)
                account = self.create_by_name(
                    name, tag_set, account_type, location, container_names, is_default
                )
            except Exception as exc:
                raise CreationFailed(f"{failure}: {exc}") from exc
            finally:
                lock.unlock()
            op.success("Storage account created.", changed=1, context={"name": account.name})
            return account

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _create_while_locked(
        self,
        name: str,
        tags: dict[str, str],
        account_type: str,
        location: str,
        containers: tuple[str, ...],
        is_default: bool,
        op: OperationScope,
    ) -> tuple[StorageAccount, bool]:
        existing = self.find_by_name(name)
        if existing is not None:
            op.add_step("account.found", detail=name)
            return existing, False

        availability = self.client.check_name_availability(name)
        if not availability.available:
            if availability.reason == ACCOUNT_NAME_INVALID:
                raise InvalidName(name)
            raise NameUnavailable(name, availability.reason, availability.message)

        LOGGER.info("Creating storage account %s in %s (%s).", name, location, account_type)
        self.client.create_account(name, location, account_type, tags)
        op.add_step("account.create", detail=name)

        try:
            self.containers.prepare_containers(name, containers, is_default)
        except Exception as exc:
            op.add_step("containers.prepare", status="error", detail=str(exc))
            raise ContainerPreparationFailed(name, containers, exc) from exc
        op.add_step("containers.prepare", detail=list(containers))

        account = self.find_by_name(name)
        if account is None:
            raise CreationNotObserved(f"Storage account '{name}' is not created.")
        return account, True

    def _wait_for_holder(self, lock: AccountLock, op: OperationScope, failure: str) -> None:
        try:
            lock.wait()
        except Exception as exc:
            raise CreationFailed(f"{failure}: {exc}") from exc
        finally:
            op.set_lock_wait_ms(getattr(lock, "wait_ms", 0))

    @contextmanager
    def _operation(
        self,
        command: str,
        *,
        args: Mapping[str, object],
        target: Mapping[str, object],
    ) -> Iterator[OperationScope]:
        if self.logger is None:
            yield OperationScope(command, args=args, target=target)
            return
        with self.logger.operation(command, args=args, target=target) as op:
            yield op


__all__ = [
    "AccountCreationCoordinator",
    "LockFactory",
    "TagMatcher",
    "name_lock_key",
    "serialise_tags",
    "tags_equal",
    "tags_lock_key",
    "tags_superset",
]
