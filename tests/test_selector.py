"""Tests for placement-driven account selection."""
from __future__ import annotations

import pytest

from storalloc.coordinator import AccountCreationCoordinator
from storalloc.default_account import DefaultAccountResolver
from storalloc.errors import InvalidPatternSyntax, MissingProperty, NoAvailableAccount
from storalloc.models import STEMCELL_STORAGE_ACCOUNT_TAGS, ResourcePlacementRequest, StorageAccount
from storalloc.naming import NameGenerator
from storalloc.providers import (
    InMemoryContainerService,
    InMemoryDiskService,
    InMemoryLegacyClientFactory,
    InMemoryStorageClient,
)
from storalloc.selector import AccountSelector, parse_pattern

PATTERN_ACCOUNTS = (
    "pattern",
    "2pattern",
    "pattern3",
    "4pattern4",
    "tpattern",
    "patternt",
    "tpatternt",
    "patten",
    "foo",
)


class AlwaysFree:
    """Lock double that is never contended."""

    wait_ms = 0

    def try_lock(self) -> bool:
        return True

    def wait(self) -> None:
        raise AssertionError("uncontended lock should not be waited on")

    def unlock(self) -> None:
        return None


def _selector(
    client: InMemoryStorageClient,
    disks: InMemoryDiskService | None = None,
    *,
    default_max_disk_number: int = 30,
) -> tuple[AccountSelector, InMemoryContainerService]:
    containers = InMemoryContainerService()
    coordinator = AccountCreationCoordinator(
        client, containers, NameGenerator(client), lambda key: AlwaysFree()
    )
    resolver = DefaultAccountResolver(
        client=client,
        coordinator=coordinator,
        legacy_clients=InMemoryLegacyClientFactory(),
        resource_group_name="bosh-rg",
    )
    selector = AccountSelector(
        client=client,
        disks=disks or InMemoryDiskService(),
        coordinator=coordinator,
        default_resolver=resolver,
        default_max_disk_number=default_max_disk_number,
    )
    return selector, containers


def _placement(
    name: str | None = None,
    account_type: str | None = None,
    max_disks: int | None = None,
) -> ResourcePlacementRequest:
    return ResourcePlacementRequest(
        instance_class="Standard_F1",
        storage_account_name=name,
        storage_account_type=account_type,
        storage_account_max_disk_number=max_disks,
    )


@pytest.mark.parametrize("pattern", ["*pattern*", "*a*", "*123abc*"])
def test_parse_pattern_accepts_valid_patterns(pattern: str) -> None:
    """Well-formed patterns yield their body."""
    assert parse_pattern(pattern) == pattern.strip("*")


@pytest.mark.parametrize(
    "pattern",
    ["*pattern", "pattern*", "**pattern*", "*PATTERN*", "*pat+tern*", "**", "*pat*tern*"],
)
def test_invalid_patterns_fail_before_provider_calls(pattern: str) -> None:
    """Malformed patterns raise InvalidPatternSyntax without provider traffic."""
    client = InMemoryStorageClient([StorageAccount("pattern", "westus")])
    disks = InMemoryDiskService()
    selector, _ = _selector(client, disks)

    with pytest.raises(InvalidPatternSyntax):
        selector.resolve(_placement(pattern), "westus")

    assert client.calls == []
    assert disks.queried == []


def test_pattern_selects_first_account_with_capacity() -> None:
    """Packing skips full accounts and never inspects non-matching names."""
    client = InMemoryStorageClient([StorageAccount(name, "westus") for name in PATTERN_ACCOUNTS])
    disks = InMemoryDiskService(
        {name: ["d1.vhd", "d2.vhd"] for name in PATTERN_ACCOUNTS if name != "4pattern4"}
    )
    selector, containers = _selector(client, disks)

    account = selector.resolve(_placement("*pattern*", max_disks=2), "westus")

    assert account.name == "4pattern4"
    assert disks.queried == ["pattern", "2pattern", "pattern3", "4pattern4"]
    assert "patten" not in disks.queried
    assert "foo" not in disks.queried
    assert client.calls_to("create_account") == []
    assert containers.prepared == []


def test_pattern_matching_excludes_non_substrings() -> None:
    """Only names containing the body are candidates."""
    client = InMemoryStorageClient([StorageAccount(name, "westus") for name in PATTERN_ACCOUNTS])
    full = ["disk"] * 5
    disks = InMemoryDiskService({name: full for name in PATTERN_ACCOUNTS})
    selector, _ = _selector(client, disks, default_max_disk_number=5)

    with pytest.raises(NoAvailableAccount):
        selector.resolve(_placement("*pattern*"), "westus")

    assert set(disks.queried) == set(PATTERN_ACCOUNTS) - {"patten", "foo"}


def test_pattern_uses_default_limit_when_unset() -> None:
    """Without a per-request limit the configured default applies."""
    client = InMemoryStorageClient(
        [StorageAccount("apool1", "westus"), StorageAccount("apool2", "westus")]
    )
    disks = InMemoryDiskService({"apool1": ["d"] * 3, "apool2": ["d"]})
    selector, _ = _selector(client, disks, default_max_disk_number=3)

    assert selector.resolve(_placement("*pool*"), "westus").name == "apool2"


def test_pattern_without_matches_fails() -> None:
    """No matching account names raises NoAvailableAccount."""
    client = InMemoryStorageClient([StorageAccount("foo", "westus")])
    selector, _ = _selector(client)

    with pytest.raises(NoAvailableAccount, match="no account name matches"):
        selector.resolve(_placement("*pattern*"), "westus")


def test_literal_name_returns_existing_account() -> None:
    """Existing literal names are returned as-is."""
    client = InMemoryStorageClient([StorageAccount("literalsa", "eastus")])
    selector, _ = _selector(client)

    account = selector.resolve(_placement("literalsa"), "westus")

    assert account.name == "literalsa"
    assert client.calls_to("create_account") == []


def test_literal_name_requires_type_for_creation() -> None:
    """Creating a missing literal account needs storage_account_type."""
    client = InMemoryStorageClient()
    selector, _ = _selector(client)

    with pytest.raises(MissingProperty, match="storage_account_type"):
        selector.resolve(_placement("newsa"), "westus")

    assert client.calls_to("create_account") == []


def test_literal_name_is_created_with_default_containers() -> None:
    """Missing literal accounts are created without tags and with disk containers."""
    client = InMemoryStorageClient()
    selector, containers = _selector(client)

    account = selector.resolve(_placement("newsa", "Premium_LRS"), "westus")

    assert account.name == "newsa"
    assert account.account_type == "Premium_LRS"
    assert client.calls_to("create_account") == [("newsa", "westus", "Premium_LRS", {})]
    assert containers.prepared == [("newsa", ("bosh", "stemcell"), False)]


def test_missing_name_uses_default_account() -> None:
    """Requests without a name fall through to the default account."""
    client = InMemoryStorageClient(
        [StorageAccount("defaultsa", "westus", tags=dict(STEMCELL_STORAGE_ACCOUNT_TAGS))],
        resource_groups={"bosh-rg": "westus"},
    )
    selector, _ = _selector(client)

    assert selector.resolve(_placement(), "eastus").name == "defaultsa"
