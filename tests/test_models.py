"""Tests for the shared data model."""
from __future__ import annotations

import pytest

from storalloc.errors import InvalidPlacementRequest, describe_tags
from storalloc.models import (
    STEMCELL_STORAGE_ACCOUNT_TAGS,
    ResourcePlacementRequest,
    StorageAccount,
)


def test_placement_from_mapping_reads_properties() -> None:
    """Resource pool properties map onto the placement request."""
    placement = ResourcePlacementRequest.from_mapping(
        {
            "instance_type": "Standard_F1",
            "storage_account_name": "*pattern*",
            "storage_account_type": "Standard_LRS",
            "storage_account_max_disk_number": "2",
        }
    )

    assert placement.instance_class == "Standard_F1"
    assert placement.storage_account_name == "*pattern*"
    assert placement.storage_account_type == "Standard_LRS"
    assert placement.storage_account_max_disk_number == 2
    assert placement.is_pattern


def test_placement_from_mapping_defaults() -> None:
    """Absent properties become None."""
    placement = ResourcePlacementRequest.from_mapping({"instance_class": "small"})

    assert placement.storage_account_name is None
    assert placement.storage_account_type is None
    assert placement.storage_account_max_disk_number is None
    assert not placement.is_pattern


@pytest.mark.parametrize(
    "raw",
    [
        {"storage_account_max_disk_number": 0},
        {"storage_account_max_disk_number": True},
        {"storage_account_max_disk_number": "many"},
        {"storage_account_name": 42},
    ],
)
def test_placement_from_mapping_rejects_bad_values(raw: dict[str, object]) -> None:
    """Malformed properties raise InvalidPlacementRequest."""
    with pytest.raises(InvalidPlacementRequest):
        ResourcePlacementRequest.from_mapping(raw)


def test_storage_account_helpers() -> None:
    """Tag comparison is exact and premium accounts are not standard."""
    account = StorageAccount(
        name="sa1",
        location="westus",
        tags={"type": "stemcell", "user-agent": "bosh"},
        keys=("secret",),
    )

    assert account.has_tags(STEMCELL_STORAGE_ACCOUNT_TAGS)
    assert not account.has_tags({"type": "stemcell"})
    assert account.is_standard
    assert not StorageAccount(name="sa2", location="westus", account_type="Premium_LRS").is_standard
    assert "keys" not in account.to_dict()


def test_describe_tags_is_stable() -> None:
    """Tag rendering sorts keys."""
    assert describe_tags({"user-agent": "bosh", "type": "stemcell"}) == (
        "{'type': 'stemcell', 'user-agent': 'bosh'}"
    )
