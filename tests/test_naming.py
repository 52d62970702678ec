"""Tests for random account name generation."""
from __future__ import annotations

import re

import pytest

from storalloc.errors import NameGenerationExhausted
from storalloc.naming import NameGenerator
from storalloc.providers import InMemoryStorageClient


def test_generated_names_are_24_hex_characters() -> None:
    """Default tokens are valid storage account names."""
    client = InMemoryStorageClient()
    generator = NameGenerator(client)

    name = generator.generate_name()

    assert re.fullmatch(r"[0-9a-f]{24}", name)
    assert client.calls_to("check_name_availability") == [(name,)]


def test_unavailable_candidates_are_skipped() -> None:
    """Taken names are skipped until an available one is found."""
    client = InMemoryStorageClient(reserved_names={"a" * 24, "b" * 24})
    tokens = iter(["a" * 24, "b" * 24, "c" * 24])
    generator = NameGenerator(client, token_factory=lambda: next(tokens))

    assert generator.generate_name() == "c" * 24
    assert len(client.calls_to("check_name_availability")) == 3


def test_generation_is_bounded() -> None:
    """The search stops after max_attempts unavailable candidates."""
    client = InMemoryStorageClient(reserved_names={"d" * 24})
    sleeps: list[float] = []
    generator = NameGenerator(
        client,
        max_attempts=4,
        token_factory=lambda: "d" * 24,
        sleep=sleeps.append,
    )

    with pytest.raises(NameGenerationExhausted, match="after 4 attempts"):
        generator.generate_name()
    assert len(client.calls_to("check_name_availability")) == 4
    assert sleeps == []


def test_backoff_doubles_up_to_cap() -> None:
    """Positive backoff sleeps between attempts with a capped doubling delay."""
    client = InMemoryStorageClient(reserved_names={"e" * 24})
    sleeps: list[float] = []
    generator = NameGenerator(
        client,
        max_attempts=6,
        backoff_seconds=1.0,
        token_factory=lambda: "e" * 24,
        sleep=sleeps.append,
    )

    with pytest.raises(NameGenerationExhausted):
        generator.generate_name()
    assert sleeps == [1.0, 2.0, 4.0, 5.0, 5.0]
