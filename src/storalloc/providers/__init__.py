"""Collaborator interfaces and implementations for storalloc."""
from __future__ import annotations

from .base import (
    ContainerService,
    DiskService,
    LegacyClient,
    LegacyClientFactory,
    LegacyMarkerNotFound,
    ProviderError,
    StorageClient,
    TransientProviderError,
)
from .memory import (
    InMemoryContainerService,
    InMemoryDiskService,
    InMemoryLegacyClient,
    InMemoryLegacyClientFactory,
    InMemoryStorageClient,
)
from .retry import ExponentialRetryPolicy, is_retryable

__all__ = [
    "ContainerService",
    "DiskService",
    "ExponentialRetryPolicy",
    "InMemoryContainerService",
    "InMemoryDiskService",
    "InMemoryLegacyClient",
    "InMemoryLegacyClientFactory",
    "InMemoryStorageClient",
    "LegacyClient",
    "LegacyClientFactory",
    "LegacyMarkerNotFound",
    "ProviderError",
    "StorageClient",
    "TransientProviderError",
    "is_retryable",
]
