"""Boot diagnostics storage account lookup."""
from __future__ import annotations

from dataclasses import dataclass

from .coordinator import AccountCreationCoordinator
from .models import DIAGNOSTICS_STORAGE_ACCOUNT_TAGS, STANDARD_LRS, StorageAccount


@dataclass(slots=True)
class DiagnosticsAccountResolver:
    """Return the per-location boot diagnostics account, creating it when missing."""

    coordinator: AccountCreationCoordinator

    def resolve(self, location: str) -> StorageAccount:
        """Return the diagnostics account for *location*."""
        account = self.coordinator.find_by_tags(DIAGNOSTICS_STORAGE_ACCOUNT_TAGS, location)
        if account is not None:
            return account
        return self.coordinator.create_by_tags(
            DIAGNOSTICS_STORAGE_ACCOUNT_TAGS, STANDARD_LRS, location, (), False
        )


__all__ = ["DiagnosticsAccountResolver"]
