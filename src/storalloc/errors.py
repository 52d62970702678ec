"""Error taxonomy for storage account allocation.

Every failure surfaced by the allocation engine derives from
:class:`StorageAccountError` so adapters can report the message verbatim.
Absent accounts are never errors; lookups return ``None`` instead.
"""
from __future__ import annotations

from collections.abc import Mapping


class StorageAccountError(RuntimeError):
    """Base class for allocation failures."""


class InvalidPatternSyntax(StorageAccountError):
    """Raised when a ``*body*`` account pattern is malformed."""

    def __init__(self, pattern: str) -> None:
        """Record the rejected *pattern*."""
        super().__init__(
            f"storage_account_name '{pattern}' in the placement request is invalid. "
            "A pattern must look like '*body*' where body contains only lowercase "
            "letters and digits."
        )
        self.pattern = pattern


class MissingProperty(StorageAccountError):
    """Raised when a placement request lacks a required property."""

    def __init__(self, property_name: str) -> None:
        """Record the missing *property_name*."""
        super().__init__(f"missing required cloud property '{property_name}'.")
        self.property_name = property_name


class InvalidPlacementRequest(StorageAccountError):
    """Raised when a placement request mapping cannot be parsed."""


class InvalidName(StorageAccountError):
    """Raised when the provider rejects an account name as malformed."""

    def __init__(self, name: str) -> None:
        """Record the rejected *name*."""
        super().__init__(
            f"The storage account name '{name}' is invalid. Storage account names must "
            "be between 3 and 24 characters in length and use numbers and lower-case "
            "letters only."
        )
        self.name = name


class NameUnavailable(StorageAccountError):
    """Raised when an account name is valid but already taken."""

    def __init__(self, name: str, reason: str | None, detail: str | None) -> None:
        """Record *name* with the provider's *reason* and *detail* message."""
        super().__init__(
            f"The storage account with the name '{name}' is not available. "
            f"Error reason: {reason}. Error message: {detail}"
        )
        self.name = name
        self.reason = reason
        self.detail = detail


class ContainerPreparationFailed(StorageAccountError):
    """Raised when an account exists but its containers could not be created."""

    def __init__(
        self,
        name: str,
        containers: tuple[str, ...],
        cause: BaseException | None = None,
    ) -> None:
        """Record the partially provisioned account *name*."""
        joined = ", ".join(containers) or "<none>"
        message = (
            f"The storage account '{name}' is created successfully, but it failed to "
            f"prepare the containers ({joined})."
        )
        if cause is not None:
            message = f"{message} Error: {cause}"
        super().__init__(message)
        self.name = name
        self.containers = containers


class CreationNotObserved(StorageAccountError):
    """Raised when a waiter finds no account after the lock holder finished."""


class CreationFailed(StorageAccountError):
    """Raised when a locked creation attempt fails; wraps the underlying cause."""


class LocationMismatch(StorageAccountError):
    """Raised when the legacy default account lives outside the resource group location."""

    def __init__(self, account_name: str, location: str, expected_location: str) -> None:
        """Record the account and both locations."""
        super().__init__(
            f"The existing default storage account '{account_name}' has a different "
            f"location other than the resource group location. The storage account is "
            f"in '{location}' but the resource group is in '{expected_location}'."
        )
        self.account_name = account_name
        self.location = location
        self.expected_location = expected_location


class NoAvailableAccount(StorageAccountError):
    """Raised when no existing account matches a pattern with spare capacity."""


class NameGenerationExhausted(StorageAccountError):
    """Raised when no available account name was found within the attempt bound."""


class DefaultAccountMissing(StorageAccountError):
    """Raised when the configured default storage account does not exist."""


def describe_tags(tags: Mapping[str, str]) -> str:
    """Return a stable, human readable rendering of *tags* for error messages."""
    inner = ", ".join(f"{key!r}: {value!r}" for key, value in sorted(tags.items()))
    return "{" + inner + "}"


__all__ = [
    "ContainerPreparationFailed",
    "CreationFailed",
    "CreationNotObserved",
    "DefaultAccountMissing",
    "InvalidName",
    "InvalidPatternSyntax",
    "InvalidPlacementRequest",
    "LocationMismatch",
    "MissingProperty",
    "NameGenerationExhausted",
    "NameUnavailable",
    "NoAvailableAccount",
    "StorageAccountError",
    "describe_tags",
]
