"""Error taxonomy for the installer core."""

from __future__ import annotations


class SquadkitError(Exception):
    """Base for fatal conditions that stop a run before any write."""


class CatalogCorruptError(SquadkitError):
    """The source catalog is missing or internally inconsistent."""


class UnknownRoleError(SquadkitError):
    def __init__(self, unknown: list[str], available: list[str]) -> None:
        self.unknown = unknown
        self.available = available
        super().__init__(
            f"Unknown agent(s): {', '.join(unknown)}. Available: {', '.join(available)}"
        )


class DependencyCycleError(SquadkitError):
    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Knowledge pack dependency cycle: {' -> '.join(cycle)}")


class NotInstalledError(SquadkitError):
    """The target has no prior install to operate on."""


class SyncIOError(SquadkitError):
    """A single file write failed. A sync run records it and carries on."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class MergeFieldMissingError(KeyError):
    """An owned field is absent or empty in the target document."""
