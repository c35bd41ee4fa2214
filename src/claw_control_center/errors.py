"""Exception taxonomy shared by the stores, engines, API and CLI."""

from __future__ import annotations


class ClawError(Exception):
    """Base class for control-center errors."""


class ValidationError(ClawError, ValueError):
    """Input rejected before any state was changed."""


class NotFoundError(ClawError, LookupError):
    """An unknown task, agent or notification id was referenced."""

    def __init__(self, kind: str, item_id: str) -> None:
        super().__init__(f"{kind} {item_id} not found")
        self.kind = kind
        self.item_id = item_id


class StoreCorruptedError(ClawError):
    """A state file exists but cannot be parsed; it is never overwritten."""
