"""
Exception types raised by the governance engine.

Every error derives from `GovernanceError` so callers embedding the engine can
catch the whole family at one seam.
"""
from __future__ import annotations


class GovernanceError(RuntimeError):
    """Governance operation failed."""


class ConfigurationError(GovernanceError):
    """Raised when a scope is unknown or a configuration value is invalid."""

    def __init__(self, message: str, *, scope: str | None = None) -> None:
        super().__init__(message)
        self.scope = scope


class NotFoundError(GovernanceError):
    """Raised when a requested node does not exist in the registry."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node {node_id!r} not found")
        self.node_id = node_id


class PersistenceError(GovernanceError):
    """Raised when the storage layer fails after exhausting retries."""

    def __init__(self, operation: str, attempts: int) -> None:
        super().__init__(f"Storage operation {operation!r} failed after {attempts} attempt(s)")
        self.operation = operation
        self.attempts = attempts


__all__ = [
    "GovernanceError",
    "ConfigurationError",
    "NotFoundError",
    "PersistenceError",
]
