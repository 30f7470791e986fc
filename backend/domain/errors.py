"""Error taxonomy surfaced by the booking engine services."""

from __future__ import annotations

from typing import Any, Optional


class FloorbookError(Exception):
    """Base class for every error the core reports to its callers."""


class ValidationError(FloorbookError):
    """Malformed or out-of-range input (past start, end before start, missing field)."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class UniquenessConflict(FloorbookError):
    """A name, floor number, room id or desk id collides with an existing one."""

    def __init__(self, field: str, value: Any, message: Optional[str] = None) -> None:
        super().__init__(message or f"{field} '{value}' is already in use")
        self.field = field
        self.value = value


class SchedulingConflict(FloorbookError):
    """The requested interval overlaps an existing booking on the resource."""


class VersionConflict(FloorbookError):
    """A structural write was based on a stale floor plan version."""

    def __init__(self, stored_version: int, client_version: int) -> None:
        super().__init__(
            f"Floor plan was modified concurrently (stored version {stored_version}, "
            f"submitted version {client_version})"
        )
        self.stored_version = stored_version
        self.client_version = client_version


class NotFoundError(FloorbookError):
    """Floor, resource or booking is absent, or the caller does not own it."""


class AuthorizationError(FloorbookError):
    """The caller's role is insufficient for an elevated action."""
