from __future__ import annotations

from typing import Optional


class RemoteStoreError(Exception):
    """Error response from the hosted roster backend."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        self.hint = hint

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class RemoteUnavailableError(RemoteStoreError):
    """Network failure or timeout talking to the backend."""


class ConnectionProbeError(RemoteStoreError):
    """The existence probe failed for a reason other than a missing table."""


class RosterValidationError(ValueError):
    """A shift, employee or location entry is missing a required field."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field
