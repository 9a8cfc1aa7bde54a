from __future__ import annotations

from typing import Optional


class TrackerError(Exception):
    pass


class FetchError(TrackerError):
    """Read-path failure: transport, response envelope or embedded JSON."""

    def __init__(self, message: str, *, category: Optional[str] = None):
        super().__init__(message)
        self.category = category


class SubmitError(TrackerError):
    """Transport failure while dispatching a write to the script endpoint."""


class ExportError(TrackerError):
    pass


class ValidationError(TrackerError):
    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
