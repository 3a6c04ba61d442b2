"""Failure kinds for a single cover scan.

Every error here ends the current attempt. Nothing retries automatically;
the message is safe to show to the reader as is.
"""
from typing import Optional


class ScanError(Exception):
    kind = "scan_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"status": self.kind, "message": self.message}


class TransportFailure(ScanError):
    """Network error or a response envelope we cannot read."""
    kind = "transport_failure"


class ProviderError(ScanError):
    """The provider answered with its own error payload."""
    kind = "provider_error"


class EmptyResult(ScanError):
    """Well-formed response without any answer text."""
    kind = "empty_result"


class MalformedResponse(ScanError):
    """Answer text that holds no recoverable JSON object."""
    kind = "malformed_response"


class ValidationFailure(ScanError):
    kind = "validation_failure"

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"AI response is missing the book {field}.")
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["field"] = self.field
        return data


class PersistenceFailure(ScanError):
    kind = "persistence_failure"
