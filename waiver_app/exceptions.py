"""Domain exceptions translated to JSON responses by the handlers in main.py."""
from __future__ import annotations

from typing import Dict, Optional


class WaiverAppException(Exception):
    """Base class; ``detail`` is the client-facing message."""

    status_code = 500

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class NotFoundException(WaiverAppException):
    status_code = 404


class ValidationException(WaiverAppException):
    """Raised before anything is written.

    ``errors`` maps a field name to its message so the signing form can
    highlight the offending input.
    """

    status_code = 400

    def __init__(self, detail: str, errors: Optional[Dict[str, str]] = None):
        self.errors = dict(errors or {})
        super().__init__(detail)

    @classmethod
    def for_fields(cls, errors: Dict[str, str]) -> "ValidationException":
        fields = ", ".join(sorted(errors))
        return cls(f"Validation failed: {fields}", errors)


class PersistenceException(WaiverAppException):
    """A write failed and was rolled back; the caller may retry."""

    status_code = 503
