from __future__ import annotations

from typing import Dict, List, Optional

SOMETHING_WENT_WRONG = "something went wrong"


class LingoError(Exception):
    """Base class for failures surfaced by the core operations."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LingoError):
    """Malformed or missing input. Carries one entry per violated field."""

    status_code = 400

    def __init__(self, message: str, violations: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.violations = violations or [{"field": "", "message": message}]

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, [{"field": field, "message": message}])


class NotFoundError(LingoError):
    status_code = 404


class ConflictError(LingoError):
    status_code = 409


class StorageError(LingoError):
    """Transient backend failure. Callers see only the generic message."""

    status_code = 500

    def __init__(self, message: str = SOMETHING_WENT_WRONG):
        super().__init__(message)
