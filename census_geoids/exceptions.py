"""
Exception classes for GEOID resolution and Census queries.
"""

from typing import Any, Dict, Iterable, Optional


class CensusGeoidError(Exception):
    """Base exception for all census_geoids errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidArgumentError(CensusGeoidError, ValueError):
    """Raised when a caller-supplied argument is invalid or inconsistent."""

    def __init__(
        self,
        message: str,
        argument: Optional[str] = None,
        value: Any = None,
        allowed: Optional[Iterable[Any]] = None,
    ):
        allowed = tuple(allowed) if allowed is not None else None
        super().__init__(
            message, {"argument": argument, "value": value, "allowed": allowed}
        )
        self.argument = argument
        self.value = value
        self.allowed = allowed


class NotFoundError(CensusGeoidError, LookupError):
    """Raised when a state or county name has no matching FIPS code."""

    def __init__(self, message: str, kind: str, value: Any):
        super().__init__(message, {"kind": kind, "value": value})
        self.kind = kind
        self.value = value


class ExternalServiceError(CensusGeoidError):
    """Raised when a Census API call for one query scope fails."""

    def __init__(
        self,
        message: str,
        scope: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, {"scope": scope, "status_code": status_code})
        self.scope = scope
        self.status_code = status_code
