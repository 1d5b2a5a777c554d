from __future__ import annotations

from enum import Enum


class ZellularError(Exception):
    """Base class for every error raised by the light client."""


class RegistryErrorKind(str, Enum):
    MALFORMED_KEY = "malformed_key"
    DUPLICATE_ID = "duplicate_id"


class RegistryError(ZellularError):
    def __init__(self, kind: RegistryErrorKind, message: str, *, operator_id: str | None = None) -> None:
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.operator_id = operator_id


class UnknownOperatorError(ZellularError):
    def __init__(self, operator_id: str) -> None:
        super().__init__(f"unknown operator id {operator_id!r}")
        self.operator_id = operator_id


class InvalidSignatureError(ZellularError):
    """A finalization checkpoint failed verification. Never retried."""

    def __init__(self, message: str, *, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index


class NetworkError(ZellularError):
    """Transport failure (timeout, connection, HTTP status). Retryable."""


class ParseError(ZellularError):
    """Malformed or empty response body. Retried like a transport fault."""
