"""
Exception classes for the DNS reconciler.

All exceptions inherit from DnsReconcilerError and provide structured
error information with codes, messages, and optional details.

A lookup that finds no record is not an error: it is reported as
LookupStatus.NOT_FOUND on the lookup result.
"""

from typing import Optional


class DnsReconcilerError(Exception):
    """Base exception for all DNS reconciler errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class TransportError(DnsReconcilerError):
    """Raised when a lookup could not be performed (network, timeout, malformed response)."""

    pass


class AdapterError(DnsReconcilerError):
    """Raised when the directory API returns a shape the adapter cannot map."""

    pass


class ConfigError(DnsReconcilerError):
    """Raised for invalid transport, server, timeout or interval values."""

    pass


class PersistenceError(DnsReconcilerError):
    """Raised when baseline persistence fails (file I/O, malformed document)."""

    pass


class TamperingError(PersistenceError):
    """Raised when baseline HMAC validation fails."""

    pass


class InvalidTransitionError(DnsReconcilerError):
    """Raised when a propagation session is moved out of a terminal state."""

    pass


class ValidationError(DnsReconcilerError):
    """Raised when a domain or record name cannot be normalized."""

    pass
