"""
Enumeration types for the DNS reconciler.

These enums provide type-safe constants for record types, outcome classes,
error codes, and configuration options throughout the system.
"""

from enum import Enum


class RecordType(Enum):
    """DNS resource record types understood by the reconciler."""

    MX = "MX"
    CNAME = "CNAME"
    TXT = "TXT"
    SRV = "SRV"
    A = "A"
    AAAA = "AAAA"
    NS = "NS"
    SOA = "SOA"
    PTR = "PTR"

    @classmethod
    def parse(cls, value: str) -> "RecordType":
        """Parse a record type name case-insensitively ("Mx", "cname", ...)."""
        try:
            return cls(value.strip().upper())
        except (AttributeError, ValueError):
            raise ValueError(f"Unsupported record type: {value!r}") from None

    @property
    def wire_code(self) -> int:
        """Numeric RR type code as used on the wire and in DoH JSON answers."""
        return _WIRE_CODES[self]


_WIRE_CODES = {
    RecordType.A: 1,
    RecordType.NS: 2,
    RecordType.CNAME: 5,
    RecordType.SOA: 6,
    RecordType.PTR: 12,
    RecordType.MX: 15,
    RecordType.TXT: 16,
    RecordType.AAAA: 28,
    RecordType.SRV: 33,
}


class RecordOrigin(Enum):
    """Provenance of a canonical record. Never influences equality."""

    EXPECTED = "expected"
    ACTUAL = "actual"
    BASELINE = "baseline"


class Transport(Enum):
    """Query transports supported by the resolver abstraction."""

    ENCRYPTED = "encrypted"
    STANDARD = "standard"
    AUTHORITATIVE = "authoritative"


class LookupStatus(Enum):
    """Outcome of a single lookup."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


class ResolverErrorCode(Enum):
    """Error codes for resolver operations."""

    NETWORK_ERROR = "network_error"
    TLS_ERROR = "tls_error"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    SERVER_ERROR = "server_error"
    UNSUPPORTED_TYPE = "unsupported_type"
    NO_NAMESERVERS = "no_nameservers"


class ComparisonStatus(Enum):
    """Classification of one (name, type) key after reconciliation."""

    MATCH = "match"
    MISMATCH = "mismatch"
    MISSING = "missing"
    EXTRA = "extra"
    DEPRECATED_PRESENT = "deprecated_present"
    LEGACY_ABSENT = "legacy_absent"
    LOOKUP_FAILED = "lookup_failed"


class PropagationState(Enum):
    """States of a propagation watch session."""

    PENDING = "pending"
    CONVERGED = "converged"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not PropagationState.PENDING


class ChangeKind(Enum):
    """Kind of drift between a baseline and a fresh snapshot."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _LEVEL_RANKS[self]


_LEVEL_RANKS = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}
