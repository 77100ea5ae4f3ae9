"""
Data models for the DNS reconciler.

This module defines the canonical record shape every component operates on,
the per-type record payloads, lookup results, reconciliation results,
propagation sessions and baseline snapshots.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from .enums import (
    ChangeKind,
    ComparisonStatus,
    LookupStatus,
    PropagationState,
    RecordOrigin,
    RecordType,
    ResolverErrorCode,
    Transport,
)
from .exceptions import InvalidTransitionError, TransportError


# Record payloads, one per record type


@dataclass(frozen=True)
class MXData:
    """Mail exchanger payload."""

    preference: int
    exchange: str

    def to_text(self) -> str:
        return f"{self.preference} {self.exchange}"


@dataclass(frozen=True)
class CNAMEData:
    """Canonical name payload."""

    target: str

    def to_text(self) -> str:
        return self.target


@dataclass(frozen=True)
class TXTData:
    """Text payload (segments already concatenated)."""

    text: str

    def to_text(self) -> str:
        return self.text


@dataclass(frozen=True)
class SRVData:
    """Service locator payload."""

    priority: int
    weight: int
    port: int
    target: str

    def to_text(self) -> str:
        return f"{self.priority} {self.weight} {self.port} {self.target}"


@dataclass(frozen=True)
class AddressData:
    """A / AAAA payload."""

    address: str

    def to_text(self) -> str:
        return self.address


@dataclass(frozen=True)
class NSData:
    """Nameserver payload."""

    target: str

    def to_text(self) -> str:
        return self.target


@dataclass(frozen=True)
class PTRData:
    """Pointer payload."""

    target: str

    def to_text(self) -> str:
        return self.target


@dataclass(frozen=True)
class SOAData:
    """Start-of-authority payload."""

    mname: str
    rname: str
    serial: int
    refresh: int
    retry: int
    expire: int
    minimum: int

    def to_text(self) -> str:
        return (
            f"{self.mname} {self.rname} {self.serial} {self.refresh} "
            f"{self.retry} {self.expire} {self.minimum}"
        )


RecordData = Union[
    MXData, CNAMEData, TXTData, SRVData, AddressData, NSData, PTRData, SOAData
]


@dataclass(frozen=True)
class CanonicalRecord:
    """
    The unit of comparison.

    Two records are comparable only when name and type match; data
    comparison is type-specific (see normalizer.data_equal). The origin
    records provenance and is excluded from equality. service, is_optional
    and legacy are passed through from the directory API.
    """

    name: str
    type: RecordType
    data: RecordData
    ttl: Optional[int] = None
    origin: RecordOrigin = field(default=RecordOrigin.ACTUAL, compare=False)
    service: Optional[str] = None
    is_optional: bool = False
    legacy: bool = False

    @property
    def key(self) -> tuple[str, RecordType]:
        """Grouping key used by the reconciler and the differ."""
        return (self.name, self.type)

    def to_text(self) -> str:
        return f"{self.name} {self.type.value} {self.data.to_text()}"


# Lookups


@dataclass(frozen=True)
class LookupFailure:
    """Error information from a lookup that could not be performed."""

    code: ResolverErrorCode
    message: str
    http_status_code: Optional[int] = None


@dataclass(frozen=True)
class LookupResult:
    """Complete result of one (name, type) lookup against one server."""

    name: str
    type: RecordType
    status: LookupStatus
    records: tuple[CanonicalRecord, ...] = ()
    error: Optional[LookupFailure] = None
    transport: Optional[Transport] = None
    server: Optional[str] = None
    response_time_ms: float = 0.0

    @property
    def ok(self) -> bool:
        """True when the server answered, with or without records."""
        return self.status != LookupStatus.ERROR

    def raise_for_error(self) -> "LookupResult":
        """Raise TransportError for ERROR results; return self otherwise."""
        if self.status == LookupStatus.ERROR:
            error = self.error
            raise TransportError(
                code=error.code.value if error else ResolverErrorCode.NETWORK_ERROR.value,
                message=error.message if error else "Lookup failed",
                details={
                    "name": self.name,
                    "type": self.type.value,
                    "server": self.server,
                },
            )
        return self


@dataclass(frozen=True)
class ServerLookupResult:
    """One server's answer within a fan-out query."""

    server: str
    result: LookupResult


# Reconciliation


@dataclass(frozen=True)
class ComparisonResult:
    """Classification of one (name, type) key. Immutable once created."""

    status: ComparisonStatus
    name: str
    type: RecordType
    expected: tuple[CanonicalRecord, ...] = ()
    actual: tuple[CanonicalRecord, ...] = ()
    note: str = ""


@dataclass(frozen=True)
class ReconciliationReport:
    """All comparison results of one run plus the aggregate compliance score."""

    results: tuple[ComparisonResult, ...]
    score: float
    counts: dict = field(default_factory=dict, hash=False)
    server: Optional[str] = None

    @property
    def is_compliant(self) -> bool:
        return self.score >= 1.0

    def by_status(self, status: ComparisonStatus) -> list[ComparisonResult]:
        return [r for r in self.results if r.status == status]


# Propagation


@dataclass(frozen=True)
class PropagationTarget:
    """What a watch session waits for."""

    name: str
    type: RecordType
    expected_value: RecordData


@dataclass(frozen=True)
class Observation:
    """One server's observed value on one tick."""

    timestamp: str
    tick: int
    server: str
    status: LookupStatus
    values: tuple[str, ...] = ()
    matched: bool = False
    error: Optional[str] = None


@dataclass
class PropagationSession:
    """
    Tracks one watch invocation.

    The state only moves PENDING -> {CONVERGED, TIMED_OUT, CANCELLED};
    history is append-only.
    """

    target: PropagationTarget
    servers: tuple[str, ...]
    state: PropagationState = PropagationState.PENDING
    history: list[Observation] = field(default_factory=list)
    ticks: int = 0
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    def transition_to(self, new_state: PropagationState, timestamp: str) -> None:
        """Move to a terminal state exactly once."""
        if self.state.is_terminal:
            raise InvalidTransitionError(
                code="terminal_state",
                message=f"Session already {self.state.value}; cannot move to {new_state.value}",
                details={"from": self.state.value, "to": new_state.value},
            )
        if not new_state.is_terminal:
            raise InvalidTransitionError(
                code="not_terminal",
                message=f"Cannot transition to non-terminal state {new_state.value}",
                details={"from": self.state.value, "to": new_state.value},
            )
        self.state = new_state
        self.finished_at = timestamp

    def record(self, observations: list[Observation]) -> None:
        """Append one tick's observations."""
        if self.state.is_terminal:
            raise InvalidTransitionError(
                code="terminal_state",
                message="Cannot record observations on a finished session",
                details={"state": self.state.value},
            )
        self.history.extend(observations)

    def observations_for_tick(self, tick: int) -> list[Observation]:
        return [o for o in self.history if o.tick == tick]


# Baselines


@dataclass(frozen=True)
class BaselineSnapshot:
    """Point-in-time set of records. A new capture is a new snapshot."""

    domain: str
    captured_at: datetime
    records: frozenset[CanonicalRecord]
    source: str = "live"
    version: int = 1


@dataclass(frozen=True)
class ChangeEntry:
    """One drift item between a baseline and a fresh record list."""

    kind: ChangeKind
    name: str
    type: RecordType
    old_value: Optional[tuple[str, ...]] = None
    new_value: Optional[tuple[str, ...]] = None
