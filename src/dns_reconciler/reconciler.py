"""
Reconciliation Engine.

Compares expected records against actual records key by key, where a key is
(name, type), and produces one ComparisonResult per key plus a compliance
score. The engine is pure: it performs no lookups and holds no state between
runs.
"""

from collections import Counter
from typing import Iterable, Optional

from .audit_logger import AuditLogger, LoggingMixin
from .enums import ComparisonStatus, RecordType
from .models import CanonicalRecord, ComparisonResult, MXData, ReconciliationReport
from .normalizer import comparison_key, normalize_record


Key = tuple[str, RecordType]

# Statuses that count toward the compliance score denominator
SCORED_STATUSES = frozenset({
    ComparisonStatus.MATCH,
    ComparisonStatus.MISMATCH,
    ComparisonStatus.MISSING,
    ComparisonStatus.LOOKUP_FAILED,
})

# Old and current hosted mail exchanger suffixes
LEGACY_MX_SUFFIX = "mail.protection.outlook.com"
CURRENT_MX_SUFFIX = "mx.microsoft"


def group_by_key(records: Iterable[CanonicalRecord]) -> dict[Key, list[CanonicalRecord]]:
    """Normalize records and group them by (name, type)."""
    groups: dict[Key, list[CanonicalRecord]] = {}
    for record in records:
        normalized = normalize_record(record)
        groups.setdefault(normalized.key, []).append(normalized)
    return groups


def compliance_score(results: Iterable[ComparisonResult]) -> float:
    """
    MATCH / (MATCH + MISMATCH + MISSING + LOOKUP_FAILED).

    EXTRA, DEPRECATED_PRESENT and LEGACY_ABSENT are excluded. An empty
    denominator scores 1.0: nothing was expected that could fail.
    """
    counts = Counter(r.status for r in results)
    denominator = sum(counts[s] for s in SCORED_STATUSES)
    if denominator == 0:
        return 1.0
    return counts[ComparisonStatus.MATCH] / denominator


def _mx_suffix(record: CanonicalRecord) -> Optional[str]:
    if not isinstance(record.data, MXData):
        return None
    exchange = record.data.exchange
    for suffix in (LEGACY_MX_SUFFIX, CURRENT_MX_SUFFIX):
        if exchange == suffix or exchange.endswith("." + suffix):
            return suffix
    return None


def legacy_mx_note(expected: list[CanonicalRecord], actual: list[CanonicalRecord]) -> str:
    """Explain an MX mismatch caused by the old vs. new exchanger naming."""
    expected_styles = {_mx_suffix(r) for r in expected} - {None}
    actual_styles = {_mx_suffix(r) for r in actual} - {None}
    if CURRENT_MX_SUFFIX in expected_styles and LEGACY_MX_SUFFIX in actual_styles:
        return (
            f"legacy MX format: published exchanger uses {LEGACY_MX_SUFFIX}, "
            f"expected {CURRENT_MX_SUFFIX}"
        )
    if LEGACY_MX_SUFFIX in expected_styles and CURRENT_MX_SUFFIX in actual_styles:
        return (
            f"legacy MX format: expected exchanger uses {LEGACY_MX_SUFFIX}, "
            f"published {CURRENT_MX_SUFFIX}"
        )
    return ""


class ReconciliationEngine(LoggingMixin):
    """
    Classifies every (name, type) key seen in expected or actual records.

    Rules, per key:
    - expected only: LEGACY_ABSENT if legacy, LOOKUP_FAILED if its lookup
      failed, MISSING otherwise
    - actual only: EXTRA
    - both: MATCH when any actual value equals any expected value
      (DEPRECATED_PRESENT if the expected record is legacy), MISMATCH otherwise
    """

    COMPONENT = "ReconciliationEngine"

    def __init__(self, logger: Optional[AuditLogger] = None) -> None:
        self._logger = logger

    def reconcile(
        self,
        expected: Iterable[CanonicalRecord],
        actual: Iterable[CanonicalRecord],
        failed_keys: Iterable[Key] = (),
        server: Optional[str] = None,
    ) -> ReconciliationReport:
        """
        Compare expected against actual records.

        Args:
            expected: Records the directory says should exist
            actual: Records observed in DNS
            failed_keys: Keys whose actual lookup hit a transport error
            server: Server the actual records came from, if a single one

        Returns:
            ReconciliationReport with one result per key, sorted by (name, type)
        """
        expected_groups = group_by_key(expected)
        actual_groups = group_by_key(actual)
        failed = set(failed_keys)

        results = []
        for key in sorted(set(expected_groups) | set(actual_groups), key=lambda k: (k[0], k[1].value)):
            results.append(self._classify(
                key,
                expected_groups.get(key, []),
                actual_groups.get(key, []),
                key in failed,
            ))

        score = compliance_score(results)
        counts = {status.value: 0 for status in ComparisonStatus}
        for result in results:
            counts[result.status.value] += 1

        self._log_info(
            self.COMPONENT,
            f"Reconciled {len(results)} key(s), compliance score {score:.2f}",
            {"server": server, "counts": counts},
        )
        return ReconciliationReport(
            results=tuple(results),
            score=score,
            counts=counts,
            server=server,
        )

    def _classify(
        self,
        key: Key,
        expected: list[CanonicalRecord],
        actual: list[CanonicalRecord],
        lookup_failed: bool,
    ) -> ComparisonResult:
        name, record_type = key

        def result(status: ComparisonStatus, note: str = "") -> ComparisonResult:
            return ComparisonResult(
                status=status,
                name=name,
                type=record_type,
                expected=tuple(expected),
                actual=tuple(actual),
                note=note,
            )

        if not actual:
            if lookup_failed:
                return result(ComparisonStatus.LOOKUP_FAILED, "lookup failed")
            if any(r.legacy for r in expected):
                return result(
                    ComparisonStatus.LEGACY_ABSENT,
                    "deprecated record is not published",
                )
            if any(r.is_optional for r in expected):
                return result(ComparisonStatus.MISSING, "optional record")
            return result(ComparisonStatus.MISSING)

        if not expected:
            return result(ComparisonStatus.EXTRA)

        expected_keys = {comparison_key(record_type, r.data) for r in expected}
        if any(comparison_key(record_type, r.data) in expected_keys for r in actual):
            if any(r.legacy for r in expected):
                return result(
                    ComparisonStatus.DEPRECATED_PRESENT,
                    "deprecated record still published; consider retiring it",
                )
            return result(ComparisonStatus.MATCH)

        note = legacy_mx_note(expected, actual) if record_type == RecordType.MX else ""
        return result(ComparisonStatus.MISMATCH, note)
