"""
Baseline differ.

Compares a baseline snapshot against a fresh record list, key by key. Keys
present on one side only are ADDED or REMOVED; keys on both sides whose value
sets differ under the type-specific comparison are MODIFIED. The diff is pure
and its output order depends only on the inputs' contents.
"""

from typing import Iterable

from .enums import ChangeKind
from .models import BaselineSnapshot, CanonicalRecord, ChangeEntry
from .normalizer import comparison_key
from .reconciler import Key, group_by_key


def _rendered(records: list[CanonicalRecord]) -> tuple[str, ...]:
    return tuple(sorted({r.data.to_text() for r in records}))


def _value_set(key: Key, records: list[CanonicalRecord]) -> frozenset:
    return frozenset(comparison_key(key[1], r.data) for r in records)


def diff_records(
    baseline: Iterable[CanonicalRecord],
    current: Iterable[CanonicalRecord],
) -> list[ChangeEntry]:
    """Diff two plain record collections."""
    old = group_by_key(baseline)
    new = group_by_key(current)

    changes = []
    for key in set(old) | set(new):
        name, record_type = key
        if key not in old:
            changes.append(ChangeEntry(
                kind=ChangeKind.ADDED,
                name=name,
                type=record_type,
                new_value=_rendered(new[key]),
            ))
        elif key not in new:
            changes.append(ChangeEntry(
                kind=ChangeKind.REMOVED,
                name=name,
                type=record_type,
                old_value=_rendered(old[key]),
            ))
        elif _value_set(key, old[key]) != _value_set(key, new[key]):
            changes.append(ChangeEntry(
                kind=ChangeKind.MODIFIED,
                name=name,
                type=record_type,
                old_value=_rendered(old[key]),
                new_value=_rendered(new[key]),
            ))

    return sorted(changes, key=lambda c: (c.name, c.type.value, c.kind.value))


def diff(baseline: BaselineSnapshot, current: Iterable[CanonicalRecord]) -> list[ChangeEntry]:
    """
    Drift between a baseline and the current records.

    Args:
        baseline: Previously captured snapshot
        current: Freshly fetched records

    Returns:
        Change entries sorted by (name, type, kind)
    """
    return diff_records(baseline.records, current)
