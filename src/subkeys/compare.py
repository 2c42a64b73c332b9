"""
Snapshot comparison.

Records are joined on their key pair, not on name or id: the question being
answered is whether the same secret material exists on both sides, whichever
environment issued it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .models import PROPERTY_JSON_KEYS, CredentialRecord

MATCHED = "matched"
MISMATCHED = "mismatched"
MISSING = "missing"

# Fields that decide matched vs. mismatched.
EQUALITY_FIELDS = (
    "display_name",
    "scope",
    "state",
    "owner_id",
    "primary_key",
    "secondary_key",
    "allow_tracing",
    "start_date",
    "end_date",
    "expiration_date",
    "notification_date",
    "state_comment",
)

# Fields listed for a mismatched pair. createdDate is reported but never
# decides the outcome; keys are equal by construction.
REPORTED_FIELDS = (
    "display_name",
    "scope",
    "state",
    "owner_id",
    "allow_tracing",
    "created_date",
    "start_date",
    "end_date",
    "expiration_date",
    "notification_date",
    "state_comment",
)


@dataclass(frozen=True)
class FieldDifference:
    field: str
    left: Any
    right: Any

    @property
    def json_key(self) -> str:
        return PROPERTY_JSON_KEYS[self.field]


@dataclass
class ComparisonEntry:
    record: CredentialRecord
    outcome: str
    counterpart: Optional[CredentialRecord] = None
    differences: list[FieldDifference] = field(default_factory=list)


@dataclass
class ComparisonReport:
    entries: list[ComparisonEntry] = field(default_factory=list)
    total_a: int = 0
    total_b: int = 0

    def _count(self, outcome: str) -> int:
        return sum(1 for e in self.entries if e.outcome == outcome)

    @property
    def matched(self) -> int:
        return self._count(MATCHED)

    @property
    def mismatched(self) -> int:
        return self._count(MISMATCHED)

    @property
    def missing(self) -> int:
        return self._count(MISSING)

    @property
    def failures(self) -> int:
        return self.mismatched + self.missing

    @property
    def ok(self) -> bool:
        return self.failures == 0


def filter_builtin(records: Iterable[CredentialRecord]) -> list[CredentialRecord]:
    return [r for r in records if not r.is_builtin]


def _value(record: CredentialRecord, name: str) -> Any:
    return getattr(record.properties, name)


def attributes_equal(a: CredentialRecord, b: CredentialRecord) -> bool:
    return all(_value(a, f) == _value(b, f) for f in EQUALITY_FIELDS)


def attribute_differences(a: CredentialRecord, b: CredentialRecord) -> list[FieldDifference]:
    return [
        FieldDifference(f, _value(a, f), _value(b, f))
        for f in REPORTED_FIELDS
        if _value(a, f) != _value(b, f)
    ]


def _find_by_keys(record: CredentialRecord, candidates: list[CredentialRecord]) -> Optional[CredentialRecord]:
    props = record.properties
    for other in candidates:
        if other.properties.primary_key == props.primary_key and other.properties.secondary_key == props.secondary_key:
            return other
    return None


def compare_snapshots(snapshot_a: Iterable[CredentialRecord], snapshot_b: Iterable[CredentialRecord]) -> ComparisonReport:
    """Classify every non-master record of A against B."""
    records_a = filter_builtin(snapshot_a)
    records_b = filter_builtin(snapshot_b)
    report = ComparisonReport(total_a=len(records_a), total_b=len(records_b))

    for rec in records_a:
        other = _find_by_keys(rec, records_b)
        if other is None:
            report.entries.append(ComparisonEntry(rec, MISSING))
        elif attributes_equal(rec, other):
            report.entries.append(ComparisonEntry(rec, MATCHED, other))
        else:
            report.entries.append(ComparisonEntry(rec, MISMATCHED, other, attribute_differences(rec, other)))

    return report
