"""
Reconciliation of a freshly extracted candidate record into a persisted baseline.

Fill-only merge: a baseline field that already holds a meaningful value is
kept; only fields still at their empty sentinel are filled from the
candidate. Previously recorded data is never lost to a re-extraction.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from dicomvault.core.logging import get_logger
from dicomvault.models.metadata import (
    FIELD_TABLE,
    FIELDS_BY_NAME,
    STABLE_IDENTIFIERS,
    MetadataRecord,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class FieldChange:
    """Audit entry for one field changed by a merge."""
    previous: Any
    current: Any


@dataclass
class ReconciliationResult:
    """
    Outcome of one merge.

    Attributes:
        merged: Merged record
        delta: Field alias -> change, for every field where merged differs from baseline
        conflicts: Aliases of fields where both sides held different values
            (baseline kept)
    """
    merged: MetadataRecord
    delta: Dict[str, FieldChange] = field(default_factory=dict)
    conflicts: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.delta)


class ReconciliationEngine:
    """Merges candidate records into baselines using the fill-only rule."""

    def reconcile(
        self,
        baseline: MetadataRecord,
        candidate: MetadataRecord
    ) -> ReconciliationResult:
        """
        Merge ``candidate`` into ``baseline``.

        Args:
            baseline: Previously persisted record (may be all-empty)
            candidate: Record freshly built from the binary object

        Returns:
            ReconciliationResult with the merged record, the delta against
            the baseline and the list of conflicting fields
        """
        values: Dict[str, Any] = {}
        delta: Dict[str, FieldChange] = {}
        conflicts: List[str] = []

        for spec in FIELD_TABLE:
            kept = baseline.value_of(spec.name)
            offered = candidate.value_of(spec.name)

            if not baseline.is_field_empty(spec.name):
                values[spec.name] = kept
                if not candidate.is_field_empty(spec.name) and offered != kept:
                    conflicts.append(spec.alias)
                continue

            values[spec.name] = offered
            if offered != kept:
                delta[spec.alias] = FieldChange(previous=kept, current=offered)

        merged = MetadataRecord(**values)
        self._log_conflicts(baseline, candidate, conflicts)

        if delta:
            logger.info(
                "Reconciled metadata record",
                extra={
                    "filled_fields": sorted(delta),
                    "filled_count": len(delta),
                    "conflict_count": len(conflicts),
                }
            )
        else:
            logger.debug(
                "Reconciliation left baseline unchanged",
                extra={"conflict_count": len(conflicts)}
            )

        return ReconciliationResult(merged=merged, delta=delta, conflicts=conflicts)

    @staticmethod
    def _log_conflicts(
        baseline: MetadataRecord,
        candidate: MetadataRecord,
        conflicts: List[str]
    ) -> None:
        for name in STABLE_IDENTIFIERS:
            alias = FIELDS_BY_NAME[name].alias
            if alias in conflicts:
                logger.warning(
                    "Stable identifier differs from persisted value, keeping persisted",
                    extra={
                        "field": alias,
                        "persisted_value": baseline.value_of(name),
                        "extracted_value": candidate.value_of(name),
                    }
                )
