"""
med_reconc_amc: transitions of care into the practice with medication
reconciliation completed.
"""
from __future__ import annotations

from packages.shared.models import ObjectType

from apps.worker.amc.filters import AmcNumerator, PassAllDenominator
from apps.worker.amc.report import AmcReport


class ReconciliationCompletedNumerator(AmcNumerator):
    def test(self, patient, obj, begin, end) -> bool:
        completed = (obj or {}).get("completed")
        return bool(completed) and not str(completed).startswith("0000")


class MedReconciliationReport(AmcReport):
    object_to_count = ObjectType.TRANSITIONS_IN

    def create_denominator(self):
        return PassAllDenominator()

    def create_numerator(self):
        return ReconciliationCompletedNumerator()
