"""
provide_sum_pat_amc: office encounters for which a clinical summary was
provided to the patient.
"""
from __future__ import annotations

from packages.db.query import QueryExecutor
from packages.shared.models import ObjectType

from apps.worker.amc.filters import AmcNumerator, PassAllDenominator
from apps.worker.amc.report import AmcReport

SUMMARY_PROVIDED_SQL = (
    "SELECT 1 FROM amc_misc_data "
    "WHERE amc_id = 'provide_sum_pat_amc' "
    "AND map_category = 'form_encounter' "
    "AND pid = :pid AND map_id = :encounter "
    "AND date_completed IS NOT NULL"
)


class SummaryProvidedNumerator(AmcNumerator):
    def __init__(self, executor: QueryExecutor):
        self.executor = executor

    def test(self, patient, obj, begin, end) -> bool:
        encounter = (obj or {}).get("encounter")
        if encounter is None:
            return False
        return self.executor.exists(SUMMARY_PROVIDED_SQL, {"pid": patient.id, "encounter": encounter})


class ClinicalSummaryReport(AmcReport):
    object_to_count = ObjectType.ENCOUNTERS_OFFICE_VISIT

    def create_denominator(self):
        return PassAllDenominator()

    def create_numerator(self):
        return SummaryProvidedNumerator(self.executor)
