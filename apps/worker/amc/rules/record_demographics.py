"""
record_dem_amc: patients seen in the period with demographics recorded.
"""
from __future__ import annotations

from packages.db.query import QueryExecutor
from packages.shared.models import ObjectType

from apps.worker.amc.collector import bind_range
from apps.worker.amc.filters import AmcDenominator, AmcNumerator
from apps.worker.amc.report import AmcReport

SEEN_IN_PERIOD_SQL = (
    "SELECT 1 FROM form_encounter "
    "WHERE pid = :pid AND date >= :begin AND date <= :end"
)

REQUIRED_FIELDS = ("sex", "language", "race", "ethnicity")


class SeenInPeriodDenominator(AmcDenominator):
    """Patient has at least one encounter inside the period."""

    def __init__(self, executor: QueryExecutor):
        self.executor = executor

    def test(self, patient, obj, begin, end) -> bool:
        begin_value, end_value = bind_range(begin, end)
        return self.executor.exists(
            SEEN_IN_PERIOD_SQL, {"pid": patient.id, "begin": begin_value, "end": end_value}
        )


class DemographicsRecordedNumerator(AmcNumerator):
    def test(self, patient, obj, begin, end) -> bool:
        if patient.dob is None:
            return False
        for field in REQUIRED_FIELDS:
            value = patient.demographics.get(field)
            if value is None or not str(value).strip():
                return False
        return True


class RecordDemographicsReport(AmcReport):
    object_to_count = ObjectType.PATIENTS

    def create_denominator(self):
        return SeenInPeriodDenominator(self.executor)

    def create_numerator(self):
        return DemographicsRecordedNumerator()
