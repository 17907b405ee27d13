"""
Rule registry: maps AMC rule ids to report classes.
"""
from __future__ import annotations

from typing import Optional, Sequence

from packages.db.query import QueryExecutor
from packages.shared.errors import ConfigurationError
from packages.shared.models import EvaluationOptions, MeasurementPeriod, ObjectType, Rule

from apps.worker.amc.report import AmcReport, Tracker
from apps.worker.amc.rules import (
    ClinicalSummaryReport,
    EPrescribingReport,
    LabResultReport,
    MedReconciliationReport,
    RecordDemographicsReport,
    SummaryOfCareReport,
)
from apps.worker.amc.trackers import ItemizationSession

REPORTS: dict[str, type[AmcReport]] = {
    "record_dem_amc": RecordDemographicsReport,
    "lab_result_amc": LabResultReport,
    "med_reconc_amc": MedReconciliationReport,
    "send_sum_amc": SummaryOfCareReport,
    "e_prescribe_amc": EPrescribingReport,
    "provide_sum_pat_amc": ClinicalSummaryReport,
}


def get_report_class(rule_id: str) -> type[AmcReport]:
    report_cls = REPORTS.get(rule_id)
    if report_cls is None:
        raise ConfigurationError(
            f"No AMC report registered for rule {rule_id!r}",
            details={"rule_id": rule_id, "available": sorted(REPORTS)},
        )
    return report_cls


def available_rules() -> list[dict[str, str]]:
    """Registered rule ids with the object type each one counts."""
    rules = []
    for rule_id in sorted(REPORTS):
        object_type = REPORTS[rule_id].object_to_count or ObjectType.PATIENTS
        rules.append({
            "rule_id": rule_id,
            "report": REPORTS[rule_id].__name__,
            "object_type": ObjectType(object_type).value,
        })
    return rules


def create_report(
    rule: Rule,
    patient_ids: Sequence[int],
    period: MeasurementPeriod,
    options: Optional[EvaluationOptions] = None,
    *,
    executor: QueryExecutor,
    tracker: Optional[Tracker] = None,
    itemization: Optional[ItemizationSession] = None,
) -> AmcReport:
    report_cls = get_report_class(rule.id)
    return report_cls(
        rule,
        patient_ids,
        period,
        options,
        executor=executor,
        tracker=tracker,
        itemization=itemization,
    )
