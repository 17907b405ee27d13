"""
Built-in AMC rules.
"""
from apps.worker.amc.rules.clinical_summary import ClinicalSummaryReport
from apps.worker.amc.rules.e_prescribing import EPrescribingReport
from apps.worker.amc.rules.lab_results import LabResultReport
from apps.worker.amc.rules.med_reconciliation import MedReconciliationReport
from apps.worker.amc.rules.record_demographics import RecordDemographicsReport
from apps.worker.amc.rules.summary_of_care import SummaryOfCareReport

__all__ = [
    "ClinicalSummaryReport",
    "EPrescribingReport",
    "LabResultReport",
    "MedReconciliationReport",
    "RecordDemographicsReport",
    "SummaryOfCareReport",
]
