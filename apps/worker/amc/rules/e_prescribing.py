"""
e_prescribe_amc: prescriptions transmitted electronically.
"""
from __future__ import annotations

from packages.shared.models import ObjectType

from apps.worker.amc.filters import AmcDenominator, AmcNumerator
from apps.worker.amc.report import AmcReport


class PermissiblePrescriptionDenominator(AmcDenominator):
    """Prescriptions that name a drug."""

    def test(self, patient, obj, begin, end) -> bool:
        drug = (obj or {}).get("drug")
        return bool(drug and str(drug).strip())


class TransmittedNumerator(AmcNumerator):
    def test(self, patient, obj, begin, end) -> bool:
        try:
            return int((obj or {}).get("erx_uploaded") or 0) == 1
        except (TypeError, ValueError):
            return False


class EPrescribingReport(AmcReport):
    object_to_count = ObjectType.PRESCRIPTIONS

    def create_denominator(self):
        return PermissiblePrescriptionDenominator()

    def create_numerator(self):
        return TransmittedNumerator()
