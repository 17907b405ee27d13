"""
lab_result_amc: lab results incorporated as structured data.

Manually entered lab results (`labs_manual`) are added to the denominator by
the report engine.
"""
from __future__ import annotations

from packages.shared.models import ObjectType

from apps.worker.amc.filters import AmcNumerator, PassAllDenominator
from apps.worker.amc.report import AmcReport

STRUCTURED_QUALITATIVE = {"positive", "negative"}


def is_structured_result(value) -> bool:
    if value is None:
        return False
    text = str(value).strip()
    if not text:
        return False
    if text.lower() in STRUCTURED_QUALITATIVE:
        return True
    try:
        float(text)
    except ValueError:
        return False
    return True


class StructuredResultNumerator(AmcNumerator):
    def test(self, patient, obj, begin, end) -> bool:
        return is_structured_result((obj or {}).get("result"))


class LabResultReport(AmcReport):
    object_to_count = ObjectType.LABS

    def create_denominator(self):
        return PassAllDenominator()

    def create_numerator(self):
        return StructuredResultNumerator()
