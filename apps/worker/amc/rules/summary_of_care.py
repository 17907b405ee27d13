"""
send_sum_amc: referrals out of the practice where a summary of care record
was sent. Referral fields come from the transaction's lbt_data rows.
"""
from __future__ import annotations

from packages.shared.models import ObjectType

from apps.worker.amc.filters import AmcNumerator, PassAllDenominator
from apps.worker.amc.report import AmcReport

YES_VALUES = {"yes", "y", "1", "true"}


class SummarySentNumerator(AmcNumerator):
    def test(self, patient, obj, begin, end) -> bool:
        flag = (obj or {}).get("send_sum_flag")
        return flag is not None and str(flag).strip().lower() in YES_VALUES


class SummaryOfCareReport(AmcReport):
    object_to_count = ObjectType.TRANSITIONS_OUT

    def create_denominator(self):
        return PassAllDenominator()

    def create_numerator(self):
        return SummarySentNumerator()
