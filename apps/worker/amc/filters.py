"""
Numerator / denominator filter capabilities.

A report supplies exactly one `AmcNumerator` and one `AmcDenominator`.
Filters see the subject and, when the report counts something other than
patients, the candidate object being tested.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Optional

from packages.shared.errors import ConfigurationError
from packages.shared.models import Subject

CandidateObject = dict[str, Any]


class AmcFilter(ABC):
    """Boolean test over (subject, attached object, period)."""

    @abstractmethod
    def test(
        self,
        patient: Subject,
        obj: Optional[CandidateObject],
        begin: Optional[date],
        end: date,
    ) -> bool:
        ...


class AmcNumerator(AmcFilter):
    pass


class AmcDenominator(AmcFilter):
    pass


def require_numerator(candidate: object) -> AmcNumerator:
    if not isinstance(candidate, AmcNumerator):
        raise ConfigurationError(
            "Numerator must be an instance of AmcNumerator",
            details={"got": type(candidate).__name__},
        )
    return candidate


def require_denominator(candidate: object) -> AmcDenominator:
    if not isinstance(candidate, AmcDenominator):
        raise ConfigurationError(
            "Denominator must be an instance of AmcDenominator",
            details={"got": type(candidate).__name__},
        )
    return candidate


class PassAllDenominator(AmcDenominator):
    """Every candidate object counts toward the denominator."""

    def test(self, patient, obj, begin, end) -> bool:
        return True
