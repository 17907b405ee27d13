from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import ObjectType


class Rule(BaseModel):
    """A clinical rule row. Only `id` is interpreted by the engine."""
    id: str
    title: Optional[str] = None
    definition: dict[str, Any] = Field(default_factory=dict)


class Subject(BaseModel):
    """A patient in the report population."""
    model_config = ConfigDict(frozen=True)

    id: int
    dob: Optional[date] = None
    demographics: dict[str, Any] = Field(default_factory=dict)


class MeasurementPeriod(BaseModel):
    start: Optional[date] = None
    end: date

    @field_validator("start", mode="before")
    @classmethod
    def _blank_start_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def effective_start(self, subject: Subject) -> Optional[date]:
        """Period start for one subject; falls back to the subject's birth date."""
        if self.start is None:
            return subject.dob
        return self.start


class EvaluationOptions(BaseModel):
    labs_manual: int = 0
    itemization_enabled: bool = False
    run_iterator_id: Optional[int] = None


class ItemizationContext(BaseModel):
    """Per-run itemization state handed to trackers."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    run_iterator_id: int = 0


class TrackedItem(BaseModel):
    run_iterator_id: int
    rule_id: str
    date_begin: Optional[date] = None
    date_end: date
    pass_flag: int = Field(ge=0, le=1)
    patient_id: int
    object_type: ObjectType


class ReportRunConfig(BaseModel):
    """What a queued report run evaluates."""
    rule_id: str = Field(min_length=1)
    patient_ids: list[int] = Field(default_factory=list)
    period: MeasurementPeriod
    options: EvaluationOptions = Field(default_factory=EvaluationOptions)


class AmcResult(BaseModel):
    """Immutable outcome of one report evaluation."""
    model_config = ConfigDict(frozen=True)

    rule_id: str
    object_type: ObjectType = ObjectType.PATIENTS
    total_patients: int
    denominator: int
    exclusions: int = 0
    numerator: int
    percentage: int
