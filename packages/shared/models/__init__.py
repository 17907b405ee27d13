from .enums import ObjectType, RunStatus
from .domain import (
    AmcResult,
    EvaluationOptions,
    ItemizationContext,
    MeasurementPeriod,
    ReportRunConfig,
    Rule,
    Subject,
    TrackedItem,
)

__all__ = [
    "AmcResult",
    "EvaluationOptions",
    "ItemizationContext",
    "MeasurementPeriod",
    "ObjectType",
    "ReportRunConfig",
    "Rule",
    "RunStatus",
    "Subject",
    "TrackedItem",
]
