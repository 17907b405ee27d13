"""
Automated Measure Calculation (AMC) engine.
"""
from apps.worker.amc.filters import AmcDenominator, AmcFilter, AmcNumerator
from apps.worker.amc.percentage import calculate_percentage, format_percentage
from apps.worker.amc.population import AmcPopulation
from apps.worker.amc.report import AmcReport
from apps.worker.amc.trackers import AmcItemSkipTracker, AmcItemTracker, ItemizationSession

__all__ = [
    "AmcDenominator",
    "AmcFilter",
    "AmcItemSkipTracker",
    "AmcItemTracker",
    "AmcNumerator",
    "AmcPopulation",
    "AmcReport",
    "ItemizationSession",
    "calculate_percentage",
    "format_percentage",
]
