"""
AMC report evaluation.

A concrete report names the object type it counts and builds its numerator
and denominator filters; `AmcReport.execute` does the counting:

  * patients: each patient passing the denominator is tested against the
    numerator and tracked once.
  * any other object type: the patient's objects in the period are collected,
    tested against the denominator, and only the survivors are tested against
    the numerator and tracked.

An empty period start is replaced, per patient, by that patient's birth date.
For lab counting the configured manual lab count is added to the denominator.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

from packages.db.query import QueryExecutor
from packages.shared.models import (
    AmcResult,
    EvaluationOptions,
    ItemizationContext,
    MeasurementPeriod,
    ObjectType,
    Rule,
)

from apps.worker.amc.collector import collect_objects, resolve_object_type
from apps.worker.amc.filters import AmcDenominator, AmcNumerator, require_denominator, require_numerator
from apps.worker.amc.percentage import calculate_percentage
from apps.worker.amc.population import AmcPopulation
from apps.worker.amc.trackers import AmcItemSkipTracker, AmcItemTracker, ItemizationSession

logger = logging.getLogger(__name__)

Tracker = Union[AmcItemTracker, AmcItemSkipTracker]


class AmcReport(ABC):
    """Base class for AMC rules."""

    object_to_count: Optional[Union[ObjectType, str]] = None

    def __init__(
        self,
        rule: Rule,
        patient_ids: Sequence[int],
        period: MeasurementPeriod,
        options: Optional[EvaluationOptions] = None,
        *,
        executor: Optional[QueryExecutor] = None,
        population: Optional[AmcPopulation] = None,
        tracker: Optional[Tracker] = None,
        itemization: Optional[ItemizationSession] = None,
    ):
        self.rule = rule
        self.rule_id = rule.id
        self.period = period
        self.options = options or EvaluationOptions()
        self.executor = executor
        self._population = population if population is not None else AmcPopulation(patient_ids, executor)
        self._results: list[AmcResult] = []
        self._itemization = itemization

        if self.options.itemization_enabled:
            self._tracker: Tracker = tracker if tracker is not None else AmcItemTracker()
        else:
            self._tracker = AmcItemSkipTracker()

        logger.debug(
            f"{type(self).__name__} constructed rule={self.rule_id} patients={len(self._population)}"
        )

    @abstractmethod
    def create_numerator(self) -> AmcNumerator:
        ...

    @abstractmethod
    def create_denominator(self) -> AmcDenominator:
        ...

    def get_object_to_count(self) -> Optional[Union[ObjectType, str]]:
        return self.object_to_count

    def get_patient_population(self) -> AmcPopulation:
        return self._population

    def get_tracker(self) -> Tracker:
        return self._tracker

    def get_results(self) -> list[AmcResult]:
        return list(self._results)

    def collect_objects(self, patient, object_to_count, begin, end) -> list[dict]:
        """Candidate objects for one patient; subclasses may source them elsewhere."""
        return collect_objects(self.executor, patient, object_to_count, begin, end)

    def _begin_itemization(self) -> ItemizationContext:
        if not self.options.itemization_enabled:
            return ItemizationContext(enabled=False, run_iterator_id=0)
        if self.options.run_iterator_id is not None:
            return ItemizationContext(enabled=True, run_iterator_id=self.options.run_iterator_id)
        if self._itemization is None:
            self._itemization = ItemizationSession()
        return ItemizationContext(enabled=True, run_iterator_id=self._itemization.next_iterator_id())

    def execute(self) -> AmcResult:
        """Evaluate the rule over the population and append one `AmcResult`."""
        name = type(self).__name__
        logger.debug(f"{name}.execute() starting rule={self.rule_id}")

        numerator = require_numerator(self.create_numerator())
        denominator = require_denominator(self.create_denominator())
        object_to_count = resolve_object_type(self.get_object_to_count())
        context = self._begin_itemization()

        total_patients = len(self._population)
        logger.debug(
            f"{name}.execute() total_patients={total_patients} object_to_count={object_to_count.value}"
        )

        end = self.period.end
        numerator_objects = 0
        denominator_objects = 0

        for patient in self._population:
            begin = self.period.effective_start(patient)

            if object_to_count is ObjectType.PATIENTS:
                if not denominator.test(patient, None, begin, end):
                    continue
                denominator_objects += 1

                passed = numerator.test(patient, None, begin, end)
                if passed:
                    numerator_objects += 1
                self._tracker.add_item(
                    context, self.rule_id, begin, end, int(passed), patient.id, object_to_count,
                )
            else:
                objects = self.collect_objects(patient, object_to_count, begin, end)
                objects_pass = []
                for obj in objects:
                    if denominator.test(patient, obj, begin, end):
                        denominator_objects += 1
                        objects_pass.append(obj)

                for obj in objects_pass:
                    passed = numerator.test(patient, obj, begin, end)
                    if passed:
                        numerator_objects += 1
                    self._tracker.add_item(
                        context, self.rule_id, begin, end, int(passed), patient.id, object_to_count,
                    )

            logger.debug(
                f"{name}.execute() patient processed pid={patient.id} "
                f"numerator={numerator_objects} denominator={denominator_objects}"
            )

        if object_to_count is ObjectType.LABS:
            denominator_objects += self.options.labs_manual
            logger.debug(
                f"{name}.execute() manual labs applied labs_manual={self.options.labs_manual} "
                f"denominator={denominator_objects}"
            )

        percentage = calculate_percentage(denominator_objects, 0, numerator_objects)
        result = AmcResult(
            rule_id=self.rule_id,
            object_type=object_to_count,
            total_patients=total_patients,
            denominator=denominator_objects,
            exclusions=0,
            numerator=numerator_objects,
            percentage=percentage,
        )
        self._results.append(result)
        logger.debug(f"{name}.execute() leaving rule={self.rule_id} result={result.model_dump()}")
        return result
