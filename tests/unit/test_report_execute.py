"""
Unit tests for AmcReport.execute (denominator/numerator counting).
"""
from __future__ import annotations

from datetime import date

import pytest

from packages.shared.errors import ConfigurationError, DataAccessError
from packages.shared.models import EvaluationOptions, MeasurementPeriod, ObjectType, Rule, Subject
from apps.worker.amc.filters import AmcDenominator, AmcNumerator
from apps.worker.amc.population import AmcPopulation
from apps.worker.amc.report import AmcReport
from apps.worker.amc.trackers import AmcItemSkipTracker, AmcItemTracker, ItemizationSession


class RecordingDenominator(AmcDenominator):
    def __init__(self, predicate=lambda patient, obj: True):
        self.predicate = predicate
        self.calls = []

    def test(self, patient, obj, begin, end):
        self.calls.append((patient.id, obj, begin, end))
        return self.predicate(patient, obj)


class RecordingNumerator(AmcNumerator):
    def __init__(self, predicate=lambda patient, obj: True):
        self.predicate = predicate
        self.calls = []

    def test(self, patient, obj, begin, end):
        self.calls.append((patient.id, obj, begin, end))
        return self.predicate(patient, obj)


class StubReport(AmcReport):
    """Report with injected filters and in-memory candidate objects."""

    def __init__(self, *, object_type, numerator, denominator, objects_by_pid=None, **kwargs):
        self.object_to_count = object_type
        self._numerator = numerator
        self._denominator = denominator
        self._objects_by_pid = objects_by_pid or {}
        self.collect_calls = []
        super().__init__(**kwargs)

    def create_numerator(self):
        return self._numerator

    def create_denominator(self):
        return self._denominator

    def collect_objects(self, patient, object_to_count, begin, end):
        self.collect_calls.append((patient.id, object_to_count, begin, end))
        return [dict(o) for o in self._objects_by_pid.get(patient.id, [])]


def _make_report(
    subjects,
    *,
    object_type="patients",
    numerator=None,
    denominator=None,
    objects_by_pid=None,
    period=None,
    options=None,
    tracker=None,
    itemization=None,
    rule_id="test_amc",
):
    return StubReport(
        object_type=object_type,
        numerator=numerator or RecordingNumerator(),
        denominator=denominator or RecordingDenominator(),
        objects_by_pid=objects_by_pid,
        rule=Rule(id=rule_id),
        patient_ids=[s.id for s in subjects],
        period=period or MeasurementPeriod(start=date(2020, 1, 1), end=date(2020, 12, 31)),
        options=options,
        population=AmcPopulation.from_subjects(subjects),
        tracker=tracker,
        itemization=itemization,
    )


def _itemized():
    return EvaluationOptions(itemization_enabled=True)


P1 = Subject(id=1, dob=date(2000, 1, 1))
P2 = Subject(id=2, dob=date(1985, 6, 15))
P3 = Subject(id=3, dob=date(1970, 3, 3))


class TestPatientCounting:
    def test_single_patient_with_dob_period_start(self):
        denominator = RecordingDenominator()
        report = _make_report(
            [P1],
            denominator=denominator,
            period=MeasurementPeriod(start="", end=date(2020, 1, 1)),
            options=_itemized(),
        )
        result = report.execute()

        assert result.denominator == 1
        assert result.numerator == 1
        assert result.percentage == 100
        assert denominator.calls[0][2] == date(2000, 1, 1)
        assert report.get_tracker().items[0].date_begin == date(2000, 1, 1)

    def test_failing_denominator_patients_are_not_tracked(self):
        denominator = RecordingDenominator(lambda p, o: p.id != 2)
        numerator = RecordingNumerator()
        report = _make_report([P1, P2, P3], denominator=denominator, numerator=numerator, options=_itemized())
        result = report.execute()

        assert result.denominator == 2
        assert [c[0] for c in numerator.calls] == [1, 3]
        tracker = report.get_tracker()
        assert len(tracker.items_for_patient(1)) == 1
        assert tracker.items_for_patient(2) == []
        assert len(tracker.items_for_patient(3)) == 1

    def test_numerator_failure_tracked_with_zero_flag(self):
        numerator = RecordingNumerator(lambda p, o: p.id == 1)
        report = _make_report([P1, P2], numerator=numerator, options=_itemized())
        result = report.execute()

        assert result.numerator == 1
        assert result.denominator == 2
        assert result.percentage == 50
        flags = {i.patient_id: i.pass_flag for i in report.get_tracker().items}
        assert flags == {1: 1, 2: 0}

    def test_patients_mode_filters_get_no_object(self):
        denominator = RecordingDenominator()
        report = _make_report([P1], denominator=denominator)
        report.execute()
        assert denominator.calls[0][1] is None
        assert report.collect_calls == []

    def test_empty_object_type_defaults_to_patients(self):
        report = _make_report([P1, P2], object_type="")
        result = report.execute()
        assert result.object_type is ObjectType.PATIENTS
        assert result.denominator == 2

    def test_numerator_skipped_when_denominator_fails(self):
        numerator = RecordingNumerator()
        denominator = RecordingDenominator(lambda p, o: False)
        result = _make_report([P1, P2], numerator=numerator, denominator=denominator).execute()
        assert result.numerator == 0
        assert numerator.calls == []


class TestPeriodStartResolution:
    def test_each_patient_gets_own_dob(self):
        denominator = RecordingDenominator()
        report = _make_report(
            [P1, P2],
            denominator=denominator,
            period=MeasurementPeriod(start=None, end=date(2020, 12, 31)),
        )
        report.execute()
        begins = {c[0]: c[2] for c in denominator.calls}
        assert begins == {1: date(2000, 1, 1), 2: date(1985, 6, 15)}

    def test_explicit_start_overrides_dob(self):
        denominator = RecordingDenominator()
        report = _make_report(
            [P1, P2],
            denominator=denominator,
            period=MeasurementPeriod(start=date(2019, 7, 1), end=date(2020, 6, 30)),
        )
        report.execute()
        assert {c[2] for c in denominator.calls} == {date(2019, 7, 1)}
        assert {c[3] for c in denominator.calls} == {date(2020, 6, 30)}

    def test_collector_receives_resolved_start(self):
        report = _make_report(
            [P2],
            object_type="encounters",
            period=MeasurementPeriod(start="", end=date(2020, 12, 31)),
        )
        report.execute()
        assert report.collect_calls == [(2, ObjectType.ENCOUNTERS, date(1985, 6, 15), date(2020, 12, 31))]


class TestObjectCounting:
    def test_encounter_scenario(self):
        objects = {1: [{"encounter": 101, "ok": True}, {"encounter": 102, "ok": False}]}
        denominator = RecordingDenominator(lambda p, o: o["ok"])
        report = _make_report(
            [P1, P2],
            object_type="encounters",
            denominator=denominator,
            objects_by_pid=objects,
            options=_itemized(),
        )
        result = report.execute()

        assert result.denominator == 1
        assert result.total_patients == 2
        items = report.get_tracker().items
        assert len(items) == 1
        assert items[0].patient_id == 1
        assert items[0].object_type is ObjectType.ENCOUNTERS

    def test_numerator_only_sees_denominator_survivors(self):
        objects = {1: [{"id": 1}, {"id": 2}, {"id": 3}]}
        denominator = RecordingDenominator(lambda p, o: o["id"] != 2)
        numerator = RecordingNumerator()
        report = _make_report(
            [P1],
            object_type="prescriptions",
            denominator=denominator,
            numerator=numerator,
            objects_by_pid=objects,
        )
        result = report.execute()

        assert [c[1]["id"] for c in denominator.calls] == [1, 2, 3]
        assert [c[1]["id"] for c in numerator.calls] == [1, 3]
        assert result.denominator == 2
        assert result.numerator == 2

    def test_items_per_patient_equal_denominator_survivors(self):
        objects = {
            1: [{"v": 1}, {"v": 2}, {"v": 3}],
            2: [{"v": 4}],
            3: [{"v": 5}, {"v": 6}],
        }
        denominator = RecordingDenominator(lambda p, o: o["v"] % 2 == 1)
        numerator = RecordingNumerator(lambda p, o: o["v"] > 2)
        report = _make_report(
            [P1, P2, P3],
            object_type="labs",
            denominator=denominator,
            numerator=numerator,
            objects_by_pid=objects,
            options=_itemized(),
        )
        result = report.execute()

        tracker = report.get_tracker()
        assert len(tracker.items_for_patient(1)) == 2
        assert len(tracker.items_for_patient(2)) == 0
        assert len(tracker.items_for_patient(3)) == 1
        assert result.denominator == 3
        assert result.numerator == 2
        assert all(i.pass_flag in (0, 1) for i in tracker.items)
        assert sorted(i.pass_flag for i in tracker.items) == [0, 1, 1]

    def test_patient_without_objects_contributes_nothing(self):
        report = _make_report([P1, P2], object_type="transitions-in", options=_itemized())
        result = report.execute()
        assert result.denominator == 0
        assert result.numerator == 0
        assert result.percentage == 0
        assert report.get_tracker().items == []

    def test_numerator_receives_attached_object(self):
        objects = {1: [{"result": "7.2"}]}
        numerator = RecordingNumerator()
        _make_report([P1], object_type="labs", numerator=numerator, objects_by_pid=objects).execute()
        assert numerator.calls[0][1] == {"result": "7.2"}


class TestManualLabAdjustment:
    def test_manual_labs_added_to_denominator(self):
        objects = {1: [{"r": 1}, {"r": 2}]}
        baseline = _make_report([P1], object_type="labs", objects_by_pid=objects).execute()
        adjusted = _make_report(
            [P1],
            object_type="labs",
            objects_by_pid=objects,
            options=EvaluationOptions(labs_manual=5),
        ).execute()

        assert adjusted.denominator == baseline.denominator + 5
        assert adjusted.numerator == baseline.numerator
        assert adjusted.percentage == 29  # 2 / 7

    def test_manual_labs_ignored_for_other_object_types(self):
        objects = {1: [{"r": 1}]}
        result = _make_report(
            [P1],
            object_type="prescriptions",
            objects_by_pid=objects,
            options=EvaluationOptions(labs_manual=5),
        ).execute()
        assert result.denominator == 1

    def test_manual_labs_with_empty_population(self):
        result = _make_report([], object_type="labs", options=EvaluationOptions(labs_manual=3)).execute()
        assert result.total_patients == 0
        assert result.denominator == 3
        assert result.percentage == 0


class TestResults:
    def test_one_result_per_execute(self):
        report = _make_report([P1, P2, P3])
        result = report.execute()
        assert report.get_results() == [result]
        assert result.total_patients == 3
        assert result.exclusions == 0
        assert result.rule_id == "test_amc"

    def test_total_patients_independent_of_outcomes(self):
        denominator = RecordingDenominator(lambda p, o: False)
        result = _make_report([P1, P2, P3], denominator=denominator).execute()
        assert result.total_patients == 3
        assert result.denominator == 0

    def test_idempotent_without_itemization(self):
        objects = {1: [{"v": 1}, {"v": 2}], 2: [{"v": 3}]}

        def build():
            return _make_report(
                [P1, P2],
                object_type="encounters",
                denominator=RecordingDenominator(lambda p, o: o["v"] != 2),
                numerator=RecordingNumerator(lambda p, o: o["v"] == 3),
                objects_by_pid=objects,
            )

        first = build().execute()
        second = build().execute()
        assert first == second

        report = build()
        report.execute()
        report.execute()
        results = report.get_results()
        assert len(results) == 2
        assert results[0] == results[1]

    def test_zero_denominator_percentage(self):
        result = _make_report([], object_type="patients").execute()
        assert result.denominator == 0
        assert result.numerator == 0
        assert result.percentage == 0


class TestConfigurationErrors:
    def test_numerator_of_wrong_capability_is_fatal(self):
        report = _make_report([P1], numerator=RecordingDenominator())
        with pytest.raises(ConfigurationError):
            report.execute()
        assert report.get_results() == []

    def test_denominator_of_wrong_capability_is_fatal(self):
        report = _make_report([P1], denominator=RecordingNumerator())
        with pytest.raises(ConfigurationError):
            report.execute()
        assert report.get_results() == []

    def test_plain_object_is_rejected(self):
        report = _make_report([P1], numerator=object())
        with pytest.raises(ConfigurationError, match="Numerator"):
            report.execute()

    def test_unknown_object_type_is_fatal(self):
        denominator = RecordingDenominator()
        report = _make_report([P1], object_type="vitals", denominator=denominator)
        with pytest.raises(ConfigurationError, match="vitals"):
            report.execute()
        assert denominator.calls == []
        assert report.get_results() == []


class TestDataAccessFailures:
    def test_collection_failure_propagates_without_result(self):
        class FailingReport(StubReport):
            def collect_objects(self, patient, object_to_count, begin, end):
                if patient.id == 2:
                    raise DataAccessError("store unavailable")
                return [{"v": 1}]

        report = FailingReport(
            object_type="encounters",
            numerator=RecordingNumerator(),
            denominator=RecordingDenominator(),
            rule=Rule(id="test_amc"),
            patient_ids=[1, 2],
            period=MeasurementPeriod(start=date(2020, 1, 1), end=date(2020, 12, 31)),
            population=AmcPopulation.from_subjects([P1, P2]),
        )
        with pytest.raises(DataAccessError):
            report.execute()
        assert report.get_results() == []


class TestItemization:
    def test_disabled_uses_skip_tracker(self):
        report = _make_report([P1], options=EvaluationOptions(itemization_enabled=False))
        report.execute()
        assert isinstance(report.get_tracker(), AmcItemSkipTracker)
        assert report.get_tracker().items == []

    def test_disabled_ignores_supplied_tracker(self):
        tracker = AmcItemTracker()
        report = _make_report([P1], tracker=tracker)
        report.execute()
        assert report.get_tracker() is not tracker
        assert tracker.items == []

    def test_iterator_id_comes_from_session(self):
        session = ItemizationSession(start=4)
        report = _make_report([P1], options=_itemized(), itemization=session)
        report.execute()
        assert {i.run_iterator_id for i in report.get_tracker().items} == {5}
        assert session.last_id == 5

    def test_each_execute_advances_iterator(self):
        session = ItemizationSession()
        report = _make_report([P1], options=_itemized(), itemization=session)
        report.execute()
        report.execute()
        assert [i.run_iterator_id for i in report.get_tracker().items] == [1, 2]

    def test_explicit_iterator_id_wins(self):
        session = ItemizationSession(start=10)
        report = _make_report(
            [P1],
            options=EvaluationOptions(itemization_enabled=True, run_iterator_id=42),
            itemization=session,
        )
        report.execute()
        assert report.get_tracker().items[0].run_iterator_id == 42
        assert session.last_id == 10

    def test_tracked_item_carries_rule_period_and_type(self):
        objects = {3: [{"v": 1}]}
        report = _make_report(
            [P3],
            object_type="med_orders",
            objects_by_pid=objects,
            options=_itemized(),
            rule_id="cpoe_med_amc",
        )
        report.execute()
        item = report.get_tracker().items[0]
        assert item.rule_id == "cpoe_med_amc"
        assert item.date_begin == date(2020, 1, 1)
        assert item.date_end == date(2020, 12, 31)
        assert item.patient_id == 3
        assert item.object_type is ObjectType.MED_ORDERS
        assert item.pass_flag == 1
