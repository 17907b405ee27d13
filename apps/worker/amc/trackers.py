"""
Itemization trackers.

When itemization is on, every object a report tests (pass or fail) leaves one
audit row keyed by run iterator id, rule, period, patient and object type.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from packages.db.models import ReportItemized as ReportItemizedORM
from packages.shared.models import ItemizationContext, ObjectType, TrackedItem

logger = logging.getLogger(__name__)


class ItemizationSession:
    """Hands out run iterator ids, one per rule evaluated in a report session."""

    def __init__(self, start: int = 0):
        self._last_id = start

    @property
    def last_id(self) -> int:
        return self._last_id

    def next_iterator_id(self) -> int:
        self._last_id += 1
        return self._last_id


class AmcItemTracker:
    """Records tracked items in memory and, if bound to a session, in `report_itemized`."""

    def __init__(self, session: Optional[Session] = None, report_run_id: Optional[str] = None):
        self.session = session
        self.report_run_id = report_run_id
        self.items: list[TrackedItem] = []

    def add_item(
        self,
        context: ItemizationContext,
        rule_id: str,
        date_begin: Optional[date],
        date_end: date,
        pass_flag: int,
        patient_id: int,
        object_type: ObjectType,
    ) -> None:
        if not context.enabled:
            return
        item = TrackedItem(
            run_iterator_id=context.run_iterator_id,
            rule_id=rule_id,
            date_begin=date_begin,
            date_end=date_end,
            pass_flag=1 if pass_flag else 0,
            patient_id=patient_id,
            object_type=object_type,
        )
        self.items.append(item)
        if self.session is not None:
            self.session.add(ReportItemizedORM(
                run_id=self.report_run_id,
                itemized_test_id=item.run_iterator_id,
                rule_id=item.rule_id,
                date_begin=item.date_begin.isoformat() if item.date_begin else None,
                date_end=item.date_end.isoformat(),
                pass_flag=item.pass_flag,
                pid=item.patient_id,
                object_type=item.object_type.value,
            ))

    def items_for_patient(self, patient_id: int) -> list[TrackedItem]:
        return [i for i in self.items if i.patient_id == patient_id]


class AmcItemSkipTracker:
    """Tracker used when itemization is off."""

    @property
    def items(self) -> list[TrackedItem]:
        return []

    def add_item(
        self,
        context: ItemizationContext,
        rule_id: str,
        date_begin: Optional[date],
        date_end: date,
        pass_flag: int,
        patient_id: int,
        object_type: ObjectType,
    ) -> None:
        return None

    def items_for_patient(self, patient_id: int) -> list[TrackedItem]:
        return []
