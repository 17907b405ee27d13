"""
Report population: the patients a rule is evaluated over.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterator, Optional, Sequence

from packages.db.query import QueryExecutor, chunked
from packages.shared.models import Subject

logger = logging.getLogger(__name__)

PATIENT_SQL = (
    "SELECT pid, dob, sex, language, race, ethnicity "
    "FROM patient_data "
    "WHERE pid IN :pids"
)

DEMOGRAPHIC_FIELDS = ("sex", "language", "race", "ethnicity")

_CHUNK_SIZE = 500


def coerce_date(value: Any) -> Optional[date]:
    """Normalize a driver value (date, datetime or ISO string) to a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text or text.startswith("0000"):
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.warning(f"Unparseable date value {text!r}; treating as missing")
        return None


class AmcPopulation:
    """
    Patients keyed by id, iterated in the order the caller supplied the ids.

    Rows are loaded on first iteration. Ids with no `patient_data` row are
    still members of the population, with no birth date.
    """

    def __init__(self, patient_ids: Sequence[int], executor: Optional[QueryExecutor]):
        self._patient_ids = [int(pid) for pid in patient_ids]
        self._executor = executor
        self._subjects: Optional[list[Subject]] = None

    @classmethod
    def from_subjects(cls, subjects: Sequence[Subject]) -> "AmcPopulation":
        """Population over already-loaded subjects; no store access."""
        population = cls([s.id for s in subjects], executor=None)
        population._subjects = list(subjects)
        return population

    def __len__(self) -> int:
        return len(self._patient_ids)

    def count(self) -> int:
        return len(self)

    def __iter__(self) -> Iterator[Subject]:
        if self._subjects is None:
            self._subjects = self._load()
        return iter(self._subjects)

    @property
    def patient_ids(self) -> list[int]:
        return list(self._patient_ids)

    def _load(self) -> list[Subject]:
        rows_by_pid: dict[int, dict[str, Any]] = {}
        unique_ids = list(dict.fromkeys(self._patient_ids))
        for batch in chunked(unique_ids, _CHUNK_SIZE):
            for row in self._executor.fetch_all(PATIENT_SQL, {"pids": list(batch)}, expanding=("pids",)):
                rows_by_pid[int(row["pid"])] = row

        missing = [pid for pid in unique_ids if pid not in rows_by_pid]
        if missing:
            logger.warning(f"{len(missing)} population ids have no patient_data row: {missing[:10]}")

        subjects = []
        for pid in self._patient_ids:
            row = rows_by_pid.get(pid, {})
            subjects.append(Subject(
                id=pid,
                dob=coerce_date(row.get("dob")),
                demographics={k: row.get(k) for k in DEMOGRAPHIC_FIELDS},
            ))
        return subjects
