"""
Parameterized query boundary over a SQLAlchemy session.

Everything the AMC engine reads from the EHR tables goes through
`QueryExecutor`, so tests can hand the engine a fake that returns canned
rows and the engine never touches ORM objects directly.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Result
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from packages.shared.errors import DataAccessError

logger = logging.getLogger(__name__)


class QueryExecutor:
    """Runs SQL templates with named bind parameters."""

    def __init__(self, session: Session):
        self.session = session

    def execute_query(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        expanding: Iterable[str] = (),
    ) -> Result:
        """Execute `sql` and return the live cursor result.

        Names listed in `expanding` are bound as lists (`IN :name`).
        """
        stmt = text(sql)
        expanding = tuple(expanding)
        if expanding:
            stmt = stmt.bindparams(*(bindparam(name, expanding=True) for name in expanding))
        try:
            return self.session.execute(stmt, dict(params or {}))
        except SQLAlchemyError as exc:
            logger.error(f"Query failed: {exc}")
            raise DataAccessError(
                "Query execution failed",
                details={"sql": sql, "params": dict(params or {}), "error": str(exc)},
            ) from exc

    def iter_rows(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        expanding: Iterable[str] = (),
    ) -> Iterator[dict[str, Any]]:
        result = self.execute_query(sql, params, expanding)
        try:
            for row in result.mappings():
                yield dict(row)
        except SQLAlchemyError as exc:
            raise DataAccessError("Fetching rows failed", details={"sql": sql, "error": str(exc)}) from exc

    def fetch_all(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        expanding: Iterable[str] = (),
    ) -> list[dict[str, Any]]:
        """Execute `sql` and return every row as a plain dict, in store order."""
        return list(self.iter_rows(sql, params, expanding))

    def exists(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> bool:
        result = self.execute_query(sql, params)
        return result.first() is not None


def chunked(values: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    """Yield `values` in slices of at most `size` (bounded `IN` lists)."""
    for i in range(0, len(values), size):
        yield values[i:i + size]
