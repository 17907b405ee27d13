"""
Persistence helpers for AMC report runs.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from packages.db.database import get_session
from packages.db.models import AmcReportRun as AmcReportRunORM
from packages.db.models import ReportItemized as ReportItemizedORM
from packages.shared.models import AmcResult, ReportRunConfig, RunStatus


def create_report_run(session: Session, config: ReportRunConfig) -> AmcReportRunORM:
    """Queue a report run in `pending` state."""
    run = AmcReportRunORM(
        rule_id=config.rule_id,
        status=RunStatus.PENDING.value,
        config_json=config.model_dump(mode="json"),
    )
    session.add(run)
    session.flush()
    return run


def last_itemized_test_id(session: Session) -> int:
    """Largest run iterator id already stored in `report_itemized`."""
    value = session.query(func.max(ReportItemizedORM.itemized_test_id)).scalar()
    return int(value or 0)


def persist_report_result(
    run_row: AmcReportRunORM,
    result: AmcResult,
    processing_seconds: float,
) -> None:
    run_row.status = RunStatus.SUCCESS.value
    run_row.finished_at = datetime.now(timezone.utc)
    run_row.processing_seconds = processing_seconds
    run_row.result_json = result.model_dump(mode="json")
    run_row.error_message = None


def fail_report_run(run_id: str, error: str, processing_seconds: Optional[float] = None) -> None:
    """Mark a run as failed in its own transaction."""
    with get_session() as session:
        run_row = session.query(AmcReportRunORM).filter_by(id=run_id).first()
        if run_row:
            run_row.status = RunStatus.FAILED.value
            run_row.finished_at = datetime.now(timezone.utc)
            run_row.error_message = error[:2000]
            run_row.result_json = None
            if processing_seconds is not None:
                run_row.processing_seconds = processing_seconds
