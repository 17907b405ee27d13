"""
API route: AMC report runs
"""
from __future__ import annotations

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from packages.db.database import get_db
from packages.db.models import AmcReportRun, ReportItemized
from packages.shared.models import EvaluationOptions, MeasurementPeriod, ReportRunConfig
from packages.shared.settings import itemization_enabled_default, labs_manual_default

from apps.worker.amc.percentage import format_percentage
from apps.worker.amc.registry import available_rules, get_report_class
from apps.worker.pipeline import run_report
from apps.worker.pipeline_persistence import create_report_run

router = APIRouter(prefix="/amc", tags=["amc"])


class CreateReportRunRequest(BaseModel):
    rule_id: str = Field(min_length=1, max_length=64)
    patient_ids: list[int] = Field(default_factory=list)
    date_begin: Optional[date] = None
    date_target: date
    labs_manual: Optional[int] = Field(default=None, ge=0)
    itemize: Optional[bool] = None
    run_iterator_id: Optional[int] = Field(default=None, ge=1)
    execute_now: bool = False

    @field_validator("date_begin", mode="before")
    @classmethod
    def _blank_begin(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ReportRunResponse(BaseModel):
    id: str
    rule_id: str
    status: str
    created_at: str | None
    started_at: str | None
    finished_at: str | None
    result: dict | None
    percentage_display: str | None
    error_message: str | None
    processing_seconds: float | None


class ItemResponse(BaseModel):
    itemized_test_id: int
    rule_id: str
    date_begin: str | None
    date_end: str | None
    pass_flag: int
    pid: int
    object_type: str


def _run_response(run: AmcReportRun) -> ReportRunResponse:
    result = run.result_json or None
    return ReportRunResponse(
        id=run.id,
        rule_id=run.rule_id,
        status=run.status,
        created_at=run.created_at.isoformat() if run.created_at else None,
        started_at=run.started_at.isoformat() if run.started_at else None,
        finished_at=run.finished_at.isoformat() if run.finished_at else None,
        result=result,
        percentage_display=format_percentage(result["percentage"]) if result else None,
        error_message=run.error_message,
        processing_seconds=run.processing_seconds,
    )


@router.get("/rules")
def list_rules():
    """List the registered AMC rules."""
    return available_rules()


@router.post("/runs", response_model=ReportRunResponse, status_code=202)
def create_run(req: CreateReportRunRequest, db: Session = Depends(get_db)):
    """Queue an AMC report run; `execute_now` evaluates it before responding."""
    get_report_class(req.rule_id)

    if req.date_begin and req.date_begin > req.date_target:
        raise HTTPException(status_code=400, detail="date_begin must not be after date_target")

    config = ReportRunConfig(
        rule_id=req.rule_id,
        patient_ids=req.patient_ids,
        period=MeasurementPeriod(start=req.date_begin, end=req.date_target),
        options=EvaluationOptions(
            labs_manual=req.labs_manual if req.labs_manual is not None else labs_manual_default(),
            itemization_enabled=req.itemize if req.itemize is not None else itemization_enabled_default(),
            run_iterator_id=req.run_iterator_id,
        ),
    )
    run = create_report_run(db, config)
    db.commit()

    if req.execute_now:
        run_report(run.id)
        db.refresh(run)

    return _run_response(run)


@router.get("/runs/{run_id}", response_model=ReportRunResponse)
def get_run(run_id: str, db: Session = Depends(get_db)):
    """Get run status and result."""
    run = db.query(AmcReportRun).filter_by(id=run_id).first()
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return _run_response(run)


@router.get("/runs/{run_id}/items", response_model=list[ItemResponse])
def list_run_items(run_id: str, db: Session = Depends(get_db)):
    """Itemized pass/fail rows recorded by a run."""
    run = db.query(AmcReportRun).filter_by(id=run_id).first()
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")

    items = (
        db.query(ReportItemized)
        .filter_by(run_id=run_id)
        .order_by(ReportItemized.id)
        .all()
    )
    return [
        ItemResponse(
            itemized_test_id=i.itemized_test_id,
            rule_id=i.rule_id,
            date_begin=i.date_begin,
            date_end=i.date_end,
            pass_flag=i.pass_flag,
            pid=i.pid,
            object_type=i.object_type,
        )
        for i in items
    ]
