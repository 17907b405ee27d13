"""
Report pipeline: evaluates one queued AMC report run.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from packages.db.database import get_session
from packages.db.models import AmcReportRun as AmcReportRunORM
from packages.db.query import QueryExecutor
from packages.shared.models import AmcResult, ReportRunConfig, Rule, RunStatus

from apps.worker.amc.registry import create_report
from apps.worker.amc.trackers import AmcItemTracker, ItemizationSession
from apps.worker.pipeline_persistence import fail_report_run, last_itemized_test_id, persist_report_result

logger = logging.getLogger(__name__)


def run_report(run_id: str) -> Optional[AmcResult]:
    """
    Execute the AMC report for a given run and store its result.

    Evaluation and itemized rows share one transaction: a failed run leaves no
    itemized rows and no result, only the `failed` status and error message.
    """
    started_at = datetime.now(timezone.utc)
    start_time = time.time()

    try:
        with get_session() as session:
            run_row = session.query(AmcReportRunORM).filter_by(id=run_id).first()
            if not run_row:
                logger.error(f"Report run {run_id} not found")
                return None

            run_row.status = RunStatus.RUNNING.value
            run_row.started_at = started_at
            session.flush()

            config = ReportRunConfig.model_validate(run_row.config_json or {})
            options = config.options
            logger.info(
                f"[{run_id}] Evaluating {config.rule_id} over {len(config.patient_ids)} patients "
                f"({config.period.start or 'dob'} .. {config.period.end})"
            )

            tracker = None
            itemization = None
            if options.itemization_enabled:
                tracker = AmcItemTracker(session, report_run_id=run_id)
                if options.run_iterator_id is None:
                    itemization = ItemizationSession(start=last_itemized_test_id(session))

            report = create_report(
                Rule(id=config.rule_id),
                config.patient_ids,
                config.period,
                options,
                executor=QueryExecutor(session),
                tracker=tracker,
                itemization=itemization,
            )
            result = report.execute()
            persist_report_result(run_row, result, time.time() - start_time)

        logger.info(
            f"[{run_id}] Report completed: rule={result.rule_id} denominator={result.denominator} "
            f"numerator={result.numerator} percentage={result.percentage}"
        )
        return result

    except Exception as exc:
        logger.exception(f"[{run_id}] Report failed: {exc}")
        fail_report_run(run_id, str(exc), time.time() - start_time)
        return None
