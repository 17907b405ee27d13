"""
AMC report worker.

Claims queued report runs from `amc_report_runs` and evaluates them:

    python -m apps.worker.runner                      # poll forever
    python -m apps.worker.runner --once               # one run, then exit (cron)
    python -m apps.worker.runner --rule lab_result_amc --rule e_prescribe_amc

A run is only claimed when its stored configuration validates and names a
registered rule; runs that cannot be evaluated are failed in place so they
never block the queue. Runs left `running` by a dead worker (no heartbeat for
`STALE_THRESHOLD_MINUTES`) are reclaimed under the same check.
"""
from __future__ import annotations

import argparse
import logging
import os
import platform
import threading
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from pydantic import ValidationError
from sqlalchemy.orm import Session

from packages.db.database import get_session, init_db
from packages.db.models import AmcReportRun
from packages.shared.errors import ConfigurationError
from packages.shared.models import AmcResult, ReportRunConfig, RunStatus
from apps.worker.amc.registry import get_report_class
from apps.worker.pipeline import run_report

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 10  # seconds
STALE_THRESHOLD_MINUTES = 10
CLAIM_BATCH = 20
WORKER_ID = f"{platform.node()}-{os.getpid()}-{uuid.uuid4().hex[:6]}"


def get_utc_now():
    return datetime.now(timezone.utc)


def check_run_config(run: AmcReportRun) -> Optional[str]:
    """Why `run` cannot be evaluated, or None when it can."""
    try:
        config = ReportRunConfig.model_validate(run.config_json or {})
    except ValidationError as exc:
        return f"Invalid run configuration ({exc.error_count()} errors)"
    if config.rule_id != run.rule_id:
        return f"Run rule {run.rule_id!r} does not match configured rule {config.rule_id!r}"
    try:
        get_report_class(config.rule_id)
    except ConfigurationError as exc:
        return exc.message
    return None


def _claim_candidates(session: Session, rule_ids: Optional[Sequence[str]]):
    stale_cutoff = get_utc_now() - timedelta(minutes=STALE_THRESHOLD_MINUTES)
    stale = (
        session.query(AmcReportRun)
        .filter(AmcReportRun.status == RunStatus.RUNNING.value)
        .filter(AmcReportRun.heartbeat_at < stale_cutoff)
    )
    pending = session.query(AmcReportRun).filter(AmcReportRun.status == RunStatus.PENDING.value)
    if rule_ids:
        stale = stale.filter(AmcReportRun.rule_id.in_(list(rule_ids)))
        pending = pending.filter(AmcReportRun.rule_id.in_(list(rule_ids)))

    for run in stale.order_by(AmcReportRun.heartbeat_at).limit(CLAIM_BATCH).all():
        yield run, RunStatus.RUNNING
    for run in pending.order_by(AmcReportRun.created_at).limit(CLAIM_BATCH).all():
        yield run, RunStatus.PENDING


def _transition(session: Session, run_id: str, expected: RunStatus, values: dict) -> bool:
    """Update the run only if it still has the status we saw; another worker may have won."""
    rows = (
        session.query(AmcReportRun)
        .filter(AmcReportRun.id == run_id)
        .filter(AmcReportRun.status == expected.value)
        .update(values, synchronize_session=False)
    )
    return rows == 1


def claim_run(rule_ids: Optional[Sequence[str]] = None) -> Optional[str]:
    """
    Atomically claim the next evaluable run, stale runs first.

    With `rule_ids`, only runs for those rules are considered. Candidates whose
    configuration does not validate are marked failed and skipped.
    """
    with get_session() as session:
        for run, expected in _claim_candidates(session, rule_ids):
            problem = check_run_config(run)
            if problem:
                logger.warning(f"Rejecting run {run.id} ({run.rule_id}): {problem}")
                _transition(session, run.id, expected, {
                    "status": RunStatus.FAILED.value,
                    "finished_at": get_utc_now(),
                    "error_message": problem,
                })
                continue

            now = get_utc_now()
            claimed = _transition(session, run.id, expected, {
                "status": RunStatus.RUNNING.value,
                "worker_id": WORKER_ID,
                "claimed_at": now,
                "heartbeat_at": now,
            })
            if not claimed:
                logger.info(f"Run {run.id} was claimed by another worker; trying the next one")
                continue

            if expected is RunStatus.RUNNING:
                logger.warning(
                    f"Reclaimed stale run {run.id} ({run.rule_id}) from {run.worker_id}, "
                    f"last heartbeat {run.heartbeat_at}"
                )
            else:
                logger.info(f"Claimed run {run.id} ({run.rule_id})")
            return run.id
    return None


class HeartbeatThread(threading.Thread):
    """Keeps this worker's claim on a run fresh until stopped or the claim is lost."""

    def __init__(self, run_id: str, interval: float = HEARTBEAT_INTERVAL):
        super().__init__(daemon=True)
        self.run_id = run_id
        self.interval = interval
        self.stop_event = threading.Event()

    def beat(self) -> bool:
        """Refresh the heartbeat; False once another worker owns the run."""
        with get_session() as session:
            rows = (
                session.query(AmcReportRun)
                .filter(AmcReportRun.id == self.run_id)
                .filter(AmcReportRun.worker_id == WORKER_ID)
                .update({"heartbeat_at": get_utc_now()}, synchronize_session=False)
            )
        return rows == 1

    def run(self):
        while not self.stop_event.is_set():
            try:
                if not self.beat():
                    logger.warning(f"Lost claim on run {self.run_id}; heartbeat stopped")
                    return
            except Exception as e:
                logger.error(f"Heartbeat failed for {self.run_id}: {e}")
            self.stop_event.wait(self.interval)

    def stop(self):
        self.stop_event.set()


def process_run(run_id: str) -> Optional[AmcResult]:
    """Evaluate a claimed run while a heartbeat keeps the claim fresh."""
    beater = HeartbeatThread(run_id)
    beater.start()
    started = time.monotonic()
    try:
        result = run_report(run_id)
    finally:
        beater.stop()
        beater.join()

    elapsed = time.monotonic() - started
    if result is None:
        logger.info(f"Run {run_id} failed after {elapsed:.1f}s")
    else:
        logger.info(
            f"Run {run_id} ({result.rule_id}) finished in {elapsed:.1f}s: "
            f"{result.numerator}/{result.denominator} = {result.percentage}%"
        )
    return result


def run_once(rule_ids: Optional[Sequence[str]] = None) -> bool:
    """Claim and evaluate at most one run; True if a run was processed."""
    run_id = claim_run(rule_ids)
    if not run_id:
        return False
    process_run(run_id)
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Evaluate queued AMC report runs.")
    parser.add_argument("--once", action="store_true", help="Process at most one run, then exit")
    parser.add_argument("--rule", action="append", dest="rule_ids", help="Only claim runs for this rule id")
    parser.add_argument("--poll-interval", type=float, default=2.0, help="Seconds to sleep when the queue is empty")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    scope = ", ".join(args.rule_ids) if args.rule_ids else "all rules"
    logger.info(f"AMC worker {WORKER_ID} started ({scope})")
    init_db()

    if args.once:
        if not run_once(args.rule_ids):
            logger.info("No evaluable runs queued")
        return 0

    while True:
        try:
            if not run_once(args.rule_ids):
                time.sleep(args.poll_interval)
        except KeyboardInterrupt:
            logger.info("Worker stopping by user request.")
            return 0
        except Exception as exc:
            logger.exception(f"Unexpected error in worker loop: {exc}")
            time.sleep(5)


if __name__ == "__main__":
    raise SystemExit(main())
