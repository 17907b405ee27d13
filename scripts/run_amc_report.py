"""
Evaluate one AMC rule directly against DATABASE_URL and print the result.

    python scripts/run_amc_report.py --rule lab_result_amc --patients 1,2,3 \
        --begin 2024-01-01 --end 2024-12-31 --labs-manual 4 --itemize
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from packages.db.database import get_session, init_db
from packages.db.query import QueryExecutor
from packages.shared.errors import AmcError
from packages.shared.models import EvaluationOptions, MeasurementPeriod, Rule
from packages.shared.settings import itemization_enabled_default, labs_manual_default
from apps.worker.amc.percentage import format_percentage
from apps.worker.amc.registry import available_rules, create_report
from apps.worker.amc.trackers import AmcItemTracker, ItemizationSession
from apps.worker.pipeline_persistence import last_itemized_test_id

logger = logging.getLogger("amc.cli")


def _parse_patients(raw: str) -> list[int]:
    try:
        return [int(p) for p in raw.split(",") if p.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"patient ids must be integers: {raw!r}") from None


def _parse_date(raw: str) -> date | None:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {raw!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run an AMC report.")
    parser.add_argument("--rule", help="AMC rule id, e.g. lab_result_amc")
    parser.add_argument("--patients", type=_parse_patients, default=[], help="Comma-separated patient ids")
    parser.add_argument("--begin", type=_parse_date, default=None, help="Period start (empty = each patient's DOB)")
    parser.add_argument("--end", type=_parse_date, help="Period end")
    parser.add_argument("--labs-manual", type=int, default=None)
    parser.add_argument("--itemize", action="store_true", default=None)
    parser.add_argument("--list-rules", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.list_rules:
        print(json.dumps(available_rules(), indent=2))
        return 0
    if not args.rule or args.end is None:
        logger.error("--rule and --end are required")
        return 2

    itemize = args.itemize if args.itemize is not None else itemization_enabled_default()
    options = EvaluationOptions(
        labs_manual=args.labs_manual if args.labs_manual is not None else labs_manual_default(),
        itemization_enabled=itemize,
    )
    init_db()
    try:
        with get_session() as session:
            tracker = AmcItemTracker(session) if itemize else None
            itemization = ItemizationSession(start=last_itemized_test_id(session)) if itemize else None
            report = create_report(
                Rule(id=args.rule),
                args.patients,
                MeasurementPeriod(start=args.begin, end=args.end),
                options,
                executor=QueryExecutor(session),
                tracker=tracker,
                itemization=itemization,
            )
            result = report.execute()
    except AmcError as exc:
        logger.error(f"{exc.message} {exc.details}")
        return 1

    payload = result.model_dump(mode="json")
    payload["percentage_display"] = format_percentage(result.percentage)
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
