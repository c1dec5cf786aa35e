"""
Production Capacity & OEE Analytics - Main Application

Command line entry point over the production database:
- recompute: store loss time and OEE for closed plans in a date range
- report:    print (or export as CSV) one of the production reports
- daily:     print daily performance and average OEE
- capacity:  show the time left on a shift for a sequence, or the whole
             shift budget when no sequence is given
"""

import argparse
import logging
import sys

import pandas as pd

from config import Config
from utils.config import get_app_config, load_config, validate_config
from analysis.reports import ProductionReports
from core.exceptions import AnalyticsError
from core.time_windows.models import ReportFilter
from db.pool import close_pool, get_pool
from db.postgres import postgres_repositories
from utils.formatting import parse_date

logger = logging.getLogger(__name__)

REPORTS = {
    "achievement": "achievement_report",
    "loss-time": "loss_time_report",
    "oee": "oee_report",
    "rejection": "rejection_report",
    "pareto-loss-time": "pareto_loss_time_report",
    "pareto-ng": "pareto_ng_report",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Production capacity and OEE analytics")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_filter_arguments(sub):
        sub.add_argument("--start", type=str, default=None, help="First plan date (YYYY-MM-DD).")
        sub.add_argument("--end", type=str, default=None, help="Last plan date (YYYY-MM-DD).")
        sub.add_argument("--plant", type=str, default=None)
        sub.add_argument("--line", type=str, default=None)
        sub.add_argument("--shift", type=str, default=None)

    recompute = subparsers.add_parser("recompute", help="Recompute loss time and OEE of closed plans.")
    add_filter_arguments(recompute)
    recompute.add_argument("--plan", type=str, default=None, help="Recompute a single plan.")

    report = subparsers.add_parser("report", help="Print a production report.")
    report.add_argument("name", choices=sorted(REPORTS))
    add_filter_arguments(report)
    report.add_argument("--department", type=str, default=None)
    report.add_argument("--machine", type=str, default=None)
    report.add_argument("--csv", type=str, default=None, help="Write the table to this CSV file.")

    daily = subparsers.add_parser("daily", help="Daily performance and average OEE.")
    add_filter_arguments(daily)

    capacity = subparsers.add_parser("capacity", help="Available time for a sequence.")
    capacity.add_argument("--date", type=str, required=True)
    capacity.add_argument("--line", type=str, required=True)
    capacity.add_argument("--shift", type=str, required=True)
    capacity.add_argument("--sequence", type=int, default=None)
    capacity.add_argument("--cycle-time", type=int, default=0, help="Cycle time in seconds.")
    capacity.add_argument("--plan", type=str, default=None, help="Plan being edited.")

    return parser


def filters_from_args(args) -> ReportFilter:
    return ReportFilter(
        start_date=args.start,
        end_date=args.end,
        plant_id=args.plant,
        line_id=args.line,
        shift_id=args.shift,
        department=getattr(args, "department", None),
        machine_id=getattr(args, "machine", None),
    )


def run(args, reports) -> int:
    if args.command == "recompute":
        if args.plan:
            metrics = reports.recompute_plan_results(args.plan)
            if metrics is None:
                print(f"Plan {args.plan} is not closed, nothing stored")
            else:
                print(pd.Series(metrics.to_dict()).to_string())
            return 0

        results = reports.recompute_closed_plans(filters_from_args(args))
        frame = pd.DataFrame.from_dict(
            {plan_id: m.to_dict() for plan_id, m in results.items()}, orient="index"
        )
        print(f"Recomputed {len(results)} closed plans")
        if not frame.empty:
            print(frame.to_string())
        return 0

    if args.command == "report":
        report = getattr(reports, REPORTS[args.name])(filters_from_args(args))
        if args.csv:
            report.table.to_csv(args.csv, index=False)
            print(f"Wrote {len(report.table)} rows to {args.csv}")
        else:
            print(pd.DataFrame(report.chart_data).to_string(index=False))
            print()
            print(report.table.to_string(index=False))
        if report.summary:
            print()
            print(pd.Series(report.summary).to_string())
        return 0

    if args.command == "daily":
        filters = filters_from_args(args)
        performance = pd.DataFrame(reports.performance_by_date(filters))
        oee = pd.DataFrame(reports.oee_by_date(filters))
        if not performance.empty and not oee.empty:
            performance = performance.merge(oee, on="date", how="outer", suffixes=("", "_oee"))
            performance = performance.sort_values("date")
        elif performance.empty:
            performance = oee
        print(performance.to_string(index=False))
        return 0

    if args.command == "capacity":
        plan_date = parse_date(args.date)
        if args.sequence is None:
            allocations = reports.sequence_allocations(plan_date, args.line, args.shift)
            rows = [a.to_dict() for a in allocations]
            for row in rows:
                row.pop("plans")
            print(pd.DataFrame(rows).to_string(index=False))
            print(f"Next sequence: {reports.next_sequence(plan_date, args.line, args.shift)}")
            print(f"Next work order: {reports.next_work_order_no(plan_date)}")
            return 0

        allocation = reports.available_time_for_sequence(
            plan_date,
            args.line,
            args.shift,
            args.sequence,
            args.cycle_time,
            current_plan_id=args.plan,
        )
        summary = allocation.to_dict()
        plans = summary.pop("plans")
        print(pd.Series(summary).to_string())
        if plans:
            print()
            print(pd.DataFrame(plans).to_string(index=False))
        return 0

    return 2


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    load_config()

    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    missing = validate_config()
    if missing:
        for item in missing:
            logger.error(item)
        return 1

    logger.info(f"Settings: {get_app_config()}")

    try:
        db = get_pool()
        if not db.health_check():
            logger.error("Production database is not reachable")
            return 1

        reports = ProductionReports(postgres_repositories(db))
        return run(args, reports)
    except AnalyticsError as e:
        logger.error(e.message)
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 1
    finally:
        close_pool()


if __name__ == "__main__":
    sys.exit(main())
