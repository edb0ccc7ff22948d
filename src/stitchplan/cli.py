"""Command-line interface for the StitchPlan production planning core."""

import argparse
import json
import logging
import sys
from datetime import date, datetime, timedelta
from typing import Optional

from stitchplan.domain.calendar import DEFAULT_CALENDAR
from stitchplan.domain.models import Order, ProcessDef, RampUpEntry
from stitchplan.domain.throughput import DurationEstimator
from stitchplan.output.pab_report import PabReportGenerator
from stitchplan.output.plan_file import Plan, PlanFile, pab_result_to_dict
from stitchplan.scheduling.pab import PabConfig, PabPropagator
from stitchplan.scheduling.store import ScheduleStore
from stitchplan.validation.validator import ScheduleValidator

logger = logging.getLogger(__name__)


def create_sample_processes() -> list[ProcessDef]:
    """Create the standard garment process definitions."""
    return [
        ProcessDef(id="cutting", name="Cutting", sam=0.5),
        ProcessDef(id="printing", name="Printing", sam=1.0),
        ProcessDef(id="embroidery", name="Embroidery", sam=1.5),
        ProcessDef(id="sewing", name="Sewing", sam=2.0),
        ProcessDef(id="packing", name="Packing", sam=0.4),
    ]


def create_sample_orders() -> list[Order]:
    """Create sample orders for the demo."""
    return [
        Order(
            id="ZAR4531-Shirt-Blue",
            quantity=500,
            process_ids=["cutting", "printing", "sewing", "packing"],
            budgeted_efficiency=85,
        ),
        Order(
            id="HNM1234-Pants-Black",
            quantity=800,
            process_ids=["cutting", "sewing", "packing"],
            budgeted_efficiency=85,
            ramp_up=[
                RampUpEntry(day=1, efficiency=50),
                RampUpEntry(day=2, efficiency=70),
                RampUpEntry(day=3, efficiency=85),
            ],
        ),
    ]


def build_demo_plan(start: date) -> Plan:
    """Lay out every sample order on the board, one process per working day.

    Each process starts one business day after its predecessor. The sewing
    of the first order is split into two batches.
    """
    processes = create_sample_processes()
    orders = create_sample_orders()
    estimator = DurationEstimator.from_lists(processes, orders)
    store = ScheduleStore(duration_fn=estimator.for_interval)

    opening = datetime.combine(start, DEFAULT_CALENDAR.day_start())
    for offset, order in enumerate(orders):
        process_start = DEFAULT_CALENDAR.normalize(opening + timedelta(hours=2 * offset))
        for process_id in order.process_ids:
            duration = estimator.estimate(order.id, process_id, order.quantity)
            store.assign(
                order.id,
                process_id,
                f"{process_id.upper()}-{offset + 1}",
                process_start,
                duration,
                order.quantity,
            )
            process_start = DEFAULT_CALENDAR.add_business_days(process_start, 1)

    first_sewing = next(
        i for i in store.for_order(orders[0].id) if i.process_id == "sewing"
    )
    half = first_sewing.quantity // 2
    store.split(first_sewing.id, [half, first_sewing.quantity - half])

    return Plan(orders=orders, processes=processes, intervals=store.intervals)


def run_pab(
    plan: Plan,
    start: Optional[date],
    days: int,
    output_path: Optional[str] = None,
    json_path: Optional[str] = None,
    consume_predecessor_output: bool = True,
) -> int:
    """Compute and print the PAB table for a plan."""
    if not plan.intervals:
        print("Plan has no scheduled intervals.")
        return 1

    if start is None:
        start = min(i.start_datetime for i in plan.intervals).date()
    dates = DEFAULT_CALENDAR.reporting_window(start, days)
    logger.info(
        "Computing PAB for %d orders over %d reporting days from %s",
        len(plan.orders),
        len(dates),
        start,
    )

    propagator = PabPropagator(
        config=PabConfig(consume_predecessor_output=consume_predecessor_output)
    )
    result = propagator.compute(plan.intervals, plan.orders, plan.processes, dates)

    validation = ScheduleValidator().validate_result(result)

    generator = PabReportGenerator()
    if output_path:
        generator.generate(result, output_path)
        print(f"Report written to {output_path}")
    else:
        print(generator.generate_to_string(result))

    if json_path:
        with open(json_path, "w") as f:
            json.dump(pab_result_to_dict(result), f, indent=2)
        print(f"Result written to {json_path}")

    if validation.is_valid:
        print("\nValidation: PASSED")
    else:
        print(f"\nValidation: FAILED ({len(validation.errors)} errors)")
        for error in validation.errors[:5]:
            print(f"  - {error}")
        if len(validation.errors) > 5:
            print(f"  ... and {len(validation.errors) - 5} more errors")
    for warning in validation.warnings:
        print(f"  ! {warning}")

    return 0 if validation.is_valid and not result.errors else 1


def run_demo(
    days: int = 21,
    output_path: Optional[str] = None,
    plan_path: Optional[str] = None,
) -> int:
    """Build a sample plan starting next Monday and report its PAB."""
    today = date.today()
    start = today + timedelta(days=(7 - today.weekday()) % 7 or 7)

    print(f"Building demo plan starting {start.isoformat()}...")
    plan = build_demo_plan(start)
    print(f"  Scheduled intervals: {len(plan.intervals)}")

    if plan_path:
        PlanFile(plan_path).save(plan)
        print(f"  Plan written to {plan_path}")

    return run_pab(plan, start, days, output_path)


def run_calendar(operation: str, value: str, amount: float) -> int:
    """Print the result of one calendar operation."""
    calendar = DEFAULT_CALENDAR
    instant = datetime.fromisoformat(value)

    if operation == "add":
        result = calendar.add_working_minutes(instant, amount)
    elif operation == "sub":
        result = calendar.sub_working_minutes(instant, amount)
    elif operation == "add-days":
        result = calendar.add_business_days(instant, int(amount))
    else:
        result = calendar.sub_business_days(instant, int(amount))

    print(result.isoformat())
    return 0


def main() -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="StitchPlan - Production Planning Core",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo                               PAB for a sample plan
  %(prog)s demo --save-plan plan.json         Also save the sample plan

  %(prog)s pab --plan plan.json               PAB over 90 days from first start
  %(prog)s pab --plan plan.json --days 30 --json pab.json

  %(prog)s calendar add 2024-01-13T16:30 90   Add 90 working minutes
  %(prog)s calendar sub-days 2024-01-15 5     Go back 5 business days
        """,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Run PAB on a sample plan")
    demo_parser.add_argument(
        "--days", "-d",
        type=int,
        default=21,
        help="Reporting window in calendar days (default: 21)",
    )
    demo_parser.add_argument(
        "--output", "-o",
        type=str,
        help="Write the text report to this file",
    )
    demo_parser.add_argument(
        "--save-plan",
        type=str,
        help="Save the sample plan as JSON to this file",
    )

    # PAB command
    pab_parser = subparsers.add_parser("pab", help="Run PAB on a plan file")
    pab_parser.add_argument(
        "--plan", "-p",
        type=str,
        required=True,
        help="Plan JSON file",
    )
    pab_parser.add_argument(
        "--start", "-s",
        type=date.fromisoformat,
        help="First reporting day, YYYY-MM-DD (default: earliest start)",
    )
    pab_parser.add_argument(
        "--days", "-d",
        type=int,
        default=90,
        help="Reporting window in calendar days (default: 90)",
    )
    pab_parser.add_argument(
        "--output", "-o",
        type=str,
        help="Write the text report to this file",
    )
    pab_parser.add_argument(
        "--json",
        type=str,
        help="Write the result as JSON to this file",
    )
    pab_parser.add_argument(
        "--no-consume",
        action="store_true",
        help="Let predecessor output be handed downstream more than once",
    )

    # Calendar command
    calendar_parser = subparsers.add_parser(
        "calendar",
        help="Working calendar arithmetic",
    )
    calendar_parser.add_argument(
        "operation",
        choices=["add", "sub", "add-days", "sub-days"],
        help="add/sub working minutes, add-days/sub-days business days",
    )
    calendar_parser.add_argument("instant", help="ISO date or datetime")
    calendar_parser.add_argument("amount", type=float, help="Minutes or days")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "demo":
        return run_demo(args.days, args.output, args.save_plan)
    elif args.command == "pab":
        plan = PlanFile(args.plan).load()
        return run_pab(
            plan,
            args.start,
            args.days,
            args.output,
            args.json,
            consume_predecessor_output=not args.no_consume,
        )
    elif args.command == "calendar":
        return run_calendar(args.operation, args.instant, args.amount)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
