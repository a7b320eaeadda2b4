import argparse
from datetime import UTC, datetime
import logging

from beermap.config import get_settings
from beermap.database import build_session_factory
from beermap.pipeline import PipelineRunner
from beermap.scheduler import start_scheduler
from beermap.variants import DEFAULT_VARIANTS, select_variants


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Count BEERS values with every pipeline variant")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="run every variant once against the source")
    run_parser.add_argument("--source", required=False, help="JSON-lines dataset (defaults to SOURCE_PATH)")
    run_parser.add_argument("--run-key", required=False, help="Idempotency key for this run")
    run_parser.add_argument(
        "--trigger-source",
        default="manual",
        choices=["manual", "scheduled"],
        help="Metadata label for how this run was triggered",
    )
    run_parser.add_argument(
        "--variant",
        action="append",
        dest="variants",
        choices=[variant.name for variant in DEFAULT_VARIANTS],
        help="Run only this variant; repeat to run several (default: all, in order)",
    )

    schedule_parser = subparsers.add_parser("schedule", help="start daily scheduler")
    schedule_parser.add_argument("--run-now", action="store_true", help="also run once immediately")

    return parser.parse_args()


def main() -> None:
    args = parse_args()
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    session_factory = build_session_factory(settings.database_url)
    if args.command == "schedule":
        start_scheduler(settings, session_factory, run_now=args.run_now)
        return

    run_key = args.run_key or f"{args.trigger_source}-{datetime.now(UTC):%Y%m%dT%H%M%S}"
    try:
        variants = select_variants(args.variants, top=settings.top_n)
    except ValueError as exc:
        raise SystemExit(f"error: {exc}") from exc

    runner = PipelineRunner(settings, session_factory)
    result = runner.run(
        run_key=run_key,
        source_path=args.source,
        trigger_source=args.trigger_source,
        variants=variants,
    )

    print(
        "run_id={run_id} run_key={run_key} trigger={trigger} status={status} succeeded={succeeded} failed={failed} consistent={consistent} reused={reused} report={report}".format(
            run_id=result.run_id,
            run_key=result.run_key,
            trigger=result.trigger_source,
            status=result.status,
            succeeded=result.succeeded_variants,
            failed=result.failed_variants,
            consistent=not result.inconsistent_variants,
            reused=result.reused_existing_run,
            report=result.report_path,
        )
    )
    for outcome in result.outcomes:
        if outcome.succeeded:
            top = ",".join(f"{entry.key}:{entry.count}" for entry in outcome.result or ())
            print(f"variant={outcome.variant} status=succeeded top={top}")
        else:
            print(f"variant={outcome.variant} status=failed error={outcome.error}")
    if result.status == "failed":
        raise SystemExit(1)


if __name__ == "__main__":
    main()
