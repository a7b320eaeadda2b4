import json

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from beermap.db_models import JobRun, VariantRun, utc_now
from beermap.schemas import CountEntry, JobOutcome


def get_run_by_key(db: Session, run_key: str) -> JobRun | None:
    stmt = select(JobRun).where(JobRun.run_key == run_key)
    return db.execute(stmt).scalar_one_or_none()


def create_or_get_run(db: Session, *, run_key: str, source_path: str, trigger_source: str) -> tuple[JobRun, bool]:
    run = JobRun(run_key=run_key, source_path=source_path, trigger_source=trigger_source, status="queued")
    db.add(run)
    try:
        db.commit()
    except IntegrityError:
        # Unique run_key enforces idempotent run creation.
        db.rollback()
        existing = get_run_by_key(db, run_key)
        if existing:
            return existing, False
        raise

    db.refresh(run)
    return run, True


def reset_failed_run_state(db: Session, run: JobRun, *, source_path: str) -> None:
    db.execute(delete(VariantRun).where(VariantRun.run_id == run.id))

    run.status = "queued"
    run.source_path = source_path
    run.error = None
    run.completed_at = None
    run.variants_succeeded = 0
    run.variants_failed = 0
    db.commit()


def mark_run_running(db: Session, run: JobRun) -> None:
    run.status = "running"
    run.started_at = utc_now()
    run.error = None
    db.commit()


def mark_run_completed(db: Session, run: JobRun, outcomes: list[JobOutcome]) -> None:
    run.status = "completed"
    run.variants_succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
    run.variants_failed = len(outcomes) - run.variants_succeeded
    run.completed_at = utc_now()
    run.error = None
    db.commit()


def mark_run_failed(db: Session, run: JobRun, *, error: str) -> None:
    run.status = "failed"
    run.error = error
    run.completed_at = utc_now()
    db.commit()


def store_variant_outcomes(db: Session, *, run_id: int, outcomes: list[JobOutcome]) -> None:
    for position, outcome in enumerate(outcomes):
        db.add(
            VariantRun(
                run_id=run_id,
                position=position,
                variant_name=outcome.variant,
                status="succeeded" if outcome.succeeded else "failed",
                duration_ms=outcome.duration_ms,
                error=outcome.error,
                result=_dump_result(outcome),
            )
        )
    db.commit()


def load_variant_outcomes(db: Session, run: JobRun) -> list[JobOutcome]:
    stmt = select(VariantRun).where(VariantRun.run_id == run.id).order_by(VariantRun.position)
    outcomes: list[JobOutcome] = []
    for row in db.execute(stmt).scalars():
        result = None
        if row.result is not None:
            result = tuple(CountEntry(entry["key"], entry["count"]) for entry in json.loads(row.result))
        outcomes.append(JobOutcome(variant=row.variant_name, result=result, error=row.error, duration_ms=row.duration_ms))
    return outcomes


def _dump_result(outcome: JobOutcome) -> str | None:
    if outcome.result is None:
        return None
    return json.dumps([{"key": entry.key, "count": entry.count} for entry in outcome.result])
