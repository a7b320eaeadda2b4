import logging
from pathlib import Path

from sqlalchemy.orm import Session, sessionmaker

from beermap.config import Settings
from beermap.db_models import JobRun
from beermap.engine import ExecutionSession, SessionConfig
from beermap.job import JobRunner, compare_outcomes
from beermap.report import build_report, write_json
from beermap.run_store import (
    create_or_get_run,
    load_variant_outcomes,
    mark_run_completed,
    mark_run_failed,
    mark_run_running,
    reset_failed_run_state,
    store_variant_outcomes,
)
from beermap.schemas import JobOutcome, JobResult
from beermap.variants import Variant, select_variants


logger = logging.getLogger(__name__)


class PipelineRunner:
    def __init__(self, settings: Settings, session_factory: sessionmaker[Session]) -> None:
        self.settings = settings
        self.session_factory = session_factory

    def run(
        self,
        *,
        run_key: str,
        source_path: str | None = None,
        trigger_source: str = "manual",
        variants: list[Variant] | None = None,
    ) -> JobResult:
        source_path = source_path or self.settings.source_path
        if variants is None:
            variants = select_variants(None, top=self.settings.top_n)

        with self.session_factory() as db:
            run, created = create_or_get_run(
                db,
                run_key=run_key,
                source_path=source_path,
                trigger_source=trigger_source,
            )
            if not created:
                if run.status == "failed":
                    # Keep the same run key and clear prior failed state.
                    logger.info("retrying previously failed run", extra={"run_key": run_key})
                    reset_failed_run_state(db, run, source_path=source_path)
                else:
                    logger.info("idempotent run reused", extra={"run_key": run_key, "status": run.status})
                    outcomes = load_variant_outcomes(db, run)
                    return self._result_from_run(run, outcomes, reused_existing_run=True)

            mark_run_running(db, run)

            job = JobRunner(variants, self._new_session, logger=logging.getLogger("beermap.job"))
            try:
                outcomes = job.run(source_path)
                store_variant_outcomes(db, run_id=run.id, outcomes=outcomes)
                mark_run_completed(db, run, outcomes)

                inconsistent = compare_outcomes(outcomes)
                if inconsistent:
                    logger.warning(
                        "variants disagree on the top-%d result",
                        self.settings.top_n,
                        extra={"run_key": run_key, "inconsistent_variants": inconsistent},
                    )
                self._publish_report(run, outcomes)
            except Exception as exc:
                # A failed ledger write leaves the session unusable until rolled back.
                db.rollback()
                mark_run_failed(db, run, error=str(exc))
                logger.exception("job run failed", extra={"run_key": run_key})
                self._publish_report(run, [], error=str(exc))
                return self._result_from_run(run, [], reused_existing_run=False)

            return self._result_from_run(run, outcomes, reused_existing_run=False)

    def _new_session(self) -> ExecutionSession:
        return ExecutionSession(
            SessionConfig(
                app_name=self.settings.app_name,
                master=self.settings.spark_master,
                default_parallelism=self.settings.default_parallelism,
                spark_log_level=self.settings.spark_log_level,
            )
        )

    def _publish_report(self, run: JobRun, outcomes: list[JobOutcome], error: str | None = None) -> None:
        write_json(
            Path(self._report_path(run.run_key)),
            build_report(
                run_key=run.run_key,
                source_path=run.source_path,
                status=run.status,
                outcomes=outcomes,
                inconsistent_variants=compare_outcomes(outcomes),
                error=error,
            ),
        )

    def _report_path(self, run_key: str) -> str:
        return str(Path(self.settings.output_dir) / "reports" / f"{run_key}.json")

    def _result_from_run(self, run: JobRun, outcomes: list[JobOutcome], reused_existing_run: bool) -> JobResult:
        return JobResult(
            run_id=run.id,
            run_key=run.run_key,
            trigger_source=run.trigger_source,
            source_path=run.source_path,
            status=run.status,
            outcomes=outcomes,
            inconsistent_variants=compare_outcomes(outcomes),
            report_path=self._report_path(run.run_key),
            reused_existing_run=reused_existing_run,
        )
