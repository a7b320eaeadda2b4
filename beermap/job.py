from collections.abc import Callable, Iterable
import logging
from pathlib import Path
import time
from typing import Protocol

from beermap.engine import ExecutionSession
from beermap.errors import SessionError, VariantError
from beermap.schemas import JobOutcome, TopNResult


class PipelineVariant(Protocol):
    @property
    def name(self) -> str: ...

    def run(self, session: ExecutionSession, path: str | Path, logger: logging.Logger) -> TopNResult: ...


class JobRunner:
    """Runs every variant once against one source, then stops the session.

    A failing variant is logged and recorded as a failed ``JobOutcome``; the
    remaining variants still run. Only ``SessionError`` aborts the run, and the
    session is stopped exactly once either way.
    """

    def __init__(
        self,
        variants: Iterable[PipelineVariant],
        session_factory: Callable[[], ExecutionSession],
        logger: logging.Logger | None = None,
    ) -> None:
        self.variants = tuple(variants)
        self.session_factory = session_factory
        self.logger = logger or logging.getLogger(__name__)
        self.state = "idle"

    def run(self, source_path: str | Path) -> list[JobOutcome]:
        if self.state != "idle":
            raise RuntimeError(f"job runner is {self.state}; runners are single-use")
        self.state = "running"

        session: ExecutionSession | None = None
        outcomes: list[JobOutcome] = []
        try:
            session = self._start_session()
            for variant in self.variants:
                outcomes.append(self._run_variant(variant, session, source_path))
        finally:
            self.state = "stopped"
            self._teardown(session)
        return outcomes

    def _start_session(self) -> ExecutionSession:
        try:
            return self.session_factory()
        except SessionError:
            raise
        except Exception as exc:
            raise SessionError(f"could not start execution session: {exc}") from exc

    def _run_variant(self, variant: PipelineVariant, session: ExecutionSession, source_path: str | Path) -> JobOutcome:
        started = time.perf_counter()
        try:
            result = variant.run(session, source_path, self.logger)
        except SessionError:
            raise
        except Exception as exc:
            error = VariantError(variant.name, exc)
            self.logger.exception("error during job variant %s", variant.name, extra={"variant": variant.name})
            return JobOutcome(variant=variant.name, error=str(error), duration_ms=_elapsed_ms(started))
        return JobOutcome(variant=variant.name, result=result, duration_ms=_elapsed_ms(started))

    def _teardown(self, session: ExecutionSession | None) -> None:
        if session is None:
            self.logger.warning("no execution session to stop")
            return
        session.stop()
        self.logger.info("execution session torn down")


def compare_outcomes(outcomes: list[JobOutcome]) -> list[str]:
    """Names of successful variants whose result differs from the first successful one."""
    succeeded = [outcome for outcome in outcomes if outcome.succeeded]
    if not succeeded:
        return []
    reference = {(entry.key, entry.count) for entry in succeeded[0].result or ()}
    return [
        outcome.variant
        for outcome in succeeded[1:]
        if {(entry.key, entry.count) for entry in outcome.result or ()} != reference
    ]


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
