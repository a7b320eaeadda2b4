from dataclasses import dataclass
import logging

import pytest

from beermap.engine import ExecutionSession, SessionConfig
from beermap.errors import SessionError
from beermap.job import JobRunner, compare_outcomes
from beermap.schemas import CountEntry, JobOutcome
from beermap.variants import DEFAULT_VARIANTS


@dataclass(frozen=True)
class FakeVariant:
    name: str
    fail_with: Exception | None = None

    def run(self, session, path, logger):
        if self.fail_with is not None:
            raise self.fail_with
        logger.info("ran %s", self.name)
        return (CountEntry(self.name, 1),)


class CountingSessionFactory:
    def __init__(self) -> None:
        self.sessions: list[ExecutionSession] = []
        self.stops = 0

    def __call__(self) -> ExecutionSession:
        session = ExecutionSession(SessionConfig(master="local[1]", default_parallelism=1))
        original_stop = session.stop

        def stop() -> None:
            self.stops += 1
            original_stop()

        session.stop = stop
        self.sessions.append(session)
        return session


def test_failing_variant_does_not_stop_later_variants(caplog, example_source) -> None:
    factory = CountingSessionFactory()
    variants = [FakeVariant("first"), FakeVariant("second", RuntimeError("boom")), FakeVariant("third")]
    runner = JobRunner(variants, factory, logger=logging.getLogger("tests.job"))

    with caplog.at_level(logging.INFO, logger="tests.job"):
        outcomes = runner.run(example_source)

    assert [outcome.variant for outcome in outcomes] == ["first", "second", "third"]
    assert [outcome.succeeded for outcome in outcomes] == [True, False, True]
    assert "boom" in outcomes[1].error
    assert outcomes[0].result == (CountEntry("first", 1),)

    errors = [record for record in caplog.records if record.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "second" in errors[0].getMessage()
    assert errors[0].exc_info is not None

    messages = [record.getMessage() for record in caplog.records]
    assert messages.index("ran third") < messages.index("execution session torn down")
    assert factory.stops == 1


def test_session_is_stopped_once_when_every_variant_fails(example_source) -> None:
    factory = CountingSessionFactory()
    variants = [FakeVariant(name, ValueError(name)) for name in ("a", "b", "c")]

    outcomes = JobRunner(variants, factory).run(example_source)

    assert not any(outcome.succeeded for outcome in outcomes)
    assert factory.stops == 1
    assert factory.sessions[0].stopped


def test_runner_is_single_use(example_source) -> None:
    runner = JobRunner([FakeVariant("only")], CountingSessionFactory())
    runner.run(example_source)

    assert runner.state == "stopped"
    with pytest.raises(RuntimeError):
        runner.run(example_source)


def test_session_error_from_variant_aborts_after_teardown(example_source) -> None:
    factory = CountingSessionFactory()
    variants = [FakeVariant("first"), FakeVariant("broken", SessionError("lost")), FakeVariant("never")]
    runner = JobRunner(variants, factory)

    with pytest.raises(SessionError):
        runner.run(example_source)

    assert factory.stops == 1
    assert runner.state == "stopped"


def test_session_factory_failure_is_a_session_error(example_source) -> None:
    def broken_factory() -> ExecutionSession:
        raise OSError("no workers available")

    runner = JobRunner([FakeVariant("first")], broken_factory)

    with pytest.raises(SessionError, match="no workers available"):
        runner.run(example_source)
    assert runner.state == "stopped"


def test_real_variants_run_against_one_session(example_source) -> None:
    factory = CountingSessionFactory()

    outcomes = JobRunner(DEFAULT_VARIANTS, factory).run(example_source)

    assert len(factory.sessions) == 1
    assert all(outcome.succeeded for outcome in outcomes)
    assert compare_outcomes(outcomes) == []


def test_compare_outcomes_flags_disagreeing_variants() -> None:
    outcomes = [
        JobOutcome("a", result=(CountEntry("ipa", 2),)),
        JobOutcome("b", error="failed"),
        JobOutcome("c", result=(CountEntry("ipa", 3),)),
        JobOutcome("d", result=(CountEntry("ipa", 2),)),
    ]

    assert compare_outcomes(outcomes) == ["c"]
    assert compare_outcomes([JobOutcome("x", error="failed")]) == []
