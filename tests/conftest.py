from collections.abc import Generator
import json
from pathlib import Path

import pytest

from beermap.config import Settings
from beermap.database import build_session_factory
from beermap.engine import ExecutionSession, SessionConfig
from beermap.pipeline import PipelineRunner


EXAMPLE_LINES = [
    json.dumps({"properties": {"BEERS": ["ipa", "stout"]}}),
    json.dumps({"properties": {"BEERS": ["ipa"]}}),
    json.dumps({"bad": "record"}),
]


def write_lines(path: Path, lines: list[str | bytes]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as outfile:
        for line in lines:
            outfile.write(line if isinstance(line, bytes) else line.encode("utf-8"))
            outfile.write(b"\n")
    return path


@pytest.fixture()
def temp_workspace(tmp_path: Path) -> Path:
    (tmp_path / "data").mkdir(parents=True, exist_ok=True)
    (tmp_path / "outputs").mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest.fixture()
def write_source(temp_workspace: Path):
    def _write(lines: list[str | bytes], name: str = "beermap.json") -> Path:
        return write_lines(temp_workspace / "data" / name, lines)

    return _write


@pytest.fixture()
def example_source(write_source) -> Path:
    return write_source(EXAMPLE_LINES)


@pytest.fixture()
def test_settings(temp_workspace: Path) -> Settings:
    return Settings(
        app_name="beermap",
        database_url=f"sqlite:///{temp_workspace / 'test.db'}",
        log_level="INFO",
        source_path=str(temp_workspace / "data" / "beermap.json"),
        output_dir=str(temp_workspace / "outputs"),
        top_n=10,
        default_parallelism=2,
        spark_master="local[2]",
        spark_log_level="ERROR",
        schedule_hour_utc=2,
        schedule_minute_utc=0,
    )


@pytest.fixture()
def session() -> Generator[ExecutionSession, None, None]:
    session = ExecutionSession(SessionConfig(master="local[2]", default_parallelism=3))
    yield session
    session.stop()


@pytest.fixture()
def runner(test_settings: Settings) -> Generator[PipelineRunner, None, None]:
    session_factory = build_session_factory(test_settings.database_url)
    yield PipelineRunner(test_settings, session_factory)
