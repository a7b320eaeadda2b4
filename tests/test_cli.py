import json
import os
from pathlib import Path
import subprocess
import sys


def _base_env(tmp_path: Path) -> dict[str, str]:
    env = os.environ.copy()
    env["DATABASE_URL"] = f"sqlite:///{tmp_path / 'cli.db'}"
    env["SOURCE_PATH"] = str(tmp_path / "data" / "beermap.json")
    env["OUTPUT_DIR"] = str(tmp_path / "outputs")
    env["SPARK_MASTER"] = "local[2]"
    return env


def _run_cli(env: dict[str, str], *args: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "beermap.main", "run", *args],
        cwd=Path(__file__).resolve().parents[1],
        env=env,
        check=False,
        capture_output=True,
        text=True,
    )


def _write_source(tmp_path: Path) -> None:
    input_file = tmp_path / "data" / "beermap.json"
    input_file.parent.mkdir(parents=True, exist_ok=True)
    with input_file.open("w", encoding="utf-8") as outfile:
        outfile.write(json.dumps({"properties": {"BEERS": ["ipa", "stout"]}}))
        outfile.write("\n")
        outfile.write(json.dumps({"properties": {"BEERS": ["ipa"]}}))
        outfile.write("\n")
        outfile.write(json.dumps({"bad": "record"}))
        outfile.write("\n")


def test_cli_returns_nonzero_on_session_failure(tmp_path: Path) -> None:
    _write_source(tmp_path)
    env = _base_env(tmp_path)
    env["SPARK_MASTER"] = "cluster"

    proc = _run_cli(env, "--run-key", "daily-2026-02-26")

    assert proc.returncode == 1
    assert "status=failed" in proc.stdout


def test_cli_returns_zero_on_success(tmp_path: Path) -> None:
    _write_source(tmp_path)

    proc = _run_cli(_base_env(tmp_path), "--run-key", "daily-2026-02-27", "--trigger-source", "manual")

    assert proc.returncode == 0
    assert "status=completed" in proc.stdout
    assert "succeeded=4" in proc.stdout
    assert "consistent=True" in proc.stdout
    assert "variant=declarative-sql status=succeeded top=ipa:2,stout:1" in proc.stdout


def test_cli_variant_failures_do_not_fail_the_process(tmp_path: Path) -> None:
    proc = _run_cli(_base_env(tmp_path), "--run-key", "no-input", "--variant", "row-text", "--variant", "declarative-sql")

    assert proc.returncode == 0
    assert "status=completed" in proc.stdout
    assert "failed=2" in proc.stdout
    assert "variant=row-text status=failed" in proc.stdout


def test_cli_rejects_a_repeated_variant(tmp_path: Path) -> None:
    _write_source(tmp_path)

    proc = _run_cli(_base_env(tmp_path), "--run-key", "dup", "--variant", "row-text", "--variant", "row-text")

    assert proc.returncode == 1
    assert "selected more than once: row-text" in proc.stderr
    assert "status=" not in proc.stdout


def test_cli_rejects_a_negative_top_n(tmp_path: Path) -> None:
    _write_source(tmp_path)
    env = _base_env(tmp_path)
    env["TOP_N"] = "-1"

    proc = _run_cli(env, "--run-key", "negative-top")

    assert proc.returncode == 1
    assert "TOP_N must be >= 0" in proc.stderr
