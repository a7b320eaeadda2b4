import json
from pathlib import Path

from beermap.schemas import JobOutcome


def outcome_payload(outcome: JobOutcome) -> dict[str, object]:
    return {
        "variant": outcome.variant,
        "status": "succeeded" if outcome.succeeded else "failed",
        "duration_ms": outcome.duration_ms,
        "error": outcome.error,
        "top": [{"key": entry.key, "count": entry.count} for entry in outcome.result or ()],
    }


def build_report(
    *,
    run_key: str,
    source_path: str,
    status: str,
    outcomes: list[JobOutcome],
    inconsistent_variants: list[str],
    error: str | None = None,
) -> dict[str, object]:
    return {
        "run_key": run_key,
        "source_path": source_path,
        "status": status,
        "error": error,
        "consistent": not inconsistent_variants,
        "inconsistent_variants": inconsistent_variants,
        "variants": [outcome_payload(outcome) for outcome in outcomes],
    }


def write_json(path: Path, payload: dict[str, object]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as outfile:
        json.dump(payload, outfile, indent=2, sort_keys=True)
        outfile.write("\n")
