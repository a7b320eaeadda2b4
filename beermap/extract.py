"""Extraction of ``properties.BEERS`` values from single records.

Extraction never raises: every failure is returned as an ``Extraction`` with
an ``error`` and collapsed to an empty list (plus one log entry) by the
``*_values`` helpers that the pipelines call per record.
"""

from collections.abc import Mapping
from dataclasses import dataclass
import json
import logging

from beermap.errors import ExtractionError, ParseError, PathError


logger = logging.getLogger(__name__)

BEERS_PATH = ("properties", "BEERS")
PREVIEW_LENGTH = 200


@dataclass(frozen=True)
class Extraction:
    values: tuple[str, ...] = ()
    error: ExtractionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def extract_line(line: bytes | str) -> Extraction:
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as exc:
            return Extraction(error=ParseError(f"invalid UTF-8: {exc.reason} at byte {exc.start}"))
    try:
        record = json.loads(line)
    except json.JSONDecodeError as exc:
        return Extraction(error=ParseError(f"invalid JSON: {exc.msg} at char {exc.pos}"))
    return extract_row(record)


def extract_row(row: object) -> Extraction:
    node = row
    walked: list[str] = []
    for name in BEERS_PATH:
        if not isinstance(node, Mapping):
            where = ".".join(walked) or "record"
            return Extraction(error=PathError(f"{where} is not an object"))
        if name not in node:
            return Extraction(error=PathError(f"missing field '{'.'.join([*walked, name])}'"))
        node = node[name]
        walked.append(name)

    if not isinstance(node, list):
        return Extraction(error=PathError(f"{'.'.join(BEERS_PATH)} is not an array"))

    values: list[str] = []
    for index, element in enumerate(node):
        value = coerce_value(element)
        if value is None:
            return Extraction(
                error=PathError(f"{'.'.join(BEERS_PATH)}[{index}] is not a string-coercible value")
            )
        values.append(value)
    return Extraction(values=tuple(values))


def coerce_value(element: object) -> str | None:
    if isinstance(element, str):
        return element
    # bool before int: JSON text keeps true/false lowercase.
    if isinstance(element, (bool, int, float)):
        return json.dumps(element)
    return None


def line_values(line: bytes | str, logger: logging.Logger = logger) -> list[str]:
    return values_or_empty(extract_line(line), line, logger)


def row_values(row: object, logger: logging.Logger = logger) -> list[str]:
    return values_or_empty(extract_row(row), row, logger)


def values_or_empty(extraction: Extraction, record: object, logger: logging.Logger = logger) -> list[str]:
    if extraction.ok:
        return list(extraction.values)
    logger.error(
        "record skipped: %s: %s",
        extraction.error,
        preview(record),
        extra={"error_type": type(extraction.error).__name__},
    )
    return []


def preview(record: object) -> str:
    if isinstance(record, bytes):
        text = record.decode("utf-8", errors="backslashreplace")
    else:
        text = record if isinstance(record, str) else repr(record)
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "..."
    return text
