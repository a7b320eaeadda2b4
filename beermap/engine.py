"""Spark execution session.

``ExecutionSession`` owns one ``SparkSession`` for the lifetime of a job run
and exposes the sources the pipelines read from: raw lines as an RDD
(``text_file``), arbitrary Python data (``distribute``) and a DataFrame of
JSON objects (``read_structured``). A session is single-use; once ``stop()``
has run every further call raises ``SessionError``.
"""

from collections.abc import Iterable
from dataclasses import dataclass
import json
import logging
from pathlib import Path
from typing import Any

from pyspark import SparkContext
from pyspark.rdd import RDD
from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.types import StructType

from beermap.errors import SessionError


logger = logging.getLogger(__name__)

MASTER_PREFIXES = ("local", "spark://", "yarn", "k8s://", "mesos://")


@dataclass(frozen=True)
class SessionConfig:
    app_name: str = "beermap"
    master: str = "local[*]"
    default_parallelism: int = 4
    spark_log_level: str = "ERROR"


# RDD functions are module-level so Spark ships them by reference.
def split_lines(file_and_content: tuple[str, bytes]) -> list[bytes]:
    return [line for line in file_and_content[1].splitlines() if line.strip()]


def json_object_text(line: bytes | str) -> list[str]:
    """``[text]`` when the line decodes and parses to a JSON object, else ``[]``."""
    try:
        text = line.decode("utf-8") if isinstance(line, bytes) else line
        record = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return []
    return [text] if isinstance(record, dict) else []


class ExecutionSession:
    def __init__(self, config: SessionConfig | None = None) -> None:
        self.config = config or SessionConfig()
        if not self.config.master.startswith(MASTER_PREFIXES):
            raise SessionError(
                f"unknown Spark master '{self.config.master}', expected one starting with {', '.join(MASTER_PREFIXES)}"
            )
        if self.config.default_parallelism < 1:
            raise SessionError("default_parallelism must be >= 1")

        try:
            self._spark = (
                SparkSession.builder.appName(self.config.app_name)
                .master(self.config.master)
                .config("spark.default.parallelism", str(self.config.default_parallelism))
                .config("spark.sql.shuffle.partitions", str(self.config.default_parallelism))
                .config("spark.ui.enabled", "false")
                .getOrCreate()
            )
            self._spark.sparkContext.setLogLevel(self.config.spark_log_level)
        except Exception as exc:
            raise SessionError(f"could not start Spark session '{self.config.app_name}': {exc}") from exc

        self._stopped = False
        logger.info(
            "execution session started",
            extra={"app_name": self.config.app_name, "master": self.config.master},
        )

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def spark(self) -> SparkSession:
        self._check_active()
        return self._spark

    @property
    def sc(self) -> SparkContext:
        return self.spark.sparkContext

    def text_file(self, path: str | Path) -> RDD:
        """Non-blank lines of ``path`` as undecoded bytes.

        Lines are decoded one at a time by the consumer, so a single invalid
        byte sequence only spoils its own line.
        """
        sc = self.sc
        source = _require_source(path)
        return (
            sc.binaryFiles(source, self.config.default_parallelism)
            .flatMap(split_lines)
            .repartition(self.config.default_parallelism)
        )

    def distribute(self, items: Iterable[Any]) -> RDD:
        return self.sc.parallelize(list(items), self.config.default_parallelism)

    def read_structured(self, path: str | Path, schema: StructType | None = None) -> DataFrame:
        """JSON objects in ``path`` as a DataFrame.

        Lines that are not UTF-8, not JSON, or not objects are dropped and
        counted in one warning.
        """
        lines = self.text_file(path)
        objects = lines.flatMap(json_object_text).cache()
        total, kept = lines.count(), objects.count()
        if total > kept:
            logger.warning("skipped %d lines that are not JSON objects", total - kept, extra={"path": str(path)})

        reader = self.spark.read if schema is None else self.spark.read.schema(schema)
        return reader.json(objects)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        try:
            self._spark.stop()
        except Exception as exc:
            raise SessionError(f"failed to stop Spark session '{self.config.app_name}': {exc}") from exc
        logger.info("execution session stopped", extra={"app_name": self.config.app_name})

    def _check_active(self) -> None:
        if self._stopped:
            raise SessionError("execution session is stopped")


def _require_source(path: str | Path) -> str:
    source = str(path)
    if "://" in source:
        return source
    local = Path(source)
    if not local.exists():
        raise FileNotFoundError(f"input file not found: {source}")
    return str(local.resolve())
