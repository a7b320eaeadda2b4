"""The pipeline variants that compute the BEERS top-N.

Two families share one interface, ``run(session, path, logger) -> TopNResult``:
``RowBased`` extracts per record and map-reduces over an RDD,
``Declarative`` explodes the array in a DataFrame and leaves grouping,
ordering and limiting to Spark SQL. Both order ties by key so their results
are directly comparable.
"""

from dataclasses import dataclass, replace
from functools import partial
import logging
from operator import methodcaller
from pathlib import Path
from typing import Literal

from pyspark.sql import DataFrame
from pyspark.sql import functions as F
from pyspark.sql.types import ArrayType, StringType, StructField, StructType

from beermap.aggregate import count_values, top_n
from beermap.engine import ExecutionSession
from beermap.extract import line_values, row_values
from beermap.schemas import CountEntry, TopNResult


DEFAULT_TOP_N = 10
BEERS_COLUMN = "properties.BEERS"

BEERMAP_SCHEMA = StructType(
    [
        StructField(
            "properties",
            StructType([StructField("BEERS", ArrayType(StringType(), containsNull=True), nullable=True)]),
            nullable=True,
        )
    ]
)

TOP_BEERS_SQL = """
SELECT count(*) AS count, beer
FROM {table}
LATERAL VIEW explode(properties.BEERS) beers AS beer
WHERE beer IS NOT NULL
GROUP BY beer
ORDER BY count(*) DESC, beer ASC
LIMIT {limit}
"""

row_as_dict = methodcaller("asDict", recursive=True)


def _check_top(top: int) -> None:
    if top < 0:
        raise ValueError(f"top must be >= 0, got {top}")


@dataclass(frozen=True)
class RowBased:
    source: Literal["text", "structured"] = "text"
    top: int = DEFAULT_TOP_N

    def __post_init__(self) -> None:
        _check_top(self.top)

    @property
    def name(self) -> str:
        return f"row-{self.source}"

    def run(self, session: ExecutionSession, path: str | Path, logger: logging.Logger) -> TopNResult:
        logger.info("running %s", self.name, extra={"source_path": str(path)})
        if self.source == "text":
            values = session.text_file(path).flatMap(partial(line_values, logger=logger))
        elif self.source == "structured":
            rows = session.read_structured(path, BEERMAP_SCHEMA).rdd.map(row_as_dict)
            values = rows.flatMap(partial(row_values, logger=logger))
        else:
            raise ValueError(f"unknown row source: {self.source}")

        result = top_n(count_values(values), self.top)
        report(logger, self.name, result)
        return result


@dataclass(frozen=True)
class Declarative:
    style: Literal["fluent", "sql"] = "fluent"
    top: int = DEFAULT_TOP_N

    def __post_init__(self) -> None:
        _check_top(self.top)

    @property
    def name(self) -> str:
        return f"declarative-{self.style}"

    def run(self, session: ExecutionSession, path: str | Path, logger: logging.Logger) -> TopNResult:
        logger.info("running %s", self.name, extra={"source_path": str(path)})
        beer_map = session.read_structured(path, BEERMAP_SCHEMA)
        if self.style == "fluent":
            counts = self._fluent(beer_map)
        elif self.style == "sql":
            beer_map.createOrReplaceTempView("beer_map")
            counts = session.spark.sql(TOP_BEERS_SQL.format(table="beer_map", limit=int(self.top)))
        else:
            raise ValueError(f"unknown declarative style: {self.style}")

        result = tuple(CountEntry(row["beer"], int(row["count"])) for row in counts.collect())
        report(logger, self.name, result)
        return result

    def _fluent(self, beer_map: DataFrame) -> DataFrame:
        beers = beer_map.select(F.explode(F.col(BEERS_COLUMN)).alias("beer")).where(F.col("beer").isNotNull())
        return beers.groupBy("beer").count().orderBy(F.desc("count"), F.asc("beer")).limit(self.top)


Variant = RowBased | Declarative

DEFAULT_VARIANTS: tuple[Variant, ...] = (
    RowBased("text"),
    RowBased("structured"),
    Declarative("fluent"),
    Declarative("sql"),
)


def select_variants(names: list[str] | None, top: int = DEFAULT_TOP_N) -> list[Variant]:
    available = {variant.name: variant for variant in DEFAULT_VARIANTS}
    chosen = list(available) if not names else names
    unknown = [name for name in chosen if name not in available]
    if unknown:
        raise ValueError(f"unknown variant(s): {', '.join(unknown)}; expected {', '.join(available)}")
    duplicates = sorted({name for name in chosen if chosen.count(name) > 1})
    if duplicates:
        raise ValueError(f"variant(s) selected more than once: {', '.join(duplicates)}")
    return [replace(available[name], top=top) for name in chosen]


def report(logger: logging.Logger, variant: str, result: TopNResult) -> None:
    logger.info("top %d %s result:", len(result), variant)
    for entry in result:
        logger.info("%s : %d", entry.key, entry.count)
