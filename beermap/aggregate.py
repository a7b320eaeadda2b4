from collections.abc import Iterable, Mapping
import operator

from pyspark.rdd import RDD

from beermap.schemas import CountEntry, TopNResult


def to_pair(value: str) -> tuple[str, int]:
    return value, 1


def combine(values: Iterable[str]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for key, contribution in map(to_pair, values):
        counts[key] = counts.get(key, 0) + contribution
    return counts


def merge_counts(left: Mapping[str, int], right: Mapping[str, int]) -> dict[str, int]:
    # Summation only, so partial counts merge in any order.
    merged = dict(left)
    for key, count in right.items():
        merged[key] = merged.get(key, 0) + count
    return merged


def count_values(values: RDD) -> dict[str, int]:
    return values.map(to_pair).reduceByKey(operator.add).collectAsMap()


def top_n(counts: Mapping[str, int], n: int) -> TopNResult:
    """Highest counts first; equal counts are ordered by key ascending."""
    if n < 0:
        raise ValueError(f"n must be >= 0, got {n}")
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return tuple(CountEntry(key, count) for key, count in ranked[:n])
