"""
NPP time-series transformer.

Takes the normalized forest-year table and derives per-forest change
metrics ordered by year. Undefined ratios (no prior year, zero
denominator, single-year forests) are NULL, never 0 or infinity.
"""
import logging
from typing import Iterable, List, Optional

from pyspark.sql import DataFrame
from pyspark.sql import functions as F
from pyspark.sql.window import Window

from .loader import NORMALIZED_COLUMNS, MalformedRecordError

logger = logging.getLogger(__name__)


DEFAULT_ALLOWED_REGIONS = (1, 2, 3, 4, 5)

# Fields computed by derive_group_metrics
METRIC_COLUMNS = [
    "npp_change",
    "npp_change_pct",
    "npp_change_first",
    "npp_change_first_pct",
    "final_npp_change_pct",
]

# Presentation annotations computed by annotate_labels
LABEL_COLUMNS = ["last_name_short"]

ENRICHED_COLUMNS = NORMALIZED_COLUMNS + METRIC_COLUMNS + LABEL_COLUMNS

OUTPUT_ORDER = ["region", "forest_id", "year"]


def _ratio(numerator, denominator):
    """numerator / denominator, NULL when either is NULL or the denominator is 0."""
    return F.when(
        numerator.isNotNull() & denominator.isNotNull() & (denominator != 0),
        numerator / denominator
    )


def filter_regions(
    df: DataFrame,
    allowed: Optional[Iterable[int]] = None
) -> DataFrame:
    """
    Keep only forest-years in the allowed regions.

    Regions in the allowed set that are absent from the data are not an error.
    """
    allowed = sorted(set(allowed if allowed is not None else DEFAULT_ALLOWED_REGIONS))
    logger.info(f"Filtering to regions {allowed}")
    return df.filter(F.col("region").isin(allowed))


def validate_forest_consistency(df: DataFrame) -> None:
    """
    Check the per-forest invariants.

    Every forest_id must map to one region and one name_short, and
    must have at most one row per year.

    Raises:
        MalformedRecordError: If any forest violates an invariant
    """
    per_forest = df.groupBy("forest_id").agg(
        F.countDistinct("region").alias("region_count"),
        F.countDistinct("name_short").alias("name_count"),
        F.count("*").alias("row_count"),
        F.countDistinct("year").alias("year_count"),
    )

    conflicts = per_forest.filter(
        (F.col("region_count") > 1) |
        (F.col("name_count") > 1) |
        (F.col("row_count") != F.col("year_count"))
    ).orderBy("forest_id").collect()

    if not conflicts:
        return

    problems = []
    for row in conflicts:
        if row["region_count"] > 1:
            problems.append(f"{row['forest_id']}: {row['region_count']} regions")
        if row["name_count"] > 1:
            problems.append(f"{row['forest_id']}: {row['name_count']} names")
        if row["row_count"] != row["year_count"]:
            problems.append(f"{row['forest_id']}: duplicate years")

    raise MalformedRecordError(
        f"{len(conflicts)} forest(s) violate per-forest invariants: {problems}"
    )


def derive_group_metrics(df: DataFrame) -> DataFrame:
    """
    Derive year-over-year and since-first-year change metrics per forest.

    Each forest is ordered by year ascending. The first row of a forest
    has no prior year, so npp_change and npp_change_pct are NULL there.
    A forest with a single year gets NULL for every derived field.

    final_npp_change_pct is computed in two passes: the terminal
    npp_change_first_pct of each forest is selected, then joined back
    onto every row of that forest.

    Args:
        df: Normalized forest-year DataFrame

    Returns:
        DataFrame with METRIC_COLUMNS added

    Raises:
        MalformedRecordError: If per-forest invariants are violated
    """
    df = df.drop(*[c for c in METRIC_COLUMNS + LABEL_COLUMNS if c in df.columns])

    validate_forest_consistency(df)

    by_year = Window.partitionBy("forest_id").orderBy("year")
    whole_forest = by_year.rowsBetween(
        Window.unboundedPreceding, Window.unboundedFollowing
    )

    prev_npp = F.lag("npp_billions").over(by_year)
    first_npp = F.first("npp_billions").over(whole_forest)
    forest_size = F.count("*").over(whole_forest)

    df = df.withColumn("_prev_npp", prev_npp)
    df = df.withColumn("_first_npp", first_npp)
    df = df.withColumn("_forest_size", forest_size)

    df = df.withColumn("npp_change", F.col("npp_billions") - F.col("_prev_npp"))
    df = df.withColumn("npp_change_pct", _ratio(F.col("npp_change"), F.col("_prev_npp")))

    df = df.withColumn(
        "npp_change_first",
        F.when(
            F.col("_forest_size") > 1,
            F.col("npp_billions") - F.col("_first_npp")
        )
    )
    df = df.withColumn(
        "npp_change_first_pct",
        _ratio(F.col("npp_change_first"), F.col("_first_npp"))
    )

    # Pass 1: terminal value per forest
    latest_first = Window.partitionBy("forest_id").orderBy(F.col("year").desc())
    terminal = (
        df.withColumn("_rank", F.row_number().over(latest_first))
        .filter(F.col("_rank") == 1)
        .select(
            "forest_id",
            F.col("npp_change_first_pct").alias("final_npp_change_pct")
        )
    )

    # Pass 2: broadcast onto every row of the forest
    df = df.join(terminal, on="forest_id", how="left")

    return df.drop("_prev_npp", "_first_npp", "_forest_size")


def annotate_labels(df: DataFrame) -> DataFrame:
    """
    Add last_name_short: name_short on each forest's latest year, "" elsewhere.

    This is a chart label placement hint and is kept out of the metrics.
    """
    last_year = F.max("year").over(Window.partitionBy("forest_id"))
    return df.withColumn(
        "last_name_short",
        F.when(F.col("year") == last_year, F.col("name_short")).otherwise(F.lit(""))
    )


def year_range_breaks(start: int, end: int, step: int = 2) -> List[int]:
    """Years from start to end (inclusive bound) spaced by step."""
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")
    return list(range(start, end + 1, step))


def year_breaks(df: DataFrame, step: int = 2) -> List[int]:
    """
    Axis breaks from the earliest to the latest year in the table.

    Starts at min(year); the last break is <= max(year).
    Returns an empty list for an empty table.
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")

    bounds = df.agg(
        F.min("year").alias("min_year"),
        F.max("year").alias("max_year")
    ).collect()[0]

    if bounds["min_year"] is None:
        return []

    return year_range_breaks(bounds["min_year"], bounds["max_year"], step)


def enrich(
    df: DataFrame,
    allowed_regions: Optional[Iterable[int]] = None
) -> DataFrame:
    """
    Full transformation: region filter, change metrics, labels.

    Per-forest invariants are checked on the unfiltered table so a forest
    split across an allowed and an excluded region is still rejected.
    The result is explicitly sorted by region, forest_id, year.
    """
    logger.info("Starting NPP enrichment")

    validate_forest_consistency(df)
    df = filter_regions(df, allowed_regions)
    df = derive_group_metrics(df)
    df = annotate_labels(df)
    df = df.select(*ENRICHED_COLUMNS).orderBy(*OUTPUT_ORDER)

    logger.info("NPP enrichment complete")
    return df
