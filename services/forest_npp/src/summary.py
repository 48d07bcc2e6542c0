"""
Aggregate queries over the enriched NPP table.

These feed the narrative text of the report. Each takes the enriched
DataFrame produced by transformer.enrich and returns plain Python
values or a small DataFrame.
"""
import logging
from typing import Any, Dict, List, Optional

from pyspark.sql import DataFrame
from pyspark.sql import functions as F
from pyspark.sql.window import Window

logger = logging.getLogger(__name__)


def summarize_npp_density(df: DataFrame) -> Dict[str, Any]:
    """
    Overall statistics of npp_density.

    Returns:
        Dictionary with forest_count, row_count, first_year, last_year and
        mean / median / stddev / min / max of npp_density
    """
    row = df.agg(
        F.countDistinct("forest_id").alias("forest_count"),
        F.count("*").alias("row_count"),
        F.min("year").alias("first_year"),
        F.max("year").alias("last_year"),
        F.mean("npp_density").alias("density_mean"),
        F.expr("percentile_approx(npp_density, 0.5)").alias("density_median"),
        F.stddev("npp_density").alias("density_stddev"),
        F.min("npp_density").alias("density_min"),
        F.max("npp_density").alias("density_max"),
    ).collect()[0]

    stats = row.asDict()
    logger.info(
        f"Density summary: {stats['forest_count']} forests, "
        f"{stats['row_count']} forest-years"
    )
    return stats


def negative_change_by_year(df: DataFrame) -> DataFrame:
    """
    Share of forests with a negative year-over-year change, per year.

    Only forests with a defined npp_change count toward the denominator,
    so the first year of the record has no row.

    Returns:
        DataFrame with columns: year, forests_with_change, forests_negative,
        negative_share
    """
    defined = df.filter(F.col("npp_change").isNotNull())
    return (
        defined.groupBy("year")
        .agg(
            F.count("*").alias("forests_with_change"),
            F.sum(F.when(F.col("npp_change") < 0, 1).otherwise(0)).alias("forests_negative"),
        )
        .withColumn(
            "negative_share",
            F.col("forests_negative") / F.col("forests_with_change")
        )
        .orderBy("year")
    )


def share_negative_change(df: DataFrame, year: int) -> Optional[float]:
    """
    Fraction of forests whose NPP fell from the previous year in `year`.

    Returns None when no forest has a defined change for that year.
    """
    rows = negative_change_by_year(df).filter(F.col("year") == year).collect()
    if not rows:
        return None
    return rows[0]["negative_share"]


def rank_forests_by_final_change(df: DataFrame) -> DataFrame:
    """
    One row per forest ranked by final_npp_change_pct, largest gain first.

    Forests with an undefined final change sort last.

    Returns:
        DataFrame with columns: forest_id, name_short, region_label,
        final_npp_change_pct, rank
    """
    forests = df.select(
        "forest_id", "name_short", "region_label", "final_npp_change_pct"
    ).dropDuplicates(["forest_id"])

    # Unpartitioned window; the table holds one row per forest
    ranking = Window.orderBy(
        F.col("final_npp_change_pct").desc_nulls_last(),
        F.col("forest_id")
    )
    ranked = forests.withColumn("rank", F.row_number().over(ranking))

    return ranked.orderBy("rank")


def region_change_summary(df: DataFrame) -> DataFrame:
    """
    Final change per region.

    Returns:
        DataFrame with columns: region, region_label, forest_count,
        mean_final_change_pct, forests_declining
    """
    forests = df.select(
        "forest_id", "region", "region_label", "final_npp_change_pct"
    ).dropDuplicates(["forest_id"])

    return (
        forests.groupBy("region", "region_label")
        .agg(
            F.count("*").alias("forest_count"),
            F.mean("final_npp_change_pct").alias("mean_final_change_pct"),
            F.sum(
                F.when(F.col("final_npp_change_pct") < 0, 1).otherwise(0)
            ).alias("forests_declining"),
        )
        .orderBy("region")
    )


def density_by_year(df: DataFrame) -> DataFrame:
    """Mean and median npp_density per year."""
    return (
        df.groupBy("year")
        .agg(
            F.mean("npp_density").alias("density_mean"),
            F.expr("percentile_approx(npp_density, 0.5)").alias("density_median"),
            F.count("*").alias("forest_count"),
        )
        .orderBy("year")
    )


def top_and_bottom_forests(
    ranked: DataFrame,
    n: int = 5
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Largest gains and largest declines from rank_forests_by_final_change.

    "top" holds up to n forests with a positive final change, largest first;
    "bottom" holds up to n forests with a negative one, steepest first.
    Forests with no change or an undefined change appear in neither.
    """
    change = F.col("final_npp_change_pct")
    gains = ranked.filter(change > 0).orderBy("rank").limit(n).collect()
    declines = ranked.filter(change < 0).orderBy(F.desc("rank")).limit(n).collect()
    return {
        "top": [row.asDict() for row in gains],
        "bottom": [row.asDict() for row in declines],
    }
