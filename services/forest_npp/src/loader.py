"""
Forest NPP table loader

Reads the upstream per-forest, per-year NPP export and normalizes it
into typed columns with unit conversions applied.
"""
import logging
from typing import Dict, List, Optional

from pyspark.sql import Column, DataFrame, SparkSession
from pyspark.sql import functions as F

logger = logging.getLogger(__name__)


# Unit conversions
NPP_BILLIONS_DIVISOR = 1e9
NPP_MILLIONS_DIVISOR = 1e6
ACRES_PER_SQ_KM = 247

# Columns produced by load_and_normalize, in output order
NORMALIZED_COLUMNS = [
    "region",
    "region_label",
    "forest_id",
    "forest_name",
    "name_short",
    "year",
    "npp_total",
    "npp_billions",
    "area_acres",
    "area_sq_km",
    "npp_density",
]

# Number of offending rows quoted in a MalformedRecordError message
MAX_REPORTED_ROWS = 5

ON_MALFORMED_MODES = ("fail", "drop")


class MalformedRecordError(ValueError):
    """Raised when input rows cannot be parsed or violate per-forest invariants."""


def shorten_forest_name(name_col) -> Column:
    """
    Build the display name for a forest.

    Strips a trailing "National Forest" / "National Forests", trims
    whitespace and writes " and " as " & ".
    """
    short = F.regexp_replace(name_col, r"(?i)\s*National Forests?\s*$", "")
    short = F.trim(short)
    return F.regexp_replace(short, " and ", " & ")


def _try_cast(column: str, data_type: str) -> Column:
    # try_cast returns NULL instead of failing under ANSI mode
    return F.expr(f"try_cast(`{column}` AS {data_type})")


def _non_finite(column: str) -> Column:
    # try_cast accepts "NaN" and "Infinity" as doubles
    col = F.col(column)
    return F.isnan(col) | col.isin(float("inf"), float("-inf"))


class NPPLoader:
    """Loader for the forest NPP export"""

    def __init__(
        self,
        spark: SparkSession,
        source_columns: Dict[str, str],
        on_malformed: str = "fail"
    ):
        """
        Initialize loader

        Args:
            spark: SparkSession instance
            source_columns: Mapping of logical field -> source column name
                (keys: index, region, forest_id, forest_name, npp_total, area_acres)
            on_malformed: 'fail' to reject the whole load, 'drop' to discard bad rows
        """
        if on_malformed not in ON_MALFORMED_MODES:
            raise ValueError(
                f"Unknown on_malformed mode: {on_malformed}. "
                f"Must be one of {list(ON_MALFORMED_MODES)}"
            )

        self.spark = spark
        self.source_columns = dict(source_columns)
        self.on_malformed = on_malformed
        logger.info(f"Initialized NPPLoader, on_malformed={on_malformed}")

    def read_csv(self, path: str) -> DataFrame:
        """
        Read the upstream CSV export

        All columns are read as strings so numeric parsing happens
        explicitly in load_and_normalize.

        Args:
            path: Local or remote path to the CSV file

        Returns:
            Raw DataFrame
        """
        logger.info(f"Reading NPP export: {path}")

        df = self.spark.read.csv(
            path,
            header=True,
            inferSchema=False,
            ignoreLeadingWhiteSpace=True,
            ignoreTrailingWhiteSpace=True
        )

        logger.info(f"Read {len(df.columns)} columns from {path}")
        return df

    def load_and_normalize(self, raw_df: DataFrame) -> DataFrame:
        """
        Parse raw rows into the normalized forest-year table

        Args:
            raw_df: Raw DataFrame with the source columns (extra columns allowed)

        Returns:
            DataFrame with NORMALIZED_COLUMNS

        Raises:
            ValueError: If a required source column is missing
            MalformedRecordError: If rows are malformed and on_malformed='fail'
        """
        self._check_columns(raw_df)

        df = self._parse_fields(raw_df)
        df = df.withColumn("_malformed_reason", self._malformed_reason())

        bad_rows = df.filter(F.col("_malformed_reason").isNotNull())
        bad_count = bad_rows.count()

        if bad_count > 0:
            if self.on_malformed == "fail":
                samples = self._describe_rows(bad_rows.limit(MAX_REPORTED_ROWS).collect())
                raise MalformedRecordError(
                    f"{bad_count} malformed row(s) in NPP input: {samples}"
                )

            logger.warning(f"Dropping {bad_count} malformed row(s) from NPP input")
            df = df.filter(F.col("_malformed_reason").isNull())

        df = self._derive_fields(df)

        logger.info("Normalization complete")
        return df.select(*NORMALIZED_COLUMNS)

    def _check_columns(self, df: DataFrame) -> None:
        missing = [
            col for col in self.source_columns.values()
            if col not in df.columns
        ]
        if missing:
            raise ValueError(
                f"Required columns {missing} not found in NPP input. "
                f"Available: {df.columns}"
            )

    def _parse_fields(self, df: DataFrame) -> DataFrame:
        """Pull the source columns into typed, logically named columns"""
        cols = self.source_columns
        index_str = F.col(f"`{cols['index']}`").cast("string")
        year_str = F.regexp_extract(index_str, r"^(\d{4})", 1)

        return df.select(
            index_str.alias("_source_index"),
            F.when(year_str != "", year_str.cast("int")).alias("year"),
            _try_cast(cols["region"], "INT").alias("region"),
            F.trim(F.col(f"`{cols['forest_id']}`").cast("string")).alias("forest_id"),
            F.trim(F.col(f"`{cols['forest_name']}`").cast("string")).alias("forest_name"),
            _try_cast(cols["npp_total"], "DOUBLE").alias("npp_total"),
            _try_cast(cols["area_acres"], "DOUBLE").alias("area_acres"),
        )

    @staticmethod
    def _malformed_reason() -> Column:
        """First failing check per row, NULL when the row is valid"""
        return (
            F.when(F.col("year").isNull(), F.lit("unparseable year"))
            .when(F.col("region").isNull(), F.lit("missing or non-integer region"))
            .when(
                F.col("forest_id").isNull() | (F.col("forest_id") == ""),
                F.lit("missing forest id")
            )
            .when(F.col("forest_name").isNull(), F.lit("missing forest name"))
            .when(F.col("npp_total").isNull(), F.lit("missing or non-numeric npp"))
            .when(_non_finite("npp_total"), F.lit("non-finite npp"))
            .when(F.col("area_acres").isNull(), F.lit("missing or non-numeric area"))
            .when(_non_finite("area_acres"), F.lit("non-finite area"))
            .when(F.col("area_acres") <= 0, F.lit("non-positive area"))
        )

    @staticmethod
    def _derive_fields(df: DataFrame) -> DataFrame:
        df = df.withColumn("npp_billions", F.col("npp_total") / NPP_BILLIONS_DIVISOR)
        df = df.withColumn("area_sq_km", F.col("area_acres") / ACRES_PER_SQ_KM)
        df = df.withColumn(
            "npp_density",
            (F.col("npp_total") / NPP_MILLIONS_DIVISOR) / F.col("area_sq_km")
        )
        df = df.withColumn("name_short", shorten_forest_name(F.col("forest_name")))
        df = df.withColumn(
            "region_label",
            F.concat(F.lit("R"), F.col("region").cast("string"))
        )
        return df

    @staticmethod
    def _describe_rows(rows: List) -> List[str]:
        return [
            f"{row['_source_index']!r} ({row['_malformed_reason']})"
            for row in rows
        ]


def create_loader(
    spark: SparkSession,
    source_columns: Dict[str, str],
    on_malformed: Optional[str] = None
) -> NPPLoader:
    """
    Factory function to create a loader instance

    Args:
        spark: SparkSession instance
        source_columns: Mapping of logical field -> source column name
        on_malformed: 'fail' (default) or 'drop'

    Returns:
        NPPLoader instance
    """
    return NPPLoader(spark, source_columns, on_malformed or "fail")
