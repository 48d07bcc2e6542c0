"""
Enriched table writer

Writes the enriched forest-year table to the report output directory
as parquet (partitioned by region) or a single CSV file.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql import functions as F

logger = logging.getLogger(__name__)


WRITE_MODES = ("overwrite", "append", "error")
OUTPUT_FORMATS = ("parquet", "csv")


class EnrichedTableWriter:
    """Write the enriched NPP table to the output directory"""

    def __init__(self, output_dir: str, output_format: str = "parquet"):
        """
        Initialize writer

        Args:
            output_dir: Report output directory
            output_format: 'parquet' or 'csv'
        """
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(
                f"Unknown output format: {output_format}. "
                f"Must be one of {list(OUTPUT_FORMATS)}"
            )

        self.output_dir = output_dir.rstrip("/")
        self.output_format = output_format
        self.output_path = f"{self.output_dir}/enriched"

        logger.info(
            f"Initialized EnrichedTableWriter: format={output_format}, "
            f"path={self.output_path}"
        )

    def write(
        self,
        df: DataFrame,
        partition_cols: Optional[List[str]] = None,
        mode: str = "overwrite"
    ) -> Dict[str, Any]:
        """
        Write DataFrame to the output directory

        Args:
            df: Enriched DataFrame
            partition_cols: Parquet partition columns (default: region)
            mode: Write mode ('overwrite', 'append', 'error')

        Returns:
            Dictionary with write statistics
        """
        if mode not in WRITE_MODES:
            raise ValueError(f"Unknown write mode: {mode}. Must be one of {list(WRITE_MODES)}")

        if partition_cols is None:
            partition_cols = ["region"] if self.output_format == "parquet" else []

        missing_cols = [c for c in partition_cols if c not in df.columns]
        if missing_cols:
            raise ValueError(
                f"Partition columns {missing_cols} not found in DataFrame"
            )

        row_count = df.count()
        logger.info(f"Writing {row_count} rows as {self.output_format}")

        try:
            if self.output_format == "parquet":
                df.write.parquet(
                    self.output_path,
                    mode=mode,
                    partitionBy=partition_cols or None,
                    compression="snappy"
                )
            else:
                # One file; the table is one row per forest-year
                df.coalesce(1).write.csv(
                    self.output_path,
                    mode=mode,
                    header=True
                )

            stats = {
                "output_path": self.output_path,
                "output_format": self.output_format,
                "rows_written": row_count,
                "partition_cols": partition_cols,
                "mode": mode,
                "written_at": datetime.utcnow().isoformat(),
            }

            logger.info(f"Write complete: {stats}")
            return stats

        except Exception as e:
            logger.error(f"Failed to write enriched table: {e}")
            raise

    def validate_output(self, spark: SparkSession) -> Dict[str, Any]:
        """
        Read back the written table and compute basic statistics

        Returns:
            Validation metrics
        """
        logger.info(f"Validating output at {self.output_path}")

        if self.output_format == "parquet":
            df = spark.read.parquet(self.output_path)
        else:
            df = spark.read.csv(self.output_path, header=True, inferSchema=True)

        bounds = df.agg(
            F.min("year").alias("min_year"),
            F.max("year").alias("max_year")
        ).collect()[0]

        metrics = {
            "output_path": self.output_path,
            "total_rows": df.count(),
            "schema_fields": len(df.columns),
            "columns": df.columns,
            "distinct_forests": df.select("forest_id").distinct().count(),
            "year_range": {"min": bounds["min_year"], "max": bounds["max_year"]},
        }

        logger.info(f"Validation metrics: {metrics}")
        return metrics


def create_writer(output_dir: str, output_format: str = "parquet") -> EnrichedTableWriter:
    """
    Factory function to create an enriched table writer

    Args:
        output_dir: Report output directory
        output_format: 'parquet' or 'csv'

    Returns:
        EnrichedTableWriter instance
    """
    return EnrichedTableWriter(output_dir, output_format)
