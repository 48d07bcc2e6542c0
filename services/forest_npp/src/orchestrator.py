"""
Report orchestrator

Main entry point for the forest NPP report.
Coordinates loading, enrichment, output, summaries, figures and the
narrative report.
"""
import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from pyspark.sql import SparkSession

from .config import NPPConfig, get_config
from .loader import create_loader
from .plots import render_all
from .report import build_report
from .summary import (
    rank_forests_by_final_change,
    region_change_summary,
    share_negative_change,
    summarize_npp_density,
    top_and_bottom_forests,
)
from .transformer import enrich, year_breaks
from .writer import create_writer

logger = logging.getLogger(__name__)


class NPPReportOrchestrator:
    """Orchestrates the complete NPP report pipeline"""

    def __init__(self, spark: SparkSession, config: Optional[NPPConfig] = None):
        """
        Initialize orchestrator

        Args:
            spark: SparkSession instance
            config: Configuration (default: loaded from environment)
        """
        self.spark = spark
        self.config = config or get_config()
        logger.info("NPPReportOrchestrator initialized")

    def run(self, input_path: Optional[str] = None, render_plots: bool = True) -> Dict[str, Any]:
        """
        Run the report end-to-end

        Args:
            input_path: CSV export path (default: config.input_path)
            render_plots: Render PNG figures

        Returns:
            Run statistics with status 'success' or 'failed'
        """
        input_path = input_path or self.config.input_path
        output_dir = self.config.output_dir

        logger.info(f"Starting NPP report: input={input_path}, output={output_dir}")
        start_time = datetime.utcnow()
        enriched = None

        try:
            # Step 1: Load and normalize
            loader = create_loader(
                self.spark,
                self.config.source_columns,
                on_malformed=self.config.on_malformed
            )
            raw_df = loader.read_csv(input_path)
            normalized = loader.load_and_normalize(raw_df)

            # Step 2: Enrich
            enriched = enrich(normalized, self.config.allowed_regions).cache()
            row_count = enriched.count()
            logger.info(f"Enrichment complete: {row_count} forest-years")

            if row_count == 0:
                raise ValueError(
                    f"No forest-years left after filtering to regions "
                    f"{self.config.allowed_regions}"
                )

            # Step 3: Write enriched table
            writer = create_writer(output_dir, self.config.output_format)
            write_stats = writer.write(enriched)

            # Step 4: Summaries
            density_stats = summarize_npp_density(enriched)
            ranked = rank_forests_by_final_change(enriched)
            regions = [r.asDict() for r in region_change_summary(enriched).collect()]
            extremes = top_and_bottom_forests(ranked, self.config.top_n_forests)
            latest_negative_share = share_negative_change(
                enriched, density_stats["last_year"]
            )

            # Step 5: Figures
            figures = None
            if render_plots:
                breaks = year_breaks(enriched, self.config.year_break_step)
                figures = render_all(
                    enriched,
                    ranked,
                    self.config.figures_dir,
                    breaks,
                    dpi=self.config.figure_dpi
                )

            # Step 6: Narrative report
            report_text = build_report(
                density_stats,
                regions,
                extremes,
                latest_negative_share,
                figures=figures,
                relative_to=output_dir
            )
            report_path = Path(output_dir) / "report.md"
            report_path.parent.mkdir(parents=True, exist_ok=True)
            report_path.write_text(report_text, encoding="utf-8")
            logger.info(f"Wrote report {report_path}")

            end_time = datetime.utcnow()
            duration = (end_time - start_time).total_seconds()

            results = {
                "input_path": input_path,
                "output_dir": output_dir,
                "forest_count": density_stats["forest_count"],
                "row_count": row_count,
                "year_range": [density_stats["first_year"], density_stats["last_year"]],
                "write_stats": write_stats,
                "figures": figures or {},
                "report_path": str(report_path),
                "processing_time_seconds": duration,
                "started_at": start_time.isoformat(),
                "completed_at": end_time.isoformat(),
                "status": "success"
            }

            logger.info(f"NPP report complete in {duration:.2f}s")
            return results

        except Exception as e:
            logger.error(f"NPP report failed: {e}", exc_info=True)

            end_time = datetime.utcnow()
            duration = (end_time - start_time).total_seconds()

            return {
                "input_path": input_path,
                "output_dir": output_dir,
                "status": "failed",
                "error": str(e),
                "error_type": type(e).__name__,
                "processing_time_seconds": duration,
                "started_at": start_time.isoformat(),
                "failed_at": end_time.isoformat(),
            }

        finally:
            if enriched is not None:
                enriched.unpersist()


def create_spark_session(config: NPPConfig) -> SparkSession:
    """
    Create and configure Spark session

    Args:
        config: Configuration with app name, master and shuffle partitions

    Returns:
        Configured SparkSession
    """
    builder = SparkSession.builder.appName(config.spark_app_name)
    builder = builder.master(config.spark_master or "local[*]")

    # Hundreds of rows; keep shuffles small
    builder = builder.config("spark.sql.shuffle.partitions", str(config.shuffle_partitions))
    builder = builder.config("spark.sql.adaptive.enabled", "true")

    spark = builder.getOrCreate()

    logger.info(f"Spark session created: {spark.version}")
    return spark


def build_arg_parser() -> argparse.ArgumentParser:
    """Command line interface definition"""
    parser = argparse.ArgumentParser(
        description="Forest NPP trend report",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full report with defaults from the environment / .env
  python -m forest_npp.src.orchestrator data/forest_npp.csv

  # Regions 1 and 6 only, dropping malformed rows, no figures
  python -m forest_npp.src.orchestrator data/forest_npp.csv --regions 1 6 --on-malformed drop --no-plots
        """
    )
    parser.add_argument(
        "input_path",
        nargs="?",
        default=None,
        help="CSV export path (default: NPP_INPUT_PATH)"
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Report output directory (default: NPP_OUTPUT_DIR)"
    )
    parser.add_argument(
        "--regions",
        type=int,
        nargs="+",
        default=None,
        help="Regions to keep (default: 1 2 3 4 5)"
    )
    parser.add_argument(
        "--on-malformed",
        choices=["fail", "drop"],
        default=None,
        help="Reject the whole load or drop malformed rows (default: fail)"
    )
    parser.add_argument(
        "--format",
        dest="output_format",
        choices=["parquet", "csv"],
        default=None,
        help="Enriched table format (default: parquet)"
    )
    parser.add_argument(
        "--no-plots",
        action="store_true",
        help="Skip figure rendering"
    )
    parser.add_argument(
        "--spark-master",
        default=None,
        help="Spark master URL (default: local)"
    )
    return parser


def config_from_args(args: argparse.Namespace) -> NPPConfig:
    """Environment configuration with command line overrides applied"""
    overrides = {
        "input_path": args.input_path,
        "output_dir": args.output_dir,
        "allowed_regions": args.regions,
        "on_malformed": args.on_malformed,
        "output_format": args.output_format,
        "spark_master": args.spark_master,
    }
    return NPPConfig(**{k: v for k, v in overrides.items() if v is not None})


def main(argv=None):
    """Main entry point for CLI"""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    args = build_arg_parser().parse_args(argv)
    config = config_from_args(args)

    spark = create_spark_session(config)

    try:
        orchestrator = NPPReportOrchestrator(spark, config)
        results = orchestrator.run(render_plots=not args.no_plots)

        print(json.dumps(results, indent=2, default=str))

        sys.exit(0 if results["status"] == "success" else 1)

    finally:
        spark.stop()


if __name__ == "__main__":
    main()
