"""
Figure rendering for the NPP report.

Each function converts the (small) enriched table to pandas, draws one
figure with matplotlib and saves it as PNG. Percent axes expect signed
fractions and format them with PercentFormatter.
"""
import logging
from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.ticker import PercentFormatter
from pyspark.sql import DataFrame

logger = logging.getLogger(__name__)


DENSITY_LABEL = "NPP (millions per sq km)"
CHANGE_LABEL = "Change in NPP since first year"


def _save(fig, output_dir: str, filename: str, dpi: int) -> str:
    path = Path(output_dir)
    path.mkdir(parents=True, exist_ok=True)
    out = path / filename
    fig.tight_layout()
    fig.savefig(out, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Wrote figure {out}")
    return str(out)


def plot_density_histogram(
    df: DataFrame,
    output_dir: str,
    bins: int = 30,
    dpi: int = 150
) -> str:
    """Histogram of npp_density across all forest-years."""
    pdf = df.select("npp_density").toPandas()

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.hist(pdf["npp_density"].dropna(), bins=bins, color="#2e7d32", alpha=0.8)
    ax.set_xlabel(DENSITY_LABEL)
    ax.set_ylabel("Forest-years")
    ax.set_title("Distribution of NPP density")
    ax.grid(True, alpha=0.3)

    return _save(fig, output_dir, "npp_density_histogram.png", dpi)


def plot_density_by_year(
    df: DataFrame,
    output_dir: str,
    breaks: Sequence[int],
    dpi: int = 150,
    seed: int = 0
) -> str:
    """Boxplot of npp_density per year with a jittered scatter of forests."""
    pdf = df.select("year", "npp_density").toPandas()
    years = sorted(pdf["year"].unique())
    groups = [pdf.loc[pdf["year"] == y, "npp_density"].dropna().values for y in years]

    fig, ax = plt.subplots(figsize=(12, 5))
    ax.boxplot(groups, positions=years, widths=0.6, showfliers=False)

    rng = np.random.default_rng(seed)
    jitter = rng.uniform(-0.2, 0.2, size=len(pdf))
    ax.scatter(pdf["year"] + jitter, pdf["npp_density"], s=6, alpha=0.4, color="#2e7d32")

    ax.set_xticks(list(breaks))
    ax.set_xticklabels([str(y) for y in breaks], rotation=45)
    ax.set_xlabel("Year")
    ax.set_ylabel(DENSITY_LABEL)
    ax.set_title("NPP density by year")
    ax.grid(True, axis="y", alpha=0.3)

    return _save(fig, output_dir, "npp_density_by_year.png", dpi)


def plot_final_change_ranking(
    ranked: DataFrame,
    output_dir: str,
    dpi: int = 150
) -> str:
    """
    Horizontal bar chart of final_npp_change_pct, one bar per forest.

    Args:
        ranked: Output of summary.rank_forests_by_final_change
    """
    pdf = ranked.toPandas().dropna(subset=["final_npp_change_pct"])
    pdf = pdf.sort_values("final_npp_change_pct")

    colors = ["#c62828" if v < 0 else "#2e7d32" for v in pdf["final_npp_change_pct"]]

    fig, ax = plt.subplots(figsize=(8, max(4, 0.25 * len(pdf))))
    # Plot by position; short names are not unique across regions
    positions = np.arange(len(pdf))
    ax.barh(positions, pdf["final_npp_change_pct"], color=colors)
    ax.set_yticks(positions)
    ax.set_yticklabels(pdf["name_short"] + " (" + pdf["region_label"] + ")")
    ax.xaxis.set_major_formatter(PercentFormatter(xmax=1))
    ax.axvline(0, color="black", linewidth=0.8)
    ax.set_xlabel(CHANGE_LABEL)
    ax.set_title("Change in NPP by national forest")
    ax.grid(True, axis="x", alpha=0.3)

    return _save(fig, output_dir, "final_change_ranking.png", dpi)


def plot_region_trends(
    df: DataFrame,
    output_dir: str,
    breaks: Sequence[int],
    dpi: int = 150
) -> List[str]:
    """
    One line chart per region of npp_change_first_pct by year.

    Each forest is a line, labelled at its last year with last_name_short.
    """
    pdf = df.select(
        "region", "region_label", "forest_id", "year",
        "npp_change_first_pct", "last_name_short"
    ).toPandas()

    paths = []
    for region, region_pdf in sorted(pdf.groupby("region"), key=lambda item: item[0]):
        label = region_pdf["region_label"].iloc[0]

        fig, ax = plt.subplots(figsize=(11, 6))
        for _, forest in region_pdf.groupby("forest_id"):
            forest = forest.sort_values("year")
            ax.plot(forest["year"], forest["npp_change_first_pct"], linewidth=1, alpha=0.8)

            last = forest[forest["last_name_short"] != ""]
            for _, row in last.iterrows():
                if pd.isna(row["npp_change_first_pct"]):
                    continue
                ax.annotate(
                    row["last_name_short"],
                    (row["year"], row["npp_change_first_pct"]),
                    xytext=(4, 0),
                    textcoords="offset points",
                    fontsize=7,
                    va="center"
                )

        ax.axhline(0, color="black", linewidth=0.8)
        ax.yaxis.set_major_formatter(PercentFormatter(xmax=1))
        ax.set_xticks(list(breaks))
        ax.set_xticklabels([str(y) for y in breaks], rotation=45)
        ax.set_xlabel("Year")
        ax.set_ylabel(CHANGE_LABEL)
        ax.set_title(f"Region {label}: change in NPP since first year")
        ax.grid(True, alpha=0.3)

        paths.append(_save(fig, output_dir, f"region_{region}_trends.png", dpi))

    return paths


def render_all(
    df: DataFrame,
    ranked: DataFrame,
    output_dir: str,
    breaks: Sequence[int],
    dpi: int = 150
) -> Dict[str, List[str]]:
    """
    Render the full figure sequence in report order.

    Returns:
        Mapping of figure kind -> list of written paths
    """
    logger.info(f"Rendering figures to {output_dir}")

    figures: Dict[str, List[str]] = {
        "histogram": [plot_density_histogram(df, output_dir, dpi=dpi)],
        "density_by_year": [plot_density_by_year(df, output_dir, breaks, dpi=dpi)],
        "ranking": [plot_final_change_ranking(ranked, output_dir, dpi=dpi)],
        "region_trends": plot_region_trends(df, output_dir, breaks, dpi=dpi),
    }

    total = sum(len(paths) for paths in figures.values())
    logger.info(f"Rendered {total} figures")
    return figures
