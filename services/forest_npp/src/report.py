"""
Markdown narrative for the NPP trend report.
"""
import os
from typing import Any, Dict, List, Optional


def format_pct(value: Optional[float], digits: int = 1) -> str:
    """Signed fraction -> percent text; undefined values render as 'n/a'."""
    if value is None:
        return "n/a"
    return f"{value * 100:+.{digits}f}%"


def format_number(value: Optional[float], digits: int = 2) -> str:
    """Plain number text; undefined values render as 'n/a'."""
    if value is None:
        return "n/a"
    return f"{value:.{digits}f}"


def format_share(value: Optional[float], digits: int = 0) -> str:
    """Unsigned fraction -> percent text."""
    if value is None:
        return "n/a"
    return f"{value * 100:.{digits}f}%"


def _forest_lines(forests: List[Dict[str, Any]]) -> List[str]:
    return [
        f"{i}. {f['name_short']} ({f['region_label']}): {format_pct(f['final_npp_change_pct'])}"
        for i, f in enumerate(forests, start=1)
    ]


def build_report(
    density_stats: Dict[str, Any],
    regions: List[Dict[str, Any]],
    extremes: Dict[str, List[Dict[str, Any]]],
    latest_negative_share: Optional[float],
    figures: Optional[Dict[str, List[str]]] = None,
    relative_to: Optional[str] = None
) -> str:
    """
    Build the report text.

    Args:
        density_stats: Output of summary.summarize_npp_density
        regions: Rows of summary.region_change_summary as dicts
        extremes: Output of summary.top_and_bottom_forests
        latest_negative_share: share_negative_change for the last year
        figures: Output of plots.render_all (omitted when plots are skipped)
        relative_to: Directory that figure links are made relative to

    Returns:
        Markdown document
    """
    first_year = density_stats.get("first_year")
    last_year = density_stats.get("last_year")

    lines = [f"# Net Primary Production in National Forests, {first_year}–{last_year}", ""]

    lines.append(
        f"The analysis covers {density_stats.get('forest_count', 0)} national forests "
        f"and {density_stats.get('row_count', 0)} forest-years. "
        f"Mean NPP density was {format_number(density_stats.get('density_mean'))} million per sq km "
        f"(median {format_number(density_stats.get('density_median'))}, "
        f"range {format_number(density_stats.get('density_min'))} to "
        f"{format_number(density_stats.get('density_max'))})."
    )
    lines.append("")

    lines.append(
        f"In {last_year}, {format_share(latest_negative_share)} of forests "
        f"had lower NPP than in the previous year."
    )
    lines.append("")

    lines.append("## Change by region")
    lines.append("")
    lines.append("| Region | Forests | Mean change since first year | Forests declining |")
    lines.append("|---|---|---|---|")
    for r in regions:
        lines.append(
            f"| {r['region_label']} | {r['forest_count']} | "
            f"{format_pct(r['mean_final_change_pct'])} | {r['forests_declining']} |"
        )
    lines.append("")

    if extremes.get("top"):
        lines.append("## Largest gains")
        lines.append("")
        lines.extend(_forest_lines(extremes["top"]))
        lines.append("")

    if extremes.get("bottom"):
        lines.append("## Largest declines")
        lines.append("")
        lines.extend(_forest_lines(extremes["bottom"]))
        lines.append("")

    if figures:
        lines.append("## Figures")
        lines.append("")
        for kind, paths in figures.items():
            for path in paths:
                link = os.path.relpath(path, relative_to) if relative_to else path
                lines.append(f"![{kind}]({link})")
        lines.append("")

    return "\n".join(lines)
