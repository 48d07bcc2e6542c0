"""
Tests for the Markdown report builder
"""
import pytest

from forest_npp.src.report import build_report, format_number, format_pct, format_share


@pytest.fixture
def density_stats():
    return {
        "forest_count": 2,
        "row_count": 8,
        "first_year": 1986,
        "last_year": 1989,
        "density_mean": 1100.0,
        "density_median": 1100.0,
        "density_stddev": 130.9,
        "density_min": 900.0,
        "density_max": 1300.0,
    }


@pytest.fixture
def regions():
    return [
        {"region": 1, "region_label": "R1", "forest_count": 1,
         "mean_final_change_pct": 0.3, "forests_declining": 0},
        {"region": 2, "region_label": "R2", "forest_count": 1,
         "mean_final_change_pct": 0.2, "forests_declining": 0},
    ]


@pytest.fixture
def extremes():
    return {
        "top": [{"forest_id": "0101", "name_short": "Lolo", "region_label": "R1",
                 "final_npp_change_pct": 0.3, "rank": 1}],
        "bottom": [{"forest_id": "0202", "name_short": "Bighorn", "region_label": "R2",
                    "final_npp_change_pct": -0.2, "rank": 2}],
    }


@pytest.mark.parametrize("value,expected", [
    (0.2, "+20.0%"),
    (-0.05, "-5.0%"),
    (0.0, "+0.0%"),
    (None, "n/a"),
])
def test_format_pct(value, expected):
    assert format_pct(value) == expected


def test_format_share():
    assert format_share(0.5) == "50%"
    assert format_share(None) == "n/a"


def test_format_number():
    assert format_number(1100.0) == "1100.00"
    assert format_number(None) == "n/a"


def test_build_report_sections(density_stats, regions, extremes):
    """Test interpolated values and section headings"""
    text = build_report(density_stats, regions, extremes, 0.5)

    assert text.startswith("# Net Primary Production in National Forests, 1986–1989")
    assert "2 national forests and 8 forest-years" in text
    assert "Mean NPP density was 1100.00" in text
    assert "In 1989, 50% of forests had lower NPP" in text
    assert "| R1 | 1 | +30.0% | 0 |" in text
    assert "1. Lolo (R1): +30.0%" in text
    assert "## Largest declines" in text
    assert "## Figures" not in text


def test_build_report_undefined_share(density_stats, regions):
    """Test missing negative share renders as n/a"""
    text = build_report(density_stats, regions, {"top": [], "bottom": []}, None)

    assert "In 1989, n/a of forests" in text
    assert "## Largest gains" not in text


def test_build_report_undefined_density(density_stats, regions):
    """Test missing density statistics render as n/a, not zero"""
    stats = dict(density_stats, density_mean=None, density_median=None,
                 density_min=None, density_max=None)

    text = build_report(stats, regions, {"top": [], "bottom": []}, None)

    assert "Mean NPP density was n/a million per sq km" in text
    assert "(median n/a, range n/a to n/a)" in text
    assert "0.00" not in text


def test_build_report_relative_figure_links(density_stats, regions, extremes, tmp_path):
    """Test figure links are relative to the report directory"""
    figure = tmp_path / "figures" / "npp_density_histogram.png"
    figures = {"histogram": [str(figure)]}

    text = build_report(
        density_stats, regions, extremes, 0.5,
        figures=figures, relative_to=str(tmp_path)
    )

    assert "![histogram](figures/npp_density_histogram.png)" in text
