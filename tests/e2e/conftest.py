"""
Pytest fixtures for end-to-end tests.

Provides fixtures for:
- Local Spark session
- A synthetic 1986-2020 NPP export covering regions 1-6
"""
import random
from pathlib import Path

import pytest
from pyspark.sql import SparkSession


FIRST_YEAR = 1986
LAST_YEAR = 2020

# (cnid, commonname, region, gis_acres)
FORESTS = [
    ("0102", "Beaverhead-Deerlodge National Forest", 1, 3360000),
    ("0116", "Lolo National Forest", 1, 2080000),
    ("0202", "Bighorn National Forest", 2, 1107000),
    ("0206", "Medicine Bow and Routt National Forests", 2, 2222000),
    ("0304", "Coconino National Forest", 3, 1856000),
    ("0307", "Lincoln National Forest", 3, 1103000),
    ("0401", "Ashley National Forest", 4, 1382000),
    ("0418", "Uinta-Wasatch-Cache National Forest", 4, 2159000),
    ("0505", "Eldorado National Forest", 5, 596000),
    ("0515", "Sierra National Forest", 5, 1312000),
    ("0609", "Olympic National Forest", 6, 633000),
]


@pytest.fixture(scope="session")
def spark():
    """Create Spark session for E2E tests"""
    spark = (
        SparkSession.builder
        .appName("ForestNPP-E2E")
        .master("local[2]")
        .config("spark.sql.shuffle.partitions", "2")
        .config("spark.ui.enabled", "false")
        .getOrCreate()
    )

    yield spark

    spark.stop()


def generate_npp_export(path: Path, seed: int = 42, skip_years=None) -> Path:
    """
    Write a synthetic export in the upstream column layout.

    NPP per forest follows a random walk around 400 units per acre.
    skip_years maps cnid -> years left out for that forest.
    """
    rng = random.Random(seed)
    skip_years = skip_years or {}

    lines = ["system:index,region,cnid,commonname,sum,gis_acres,.geo"]
    for position, (cnid, name, region, acres) in enumerate(FORESTS):
        npp = acres * 400.0
        for year in range(FIRST_YEAR, LAST_YEAR + 1):
            npp *= 1 + rng.uniform(-0.08, 0.09)
            if year in skip_years.get(cnid, ()):
                continue
            index = f"{year}_{position:020d}"
            lines.append(f'{index},{region},{cnid},"{name}",{npp:.1f},{acres},{{}}')

    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture(scope="session")
def npp_export(tmp_path_factory):
    """Full synthetic export, every forest has every year"""
    return generate_npp_export(tmp_path_factory.mktemp("export") / "forest_npp.csv")


@pytest.fixture
def npp_export_with_gaps(tmp_path):
    """Synthetic export where some forests miss years"""
    return generate_npp_export(
        tmp_path / "forest_npp_gaps.csv",
        skip_years={"0116": range(1986, 1990), "0304": (1995, 2005, 2020)}
    )
