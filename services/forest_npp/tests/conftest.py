"""
Pytest configuration and fixtures for forest NPP service tests.
"""
import pytest
from pyspark.sql import SparkSession

from forest_npp.src.config import NPPConfig
from forest_npp.src.loader import NPPLoader

from npp_rows import RAW_SCHEMA, raw_row


@pytest.fixture(scope="session")
def spark():
    """Create a Spark session for testing."""
    spark = (
        SparkSession.builder
        .appName("ForestNPP-Tests")
        .master("local[2]")
        .config("spark.sql.shuffle.partitions", "2")
        .config("spark.ui.enabled", "false")
        .getOrCreate()
    )
    
    yield spark
    
    spark.stop()


@pytest.fixture
def config(tmp_path):
    """Configuration writing into a temporary output directory."""
    return NPPConfig(output_dir=str(tmp_path / "output"))


@pytest.fixture
def loader(spark, config):
    """Loader failing on malformed rows."""
    return NPPLoader(spark, config.source_columns, on_malformed="fail")


@pytest.fixture
def make_raw_df(spark):
    """Factory building a raw export DataFrame from raw_row tuples."""
    def _make(rows):
        return spark.createDataFrame(rows, RAW_SCHEMA)
    return _make


@pytest.fixture
def sample_raw_df(make_raw_df):
    """
    Three forests in regions 1, 2 and 6 over four years.
    
    - 0101: steady growth, area 247 acres (1 sq km)
    - 0202: dip in 1988 then recovery, area 494 acres
    - 0606: region 6, excluded by the default region filter
    """
    rows = []
    for year, npp in zip(range(1986, 1990), [1.0e9, 1.1e9, 1.2e9, 1.3e9]):
        rows.append(raw_row(year, 1, "0101", "Lolo National Forest", int(npp), 247))
    for year, npp in zip(range(1986, 1990), [2.0e9, 2.2e9, 1.8e9, 2.4e9]):
        rows.append(raw_row(year, 2, "0202", "Bighorn National Forest", int(npp), 494))
    for year, npp in zip(range(1986, 1990), [3.0e9, 3.0e9, 3.0e9, 3.0e9]):
        rows.append(raw_row(year, 6, "0606", "Olympic National Forest", int(npp), 247))
    return make_raw_df(rows)


@pytest.fixture
def sample_normalized(loader, sample_raw_df):
    """Normalized version of sample_raw_df."""
    return loader.load_and_normalize(sample_raw_df)
