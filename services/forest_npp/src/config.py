"""
Configuration for the forest NPP report service.
"""
from typing import List, Optional

from pydantic_settings import BaseSettings


class NPPConfig(BaseSettings):
    """Forest NPP report configuration"""
    
    # Input / output locations
    input_path: str = "data/forest_npp.csv"
    output_dir: str = "output"
    
    # Source column names (contract with the upstream export)
    index_column: str = "system:index"
    region_column: str = "region"
    forest_id_column: str = "cnid"
    forest_name_column: str = "commonname"
    npp_column: str = "sum"
    area_column: str = "gis_acres"
    
    # Transformation
    allowed_regions: List[int] = [1, 2, 3, 4, 5]
    year_break_step: int = 2
    on_malformed: str = "fail"  # 'fail' or 'drop'
    
    # Spark configuration
    spark_app_name: str = "ForestNPP-Report"
    spark_master: Optional[str] = None  # None = local mode
    shuffle_partitions: int = 4
    
    # Report rendering
    figure_dpi: int = 150
    top_n_forests: int = 5
    output_format: str = "parquet"  # 'parquet' or 'csv'
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "NPP_"
    
    @property
    def source_columns(self) -> dict:
        """Logical field name -> source column name."""
        return {
            "index": self.index_column,
            "region": self.region_column,
            "forest_id": self.forest_id_column,
            "forest_name": self.forest_name_column,
            "npp_total": self.npp_column,
            "area_acres": self.area_column,
        }
    
    @property
    def figures_dir(self) -> str:
        """Directory for rendered PNG figures."""
        return f"{self.output_dir.rstrip('/')}/figures"


def get_config() -> NPPConfig:
    """Get forest NPP configuration instance"""
    return NPPConfig()
