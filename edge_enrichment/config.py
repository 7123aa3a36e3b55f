import os
from pathlib import Path
from pydantic import BaseModel, Field
from typing import Optional, List

from dotenv import load_dotenv

# Determine the base directory relative to this config file
# config.py is in edge_enrichment/, so BASE_DIR is the repository root
BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv()


class PathsConfig(BaseModel):
    """Configuration for base directories and main input/output paths."""

    base_dir: Path = BASE_DIR
    data_dir: Path = Field(default_factory=lambda: BASE_DIR / "data")
    output_dir: Path = Field(default_factory=lambda: BASE_DIR / "output")

    street_edges_path: Path = Field(
        default_factory=lambda: BASE_DIR / "data" / "streets" / "street_edges.gpkg",
        description="Vector file with one LineString feature per street edge.",
    )
    air_quality_files: List[Path] = Field(
        default_factory=list,
        description="Gridded air quality files (NetCDF or GeoTIFF) applied in order.",
    )


class InputDataConfig(BaseModel):
    """Layer, field and variable names of the input data."""

    # Street edges
    edge_layer: Optional[str] = None
    edge_id_field: str = "id"

    # Raster variables (NetCDF)
    latitude_variable: str = "latitude"
    longitude_variable: str = "longitude"
    time_variable: str = "time"
    aqi_variable: str = "AQI"

    # GeoTIFF tag holding the timestamp of the first band
    geotiff_time_origin_tag: str = "time_origin"

    # NGSI NoiseLevelObserved attribute used as the edge noise level
    noise_level_measurement: str = "LAmax"


class OutputFilesConfig(BaseModel):
    """Relative filenames for output files within the output directory."""

    enriched_edges_gpkg: str = "enriched_street_edges.gpkg"
    enriched_edges_layer: str = "street_edges"

    # Method to get full path
    def get_full_path(self, filename_attr: str, output_dir: Path) -> Path:
        """Returns the full path for a given output filename attribute."""
        filename = getattr(self, filename_attr)
        return output_dir / filename


class ProcessingConfig(BaseModel):
    """Parameters controlling the attribution passes."""

    edge_crs_epsg: int = 4326  # Edges are attributed in lon/lat degrees
    sample_spacing_m: float = Field(
        default=12.0,
        description="Distance in meters between sample points along an edge.",
    )
    report_every_n_edges: int = 10000
    dask_workers: int = Field(
        default=1,
        description="Number of threads computing edge averages. 1 runs sequentially.",
    )

    noise_distance_threshold: float = Field(
        default=0.005,
        description="Planar distance (degrees) between an observation and an edge endpoint.",
    )
    noise_floor_level: float = 0.0
    noise_envelope_margin: float = Field(
        default=0.0,
        description="Degrees added around the observation envelope when selecting candidate edges.",
    )


class UpdaterConfig(BaseModel):
    """Settings for the polling graph updaters."""

    air_quality_frequency_sec: int = 600
    noise_level_frequency_sec: int = 300
    noise_server_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("NOISE_BROKER_URL")
    )
    noise_lookback_minutes: int = 5
    request_timeout_sec: float = 30.0


class AppConfig(BaseModel):
    """Main application configuration."""

    paths: PathsConfig = Field(default_factory=PathsConfig)
    input_data: InputDataConfig = Field(default_factory=InputDataConfig)
    output_files: OutputFilesConfig = Field(default_factory=OutputFilesConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    updaters: UpdaterConfig = Field(default_factory=UpdaterConfig)


# Instantiate the main config object for easy import
settings = AppConfig()

# Example usage (optional, for testing)
if __name__ == "__main__":
    print("--- Edge Enrichment Configuration Loaded ---")
    print(f"Base Directory: {settings.paths.base_dir}")
    print(f"Street Edges: {settings.paths.street_edges_path}")
    print(f"Air Quality Files: {settings.paths.air_quality_files}")
    print(f"Sample Spacing: {settings.processing.sample_spacing_m} m")
    print(f"Noise Broker: {settings.updaters.noise_server_url}")
    print(
        f"Enriched Edges: {settings.output_files.get_full_path('enriched_edges_gpkg', settings.paths.output_dir)}"
    )
