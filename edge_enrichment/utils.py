import logging
import geopandas as gpd
import shutil

from pyproj import CRS
from pathlib import Path
from typing import (
    Optional,
    Union,
)


logger = logging.getLogger(__name__)


def setup_output_dir(output_dir: Path, clear: bool = False):
    """
    Sets up the output directory.

    If ``clear`` is set and the directory exists, its contents are removed first.

    Args:
        output_dir (Path): The path to the output directory.
        clear (bool): Remove existing contents before creating the directory.
    """
    try:
        if clear and output_dir.exists() and output_dir.is_dir():
            logger.warning(f"Output directory {output_dir} exists. Removing contents.")
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Output directory setup complete: {output_dir}")
    except Exception as e:
        logger.error(f"Failed to set up output directory {output_dir}: {e}")
        raise


def load_vector_data(
    path: Path, layer: Optional[str] = None, **kwargs
) -> gpd.GeoDataFrame:
    """
    Loads vector data from various formats using GeoPandas.

    Args:
        path (Path): Path to the vector file (e.g., .shp, .geojson, .gpkg).
        layer (Optional[str]): Layer name if reading from a multi-layer source like GeoPackage.
        **kwargs: Additional keyword arguments passed to geopandas.read_file.

    Returns:
        gpd.GeoDataFrame: Loaded GeoDataFrame.

    Raises:
        FileNotFoundError: If the input file does not exist.
        Exception: For other GeoPandas loading errors.
    """
    if not path.exists():
        raise FileNotFoundError(f"Input vector file not found: {path}")
    try:
        logger.info(f"Loading vector data from: {path} (Layer: {layer or 'Default'})")
        gdf = gpd.read_file(path, layer=layer, **kwargs)
        logger.info(f"Loaded {len(gdf)} features with CRS: {gdf.crs}")
        return gdf
    except Exception as e:
        logger.error(f"Error loading vector file {path}: {e}")
        raise


def save_vector_data(
    gdf: gpd.GeoDataFrame,
    path: Path,
    layer: Optional[str] = None,
    driver: Optional[str] = None,
    **kwargs,
):
    """
    Saves a GeoDataFrame to a vector file.

    Determines driver based on file extension if not provided.

    Args:
        gdf (gpd.GeoDataFrame): GeoDataFrame to save.
        path (Path): Output file path.
        layer (Optional[str]): Layer name, used by multi-layer formats like GeoPackage.
        driver (Optional[str]): OGR driver to use (e.g., 'GPKG', 'ESRI Shapefile', 'GeoJSON').
        **kwargs: Additional keyword arguments passed to gdf.to_file.
    """
    # Ensure output directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    # Infer driver if not specified
    if driver is None:
        suffix = path.suffix.lower()
        if suffix == ".gpkg":
            driver = "GPKG"
        elif suffix == ".shp":
            driver = "ESRI Shapefile"
        elif suffix == ".geojson":
            driver = "GeoJSON"
        else:
            logger.warning(
                f"Could not infer driver for {path}. Attempting save without explicit driver."
            )

    try:
        logger.info(
            f"Saving {len(gdf)} features to: {path} (Layer: {layer}, Driver: {driver})"
        )
        gdf.to_file(path, layer=layer, driver=driver, **kwargs)
        logger.info("Save complete.")
    except Exception as e:
        logger.error(f"Error saving vector file to {path}: {e}")
        raise


def reproject_gdf(
    gdf: gpd.GeoDataFrame, target_crs: Union[str, int, CRS]
) -> gpd.GeoDataFrame:
    """
    Reprojects a GeoDataFrame to the target CRS.

    Args:
        gdf (gpd.GeoDataFrame): Input GeoDataFrame.
        target_crs (Union[str, int, CRS]): Target Coordinate Reference System
                                           (e.g., 'EPSG:4326', 4326, CRS.from_epsg(4326)).

    Returns:
        gpd.GeoDataFrame: Reprojected GeoDataFrame.
    """
    if gdf.crs is None:
        raise ValueError("Input GeoDataFrame has no CRS defined. Cannot reproject.")

    target_crs_obj = CRS.from_user_input(target_crs)
    if gdf.crs.equals(target_crs_obj):
        return gdf

    try:
        logger.info(
            f"Reprojecting GeoDataFrame from {gdf.crs} to {target_crs_obj.to_string()}"
        )
        gdf_reprojected = gdf.to_crs(target_crs_obj)
        logger.info("Reprojection complete.")
        return gdf_reprojected
    except Exception as e:
        logger.error(f"Error during reprojection to {target_crs}: {e}")
        raise


def explode_multilines(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """
    Splits MultiLineString features into one LineString row per part.

    Rows with empty or missing geometries and non-linear geometries are dropped.
    """
    gdf = gdf.dropna(subset=["geometry"])
    gdf = gdf[~gdf.geometry.is_empty]

    unsupported = ~gdf.geometry.geom_type.isin(["LineString", "MultiLineString"])
    if unsupported.any():
        logger.warning(
            f"Skipping {int(unsupported.sum())} features with unsupported geometry types: "
            f"{sorted(gdf[unsupported].geometry.geom_type.unique())}"
        )
        gdf = gdf[~unsupported]

    if (gdf.geometry.geom_type == "MultiLineString").any():
        original_len = len(gdf)
        gdf = gdf.explode(index_parts=False)
        logger.info(f"Exploded {original_len} features into {len(gdf)} line parts.")
    return gdf
