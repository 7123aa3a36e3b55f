import pytest
import geopandas as gpd
from shapely.geometry import LineString, MultiLineString, Point

from edge_enrichment.utils import (
    explode_multilines,
    load_vector_data,
    reproject_gdf,
    save_vector_data,
    setup_output_dir,
)


@pytest.fixture
def mixed_gdf() -> gpd.GeoDataFrame:
    """Lines, a multi line, a point and a missing geometry."""
    data = {
        "id": [1, 2, 3, 4],
        "geometry": [
            LineString([(0, 0), (1, 1)]),
            MultiLineString([[(0, 0), (0, 1)], [(1, 0), (1, 1)]]),
            Point(5, 5),
            None,
        ],
    }
    return gpd.GeoDataFrame(data, crs="EPSG:4326")


def test_load_vector_data_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_vector_data(tmp_path / "missing.gpkg")


def test_save_and_load_vector_data(tmp_path):
    gdf = gpd.GeoDataFrame(
        {"id": [1], "geometry": [LineString([(24.9, 60.1), (24.91, 60.1)])]},
        crs="EPSG:4326",
    )
    path = tmp_path / "nested" / "edges.gpkg"
    save_vector_data(gdf, path, layer="edges")

    loaded = load_vector_data(path, layer="edges")
    assert len(loaded) == 1
    assert loaded.crs.to_epsg() == 4326


def test_reproject_gdf_without_crs():
    gdf = gpd.GeoDataFrame({"geometry": [Point(0, 0)]})
    with pytest.raises(ValueError):
        reproject_gdf(gdf, 4326)


def test_reproject_gdf_same_crs_returns_input():
    gdf = gpd.GeoDataFrame({"geometry": [Point(0, 0)]}, crs="EPSG:4326")
    assert reproject_gdf(gdf, "EPSG:4326") is gdf


def test_reproject_gdf_to_geographic():
    gdf = gpd.GeoDataFrame({"geometry": [Point(500000, 0)]}, crs="EPSG:32633")
    result = reproject_gdf(gdf, 4326)
    assert result.crs.to_epsg() == 4326
    assert result.geometry.iloc[0].x == pytest.approx(15.0)
    assert result.geometry.iloc[0].y == pytest.approx(0.0, abs=1e-9)


def test_explode_multilines(mixed_gdf):
    result = explode_multilines(mixed_gdf)
    assert result["id"].tolist() == [1, 2, 2]
    assert set(result.geometry.geom_type) == {"LineString"}


def test_setup_output_dir_creates_directory(tmp_path):
    output_dir = tmp_path / "out" / "nested"
    setup_output_dir(output_dir)
    assert output_dir.is_dir()


def test_setup_output_dir_clear(tmp_path):
    output_dir = tmp_path / "out"
    output_dir.mkdir()
    (output_dir / "old.txt").write_text("stale")

    setup_output_dir(output_dir, clear=True)

    assert output_dir.is_dir()
    assert not (output_dir / "old.txt").exists()
