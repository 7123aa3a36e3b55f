import numpy as np
import pandas as pd
import pytest
import xarray as xr

from edge_enrichment.airquality.data_file import AirQualityDataFile
from edge_enrichment.graph import StreetEdge, StreetGraph

ORIGIN = pd.Timestamp("2024-01-01T00:00:00", tz="UTC")

SCENARIO_CUBE = np.array(
    [
        [[1, 2, 3], [4, 5, 6], [7, 8, 9]],
        [[0, 0, 0], [0, 0, 0], [0, 0, 0]],
    ],
    dtype=np.int8,
)


@pytest.fixture
def scenario_data_file(tmp_path) -> AirQualityDataFile:
    """3x3 grid over lat 10..30, lon 100..120 with two time steps."""
    return AirQualityDataFile(
        tmp_path / "scenario.nc",
        time=np.array([0.0, 1.0]),
        latitude=np.array([10.0, 20.0, 30.0]),
        longitude=np.array([100.0, 110.0, 120.0]),
        aqi=SCENARIO_CUBE,
        origin_date=ORIGIN,
    )


@pytest.fixture
def helsinki_data_file(tmp_path) -> AirQualityDataFile:
    """Constant AQI 42 over a small grid around Helsinki, three time steps."""
    return AirQualityDataFile(
        tmp_path / "helsinki.nc",
        time=np.array([0.0, 1.0, 2.0]),
        latitude=np.array([60.10, 60.15, 60.20]),
        longitude=np.array([24.85, 24.90, 24.95]),
        aqi=np.full((3, 3, 3), 42, dtype=np.int8),
        origin_date=ORIGIN,
    )


@pytest.fixture
def helsinki_graph() -> StreetGraph:
    """Two edges of roughly 1 km inside the Helsinki grid and one outside it."""
    return StreetGraph(
        [
            StreetEdge(id="a", from_coord=(24.86, 60.11), to_coord=(24.88, 60.11)),
            StreetEdge(id="b", from_coord=(24.90, 60.14), to_coord=(24.90, 60.15)),
            StreetEdge(id="outside", from_coord=(25.10, 60.30), to_coord=(25.12, 60.30)),
        ]
    )


@pytest.fixture
def write_netcdf(tmp_path):
    """Returns a function writing a NetCDF air quality file and returning its path."""

    def _write(
        name="aqi.nc",
        cube=SCENARIO_CUBE,
        latitude=(10.0, 20.0, 30.0),
        longitude=(100.0, 110.0, 120.0),
        time_units="hours since 2024-01-01 00:00:00",
        aqi_variable="AQI",
        dims=("time", "latitude", "longitude"),
        time_values=None,
    ):
        time_attrs = {"units": time_units} if time_units else {}
        if time_values is None:
            time_values = np.arange(cube.shape[0], dtype=float)
        order = [("time", "latitude", "longitude").index(d) for d in dims]
        ds = xr.Dataset(
            {aqi_variable: (dims, np.transpose(cube, order))},
            coords={
                "time": ("time", np.asarray(time_values, dtype=float), time_attrs),
                "latitude": ("latitude", np.array(latitude)),
                "longitude": ("longitude", np.array(longitude)),
            },
        )
        path = tmp_path / name
        ds.to_netcdf(path)
        return path

    return _write
