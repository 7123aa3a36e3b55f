import logging
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import pandas as pd
import rasterio
import xarray as xr

from edge_enrichment.graph import Envelope

logger = logging.getLogger(__name__)

NETCDF_SUFFIXES = {".nc", ".nc4", ".cdf"}
GEOTIFF_SUFFIXES = {".tif", ".tiff"}

# CF time units mapped to pandas timedelta units
TIME_UNITS = {
    "second": "s",
    "seconds": "s",
    "minute": "min",
    "minutes": "min",
    "hour": "h",
    "hours": "h",
    "day": "D",
    "days": "D",
}


def _read_only(values) -> np.ndarray:
    array = np.array(values)
    array.flags.writeable = False
    return array


def parse_time_origin(units: Optional[str]) -> Optional[Tuple[str, pd.Timestamp]]:
    """
    Parses CF style time units such as ``"hours since 2019-01-01 00:00:00"``.

    Returns the pandas timedelta unit and the UTC reference timestamp, or None
    when the units cannot be understood.
    """
    if not units or " since " not in units:
        return None
    unit, reference = units.split(" since ", 1)
    unit = TIME_UNITS.get(unit.strip().lower())
    if unit is None:
        return None
    try:
        origin = pd.Timestamp(reference.strip())
    except ValueError:
        return None
    if origin.tzinfo is None:
        origin = origin.tz_localize("UTC")
    return unit, origin.tz_convert("UTC")


class AirQualityDataFile:
    """
    Air quality grid loaded from a single file.

    The AQI cube is indexed ``[time, latitude, longitude]``. Arrays are read-only
    once loaded. A file that failed to load carries a descriptive ``error`` and
    no data.
    """

    def __init__(
        self,
        path: Path,
        time: Optional[np.ndarray] = None,
        latitude: Optional[np.ndarray] = None,
        longitude: Optional[np.ndarray] = None,
        aqi: Optional[np.ndarray] = None,
        origin_date: Optional[pd.Timestamp] = None,
        time_unit: str = "h",
        error: Optional[str] = None,
    ):
        self.path = Path(path)
        self.error = error
        self.time_unit = time_unit
        self.origin_date = origin_date
        self._time = None if time is None else _read_only(time)
        self._latitude = None if latitude is None else _read_only(latitude)
        self._longitude = None if longitude is None else _read_only(longitude)
        self._aqi = None if aqi is None else _read_only(aqi)
        if self.error is None:
            self.error = self._validate()

    @classmethod
    def failed(cls, path: Path, error: str) -> "AirQualityDataFile":
        logger.warning(error)
        return cls(path, error=error)

    def _validate(self) -> Optional[str]:
        arrays = (self._time, self._latitude, self._longitude, self._aqi)
        if any(array is None for array in arrays):
            return f"Incomplete air quality data in {self.path} file"
        if self.origin_date is None:
            return f"Missing time origin in {self.path} file"
        for name, axis in (
            ("time", self._time),
            ("latitude", self._latitude),
            ("longitude", self._longitude),
        ):
            if axis.ndim != 1 or axis.size == 0:
                return f"Empty or multidimensional {name} axis in {self.path} file"
        expected = (self._time.size, self._latitude.size, self._longitude.size)
        if self._aqi.shape != expected:
            return (
                f"AQI grid shape {self._aqi.shape} does not match axes {expected} "
                f"in {self.path} file"
            )
        return None

    def is_valid(self) -> bool:
        return self.error is None

    @property
    def time(self) -> np.ndarray:
        return self._time

    @property
    def latitude(self) -> np.ndarray:
        return self._latitude

    @property
    def longitude(self) -> np.ndarray:
        return self._longitude

    @property
    def aqi(self) -> np.ndarray:
        return self._aqi

    @property
    def time_size(self) -> int:
        return int(self._time.size)

    @property
    def origin_epoch_millis(self) -> int:
        """Epoch milliseconds of time index 0."""
        return int(self.timestamp_at(0).value // 1_000_000)

    def timestamp_at(self, time_index: int) -> pd.Timestamp:
        """Wall-clock time of the given time index."""
        offset = pd.to_timedelta(float(self._time[time_index]), unit=self.time_unit)
        return self.origin_date + offset

    def bounding_box(self) -> Envelope:
        """Envelope spanned by the first and last longitude and latitude entries."""
        return Envelope.from_corners(
            float(self._longitude[0]),
            float(self._longitude[-1]),
            float(self._latitude[0]),
            float(self._latitude[-1]),
        )


def _read_netcdf(
    path: Path,
    latitude_variable: str,
    longitude_variable: str,
    time_variable: str,
    aqi_variable: str,
) -> AirQualityDataFile:
    with xr.open_dataset(path, decode_times=False, mask_and_scale=False) as ds:
        for name in (time_variable, latitude_variable, longitude_variable, aqi_variable):
            if name not in ds.variables:
                return AirQualityDataFile.failed(path, f"Missing {name} variable from {path} file")

        aqi = ds[aqi_variable]
        if aqi.ndim != 3:
            return AirQualityDataFile.failed(
                path, f"{aqi_variable} variable in {path} file must have 3 dimensions, got {aqi.ndim}"
            )
        dims = (
            ds[time_variable].dims[0],
            ds[latitude_variable].dims[0],
            ds[longitude_variable].dims[0],
        )
        if set(dims) == set(aqi.dims):
            aqi = aqi.transpose(*dims)

        time_origin = parse_time_origin(ds[time_variable].attrs.get("units"))
        if time_origin is None:
            return AirQualityDataFile.failed(
                path, f"Missing time origin in {time_variable} variable of {path} file"
            )
        time_unit, origin_date = time_origin

        return AirQualityDataFile(
            path,
            time=ds[time_variable].values,
            latitude=ds[latitude_variable].values,
            longitude=ds[longitude_variable].values,
            aqi=aqi.values,
            origin_date=origin_date,
            time_unit=time_unit,
        )


def _read_geotiff(path: Path, time_origin_tag: str) -> AirQualityDataFile:
    with rasterio.open(path) as src:
        if src.crs is not None and not src.crs.is_geographic:
            return AirQualityDataFile.failed(
                path, f"Raster {path} must use geographic coordinates, found {src.crs}"
            )
        transform = src.transform
        if transform.b != 0 or transform.d != 0:
            return AirQualityDataFile.failed(path, f"Rotated raster {path} is not supported")

        tags = src.tags()
        time_origin = parse_time_origin(tags.get(time_origin_tag))
        if time_origin is None:
            return AirQualityDataFile.failed(
                path, f"Missing time origin tag {time_origin_tag} in {path} file"
            )
        time_unit, origin_date = time_origin

        # Pixel centre coordinates, one band per time step
        longitude = transform.c + (np.arange(src.width) + 0.5) * transform.a
        latitude = transform.f + (np.arange(src.height) + 0.5) * transform.e
        return AirQualityDataFile(
            path,
            time=np.arange(src.count),
            latitude=latitude,
            longitude=longitude,
            aqi=src.read(),
            origin_date=origin_date,
            time_unit=time_unit,
        )


def read_air_quality_data_file(
    path: Path,
    latitude_variable: str = "latitude",
    longitude_variable: str = "longitude",
    time_variable: str = "time",
    aqi_variable: str = "AQI",
    time_origin_tag: str = "time_origin",
) -> AirQualityDataFile:
    """
    Loads an air quality grid from a NetCDF or GeoTIFF file.

    Never raises for unreadable or incomplete data: the returned file carries
    the error message instead.

    Args:
        path (Path): NetCDF (.nc) or GeoTIFF (.tif) file.
        latitude_variable (str): NetCDF latitude axis variable.
        longitude_variable (str): NetCDF longitude axis variable.
        time_variable (str): NetCDF time axis variable. Its ``units`` attribute
            (``"<unit> since <date>"``) provides the time origin.
        aqi_variable (str): NetCDF variable holding the AQI grid.
        time_origin_tag (str): GeoTIFF tag with the time origin, in the same
            ``"<unit> since <date>"`` form. Bands are consecutive time steps.

    Returns:
        AirQualityDataFile: Loaded data or a file carrying the load error.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    logger.info(f"Loading air quality data from: {path}")
    try:
        if suffix in NETCDF_SUFFIXES:
            data_file = _read_netcdf(
                path, latitude_variable, longitude_variable, time_variable, aqi_variable
            )
        elif suffix in GEOTIFF_SUFFIXES:
            data_file = _read_geotiff(path, time_origin_tag)
        else:
            return AirQualityDataFile.failed(path, f"Unsupported air quality file format: {path}")
    except (OSError, ValueError, KeyError) as e:
        return AirQualityDataFile.failed(path, str(e))

    if data_file.is_valid():
        logger.info(
            f"Loaded air quality grid {data_file.aqi.shape} (time, lat, lon) "
            f"starting at {data_file.origin_date.isoformat()}"
        )
    else:
        logger.warning(data_file.error)
    return data_file
