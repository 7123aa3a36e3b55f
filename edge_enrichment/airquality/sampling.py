import logging
import math
from typing import Iterator, Sequence, Tuple

import numpy as np
from pyproj import Geod

logger = logging.getLogger(__name__)

GEOD = Geod(ellps="WGS84")
DEFAULT_SPACING = 12.0  # Meters
FORWARD_CHUNK_SIZE = 1024


def closest_index(axis: Sequence[float], value: float) -> int:
    """
    Returns the index of the axis entry closest to ``value``.

    The axis is scanned from the start and the scan stops at the first entry
    that is not strictly closer than the best one so far, so the axis must be
    monotonic. Equal distances resolve to the lower index. Values outside the
    axis range resolve to the first or last index.
    """
    distance = math.inf

    for i, current in enumerate(axis):
        current_distance = abs(current - value)
        if current_distance < distance:
            distance = current_distance
        else:
            return i - 1

    return len(axis) - 1


class GeodesicSampler:
    """
    Sample points along the geodesic between two (longitude, latitude) points.

    Points start at the origin and advance ``spacing`` meters along the forward
    azimuth, ``floor(distance / spacing)`` of them. The destination itself is
    never included. Iterating twice yields the same points.
    """

    def __init__(
        self,
        from_lon: float,
        from_lat: float,
        to_lon: float,
        to_lat: float,
        spacing: float = DEFAULT_SPACING,
    ):
        if spacing <= 0:
            raise ValueError(f"Sample spacing must be positive, got {spacing}")
        self.from_lon = from_lon
        self.from_lat = from_lat
        self.spacing = spacing
        azimuth, _, distance = GEOD.inv(from_lon, from_lat, to_lon, to_lat)
        self.azimuth = azimuth
        self.distance = distance

    def __len__(self) -> int:
        return int(math.floor(self.distance / self.spacing))

    def __iter__(self) -> Iterator[Tuple[float, float]]:
        count = len(self)
        for start in range(0, count, FORWARD_CHUNK_SIZE):
            steps = np.arange(start, min(start + FORWARD_CHUNK_SIZE, count))
            size = len(steps)
            lons, lats, _ = GEOD.fwd(
                np.full(size, self.from_lon),
                np.full(size, self.from_lat),
                np.full(size, self.azimuth),
                steps * self.spacing,
            )
            yield from zip(lons.tolist(), lats.tolist())
