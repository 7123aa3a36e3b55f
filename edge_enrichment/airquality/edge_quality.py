import math
from collections import defaultdict
from typing import Dict, List

import numpy as np


def round_half_away_from_zero(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


class EdgeAirQuality:
    """
    Air quality samples of a single edge grouped by time index.

    Used only while one edge is being attributed. Samples are summed as Python
    floats and only narrowed to ``dtype`` after averaging. Non-finite samples
    (nodata cells of float grids) are ignored.
    """

    def __init__(self, dtype=np.int8):
        self.dtype = np.dtype(dtype)
        self.air_qualities: Dict[int, List[float]] = defaultdict(list)

    def add_air_quality_sample(self, time: int, air_quality: float):
        if time < 0:
            raise IndexError(f"Time index must not be negative, got {time}")
        value = float(air_quality)
        if not math.isfinite(value):
            return
        self.air_qualities[time].append(value)

    def get_air_quality(self, time: int):
        """Rounded average of the samples at ``time``, zero when there are none."""
        values = self.air_qualities.get(time)
        if not values:
            return self.dtype.type(0)
        return self.dtype.type(round_half_away_from_zero(math.fsum(values) / len(values)))

    def get_air_qualities(self, times: int) -> np.ndarray:
        """Averages for time indices ``0 .. times - 1``."""
        return np.array([self.get_air_quality(time) for time in range(times)], dtype=self.dtype)

    def __len__(self):
        return sum(len(values) for values in self.air_qualities.values())
