import logging
from typing import Callable, Iterator, List, Optional, Sequence

import dask
import numpy as np

from edge_enrichment.airquality.data_file import AirQualityDataFile
from edge_enrichment.airquality.edge_quality import EdgeAirQuality
from edge_enrichment.airquality.sampling import DEFAULT_SPACING, GeodesicSampler, closest_index
from edge_enrichment.exceptions import DatasetLoadError
from edge_enrichment.graph import StreetEdge

logger = logging.getLogger(__name__)

REPORT_EVERY_N_EDGE = 10000

ProgressCallback = Callable[[int, int], None]


def log_progress(edges_updated: int, edges_total: int):
    logger.info(f"{edges_updated} / {edges_total} street edges updated")


class AirQualityEdgeUpdater:
    """
    Writes the air quality series of a single data file onto street edges.

    Each edge is sampled every ``spacing`` meters along the geodesic between its
    endpoints. Every sample point is snapped to its nearest grid cell and the
    cell values of all time steps are averaged per time step. The averages and
    the data file's origin time replace whatever the edge held before. Edges
    shorter than the spacing get no samples and are left as they are.
    """

    def __init__(
        self,
        air_quality_data_file: AirQualityDataFile,
        street_edges: Sequence[StreetEdge],
        spacing: float = DEFAULT_SPACING,
        report_every: int = REPORT_EVERY_N_EDGE,
        progress_callback: Optional[ProgressCallback] = log_progress,
        workers: int = 1,
    ):
        if not air_quality_data_file.is_valid():
            raise DatasetLoadError(air_quality_data_file.error)
        self.air_quality_data_file = air_quality_data_file
        self.street_edges = list(street_edges)
        self.spacing = spacing
        self.report_every = report_every
        self.progress_callback = progress_callback
        self.workers = workers
        self.edges_updated = 0
        # Plain lists scan faster than numpy scalars in closest_index
        self._longitudes = air_quality_data_file.longitude.tolist()
        self._latitudes = air_quality_data_file.latitude.tolist()

    def update_edges(self) -> int:
        """Updates all edges and returns the number of edges written."""
        self.edges_updated = 0
        if self.workers > 1 and self.street_edges:
            averages = self._compute_averages_parallel()
        else:
            averages = (self.get_average_aq(edge) for edge in self.street_edges)

        for edge, aqi in zip(self.street_edges, averages):
            self._write_edge(edge, aqi)
        return self.edges_updated

    def _write_edge(self, street_edge: StreetEdge, aqi: Optional[np.ndarray]):
        if aqi is None:
            return
        street_edge.set_aqi(aqi, self.air_quality_data_file.origin_epoch_millis)
        self.edges_updated += 1

        if self.progress_callback and self.edges_updated % self.report_every == 0:
            self.progress_callback(self.edges_updated, len(self.street_edges))

    def _compute_averages_parallel(self) -> List[Optional[np.ndarray]]:
        batch_size = max(1, len(self.street_edges) // (self.workers * 4))
        batches = [
            self.street_edges[i : i + batch_size]
            for i in range(0, len(self.street_edges), batch_size)
        ]
        delayed_tasks = [dask.delayed(self._average_batch)(batch) for batch in batches]
        logger.info(
            f"Computing air quality for {len(self.street_edges)} edges in "
            f"{len(delayed_tasks)} batches on {self.workers} workers..."
        )
        computed_results = dask.compute(
            *delayed_tasks, scheduler="threads", num_workers=self.workers
        )
        return [aqi for batch in computed_results for aqi in batch]

    def _average_batch(self, edges: Sequence[StreetEdge]) -> List[Optional[np.ndarray]]:
        return [self.get_average_aq(edge) for edge in edges]

    def get_average_aq(self, street_edge: StreetEdge) -> Optional[np.ndarray]:
        """
        Returns the per time step average of the grid cells along the edge.

        None when the edge is too short to be sampled.
        """
        from_lon, from_lat = street_edge.from_coord
        to_lon, to_lat = street_edge.to_coord
        edge_air_quality = EdgeAirQuality(dtype=self.air_quality_data_file.aqi.dtype)

        samples = 0
        for sample in self.get_closest_samples(from_lon, from_lat, to_lon, to_lat):
            samples += 1
            for time, value in enumerate(sample.tolist()):
                edge_air_quality.add_air_quality_sample(time, value)

        if samples == 0:
            return None
        return edge_air_quality.get_air_qualities(self.air_quality_data_file.time_size)

    def get_closest_samples(
        self, from_lon: float, from_lat: float, to_lon: float, to_lat: float
    ) -> Iterator[np.ndarray]:
        """Yields the time series of the grid cell nearest to each sample point."""
        sampler = GeodesicSampler(from_lon, from_lat, to_lon, to_lat, spacing=self.spacing)
        for lon, lat in sampler:
            yield self.get_closest_aqi(lon, lat)

    def get_closest_aqi(self, lon: float, lat: float) -> np.ndarray:
        lon_index = closest_index(self._longitudes, lon)
        lat_index = closest_index(self._latitudes, lat)
        return self.air_quality_data_file.aqi[:, lat_index, lon_index]
