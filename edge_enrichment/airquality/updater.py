import logging
from pathlib import Path
from typing import List, Optional, Sequence

from edge_enrichment.airquality.data_file import AirQualityDataFile, read_air_quality_data_file
from edge_enrichment.airquality.edge_updater import AirQualityEdgeUpdater, log_progress
from edge_enrichment.config import AppConfig
from edge_enrichment.exceptions import DatasetLoadError
from edge_enrichment.graph import StreetGraph

logger = logging.getLogger(__name__)


class AirQualityUpdater:
    """
    Applies one or more air quality files to a street graph.

    All files are loaded when the updater is created. Files are applied in the
    given order, so a later file overwrites edges also covered by an earlier one.
    """

    def __init__(
        self,
        aqi_files: Sequence[Path],
        settings: Optional[AppConfig] = None,
        progress_callback=log_progress,
    ):
        self.settings = settings or AppConfig()
        self.progress_callback = progress_callback
        self.data_files = self._load_air_quality_data_files(aqi_files)

    def _load_air_quality_data_files(self, aqi_files: Sequence[Path]) -> List[AirQualityDataFile]:
        input_data = self.settings.input_data
        return [
            read_air_quality_data_file(
                Path(aqi_file),
                latitude_variable=input_data.latitude_variable,
                longitude_variable=input_data.longitude_variable,
                time_variable=input_data.time_variable,
                aqi_variable=input_data.aqi_variable,
                time_origin_tag=input_data.geotiff_time_origin_tag,
            )
            for aqi_file in aqi_files
        ]

    def check_files(self) -> str:
        """Returns the errors of all invalid files joined with ', ', or an empty string."""
        return ", ".join(
            data_file.error for data_file in self.data_files if data_file.error is not None
        )

    def check_inputs(self):
        """Raises DatasetLoadError if any of the input files is invalid."""
        errors = self.check_files()
        if errors:
            raise DatasetLoadError(errors)

    def update_graph(self, graph: StreetGraph) -> int:
        """
        Updates street edges with air quality data.

        Raises DatasetLoadError without touching the graph when any file is invalid.
        Returns the number of edge updates written across all files.
        """
        self.check_inputs()
        return sum(self.update_edges(data_file, graph) for data_file in self.data_files)

    def update_edges(self, data_file: AirQualityDataFile, graph: StreetGraph) -> int:
        """Updates the street edges covered by the given data file."""
        data_bounding_box = data_file.bounding_box()
        data_edges = graph.edges_in_envelope(data_bounding_box)
        logger.info(
            f"Found {len(data_edges)} of {len(graph)} edges inside {data_file.path.name} "
            f"bounds {data_bounding_box.bounds}"
        )

        processing = self.settings.processing
        edge_updater = AirQualityEdgeUpdater(
            data_file,
            data_edges,
            spacing=processing.sample_spacing_m,
            report_every=processing.report_every_n_edges,
            progress_callback=self.progress_callback,
            workers=processing.dask_workers,
        )
        edges_updated = edge_updater.update_edges()
        logger.info(f"Updated {edges_updated} edges with air quality data from {data_file.path.name}")
        return edges_updated
