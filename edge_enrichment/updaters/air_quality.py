import logging
from pathlib import Path
from typing import List

from edge_enrichment.airquality.updater import AirQualityUpdater
from edge_enrichment.config import AppConfig
from edge_enrichment.updaters.polling import PollingGraphUpdater

logger = logging.getLogger(__name__)


class AirQualityGraphUpdater(PollingGraphUpdater):
    """
    Re-reads the configured air quality files on every poll and applies them.

    Files are loaded and validated before the graph is locked, so a broken file
    is reported and the graph keeps its previous air quality values.
    """

    def __init__(self, settings: AppConfig):
        super().__init__(settings, settings.updaters.air_quality_frequency_sec)
        self.air_quality_files: List[Path] = []

    def configure(self):
        self.air_quality_files = list(self.settings.paths.air_quality_files)
        logger.info(
            f"Configured air quality updater: frequencySec={self.frequency_sec} "
            f"and files={[str(f) for f in self.air_quality_files]}"
        )

    def run_polling(self):
        missing = [f for f in self.air_quality_files if not Path(f).exists()]
        if missing:
            logger.warning(f"Air quality files {[str(f) for f in missing]} do not exist")
            return
        if not self.air_quality_files:
            logger.warning("No air quality files configured")
            return

        updater = AirQualityUpdater(self.air_quality_files, settings=self.settings)
        errors = updater.check_files()
        if errors:
            logger.warning(f"Errors {errors} in air quality files")
            return

        logger.info("Updating graph with air quality data")
        self.updater_manager.execute(updater.update_graph)
        logger.info("Updated graph with air quality data")
