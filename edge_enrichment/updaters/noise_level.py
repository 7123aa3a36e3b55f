import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from edge_enrichment.config import AppConfig
from edge_enrichment.exceptions import TransportError
from edge_enrichment.noise.edge_updater import NoiseLevelEdgeUpdater
from edge_enrichment.noise.ngsi_client import NgsiClient
from edge_enrichment.updaters.polling import PollingGraphUpdater

logger = logging.getLogger(__name__)


class NoiseLevelGraphUpdater(PollingGraphUpdater):
    """Polls an NGSI broker for recent noise observations and applies them to the graph."""

    def __init__(self, settings: AppConfig, client: Optional[NgsiClient] = None):
        super().__init__(settings, settings.updaters.noise_level_frequency_sec)
        self.client = client or NgsiClient(timeout=settings.updaters.request_timeout_sec)
        self.server_url: Optional[str] = None

    def configure(self):
        self.server_url = self.settings.updaters.noise_server_url
        logger.info(f"Configured noise level updater: server-url={self.server_url}")

    def run_polling(self):
        if not self.server_url:
            logger.warning("Noise level server url is not configured")
            return

        logger.info("Updating noise levels")
        updates_from = datetime.now(timezone.utc) - timedelta(
            minutes=self.settings.updaters.noise_lookback_minutes
        )
        try:
            noise_levels = self.client.list_noise_level_observed(self.server_url, updates_from)
        except TransportError as e:
            logger.error(f"Error updating noise levels: {e}")
            return
        if noise_levels is None:
            logger.error(f"Error fetching noise levels from {self.server_url}")
            return

        processing = self.settings.processing
        edge_updater = NoiseLevelEdgeUpdater(
            noise_levels,
            threshold=processing.noise_distance_threshold,
            floor_level=processing.noise_floor_level,
            envelope_margin=processing.noise_envelope_margin,
            measurement=self.settings.input_data.noise_level_measurement,
        )
        self.updater_manager.execute(edge_updater.update_graph)
