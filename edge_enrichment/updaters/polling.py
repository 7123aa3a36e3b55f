import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from edge_enrichment.config import AppConfig
from edge_enrichment.graph import StreetGraph

logger = logging.getLogger(__name__)

GraphWriterRunnable = Callable[[StreetGraph], None]


class GraphUpdaterManager:
    """Runs graph mutations one at a time."""

    def __init__(self, graph: StreetGraph):
        self.graph = graph
        self._lock = threading.Lock()

    def execute(self, runnable: GraphWriterRunnable):
        with self._lock:
            runnable(self.graph)


class PollingGraphUpdater(ABC):
    """Abstract base class for updaters that refresh the graph periodically."""

    def __init__(self, settings: AppConfig, frequency_sec: float):
        self.settings = settings
        self.frequency_sec = frequency_sec
        self.updater_manager: Optional[GraphUpdaterManager] = None

    def set_graph_updater_manager(self, updater_manager: GraphUpdaterManager):
        self.updater_manager = updater_manager

    @abstractmethod
    def configure(self):
        """Read updater specific settings."""
        pass

    @abstractmethod
    def run_polling(self):
        """Fetch data and apply it to the graph through the updater manager."""
        pass

    def setup(self):
        logger.info(f"Starting {type(self).__name__}")

    def teardown(self):
        logger.info(f"Stopping {type(self).__name__}")

    def run(self, stop_event: threading.Event, max_runs: Optional[int] = None):
        """Polls every ``frequency_sec`` seconds until ``stop_event`` is set."""
        if self.updater_manager is None:
            raise RuntimeError(f"{type(self).__name__} has no graph updater manager")
        self.configure()
        self.setup()
        runs = 0
        try:
            while not stop_event.is_set():
                try:
                    self.run_polling()
                except Exception as e:
                    logger.error(f"Error in {type(self).__name__} polling run: {e}", exc_info=True)
                runs += 1
                if max_runs is not None and runs >= max_runs:
                    break
                stop_event.wait(self.frequency_sec)
        finally:
            self.teardown()
