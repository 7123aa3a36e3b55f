import logging
import math
from typing import List, Optional, Sequence, Tuple

from edge_enrichment.graph import Envelope, StreetEdge, StreetGraph
from edge_enrichment.noise.models import NoiseLevelObserved

logger = logging.getLogger(__name__)

NoiseSource = Tuple[Tuple[float, float], float]  # ((lon, lat), level)

DEFAULT_DISTANCE_THRESHOLD = 0.005  # Degrees


def valid_noise_sources(
    noise_levels: Sequence[NoiseLevelObserved], measurement: str = "LAmax"
) -> List[NoiseSource]:
    """Observations with both a coordinate and a level. The rest are dropped."""
    sources = []
    for noise_level in noise_levels:
        if noise_level is None:
            continue
        coordinate = noise_level.coordinate
        level = noise_level.measurement(measurement)
        if coordinate is None or level is None:
            continue
        sources.append((coordinate, level))
    return sources


def noise_level_area(sources: Sequence[NoiseSource]) -> Optional[Envelope]:
    return Envelope.from_coordinates(coordinate for coordinate, _ in sources)


def edge_near_noise_source(
    noise_source: Tuple[float, float], edge: StreetEdge, threshold: float
) -> bool:
    """Planar distance test between the source and either edge endpoint."""
    x, y = noise_source
    for end_x, end_y in (edge.start_point, edge.end_point):
        if math.hypot(x - end_x, y - end_y) < threshold:
            return True
    return False


class NoiseLevelEdgeUpdater:
    """
    Assigns the loudest nearby noise observation to street edges.

    Each candidate edge is reset to the floor level, then raised to the level of
    every observation lying within ``threshold`` of one of its endpoints.
    """

    def __init__(
        self,
        noise_levels: Sequence[NoiseLevelObserved],
        threshold: float = DEFAULT_DISTANCE_THRESHOLD,
        floor_level: float = 0.0,
        envelope_margin: float = 0.0,
        measurement: str = "LAmax",
    ):
        self.sources = valid_noise_sources(noise_levels, measurement)
        self.threshold = threshold
        self.floor_level = floor_level
        self.envelope_margin = envelope_margin
        skipped = len(noise_levels) - len(self.sources)
        if skipped:
            logger.warning(f"Skipped {skipped} noise observations without location or {measurement}")

    def update_graph(self, graph: StreetGraph) -> int:
        """Updates the edges inside the observation area. Returns the number of raised levels."""
        area = noise_level_area(self.sources)
        if area is None:
            logger.warning("No valid noise observations, leaving edges untouched")
            return 0
        data_edges = graph.edges_in_envelope(area.expanded_by(self.envelope_margin))
        logger.info(f"Found {len(data_edges)} edges available for noise updates")
        updated_edges_count = self.update_edges(data_edges)
        logger.info(f"Updated {updated_edges_count} edges with noise data")
        return updated_edges_count

    def update_edges(self, edges: Sequence[StreetEdge]) -> int:
        updated_edges_count = 0
        for edge in edges:
            edge.set_noise_level(self.floor_level)
            for coordinate, noise_observed in self.sources:
                if noise_observed > edge.noise_level and edge_near_noise_source(
                    coordinate, edge, self.threshold
                ):
                    edge.set_noise_level(noise_observed)
                    updated_edges_count += 1
        return updated_edges_count
