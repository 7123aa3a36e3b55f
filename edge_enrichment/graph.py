"""
Street graph model used by the attribution passes.

Edges are plain mutable records owned by the graph. Attribution passes read
their endpoints and geometry and write the computed air quality series or
noise level back onto the record.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
from shapely.geometry import LineString

from edge_enrichment.utils import explode_multilines, reproject_gdf

logger = logging.getLogger(__name__)

Coordinate = Tuple[float, float]  # (longitude, latitude)


@dataclass(frozen=True)
class Envelope:
    """Axis-aligned rectangle in (longitude, latitude) with inclusive bounds."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def from_corners(cls, x1: float, x2: float, y1: float, y2: float) -> "Envelope":
        """Builds an envelope from two corner ordinates in any order."""
        return cls(min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2))

    @classmethod
    def from_coordinates(cls, coordinates: Iterable[Coordinate]) -> Optional["Envelope"]:
        """Minimal envelope covering the coordinates, or None when there are none."""
        coords = list(coordinates)
        if not coords:
            return None
        xs = [c[0] for c in coords]
        ys = [c[1] for c in coords]
        return cls(min(xs), min(ys), max(xs), max(ys))

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return self.min_x, self.min_y, self.max_x, self.max_y

    def contains(self, other: "Envelope") -> bool:
        return (
            other.min_x >= self.min_x
            and other.max_x <= self.max_x
            and other.min_y >= self.min_y
            and other.max_y <= self.max_y
        )

    def expanded_by(self, distance: float) -> "Envelope":
        return Envelope(
            self.min_x - distance,
            self.min_y - distance,
            self.max_x + distance,
            self.max_y + distance,
        )


@dataclass(eq=False)
class StreetEdge:
    """A directed street edge with its environmental attributes."""

    id: object
    from_coord: Coordinate
    to_coord: Coordinate
    geometry: Optional[LineString] = None
    aqi: Optional[np.ndarray] = None
    aqi_time: Optional[int] = None  # Epoch milliseconds of aqi[0]
    noise_level: Optional[float] = None

    @property
    def start_point(self) -> Coordinate:
        if self.geometry is not None and not self.geometry.is_empty:
            x, y = self.geometry.coords[0][:2]
            return x, y
        return self.from_coord

    @property
    def end_point(self) -> Coordinate:
        if self.geometry is not None and not self.geometry.is_empty:
            x, y = self.geometry.coords[-1][:2]
            return x, y
        return self.to_coord

    def envelope(self) -> Envelope:
        return Envelope.from_corners(
            self.from_coord[0], self.to_coord[0], self.from_coord[1], self.to_coord[1]
        )

    def set_aqi(self, aqi: Sequence, aqi_time: int):
        self.aqi = np.asarray(aqi)
        self.aqi_time = aqi_time

    def set_noise_level(self, noise_level: float):
        self.noise_level = noise_level


@dataclass
class StreetGraph:
    """Collection of street edges shared by the graph updaters."""

    edges: List[StreetEdge] = field(default_factory=list)

    def street_edges(self) -> List[StreetEdge]:
        return self.edges

    def edges_in_envelope(self, envelope: Envelope) -> List[StreetEdge]:
        """Returns the edges whose endpoint envelope lies fully inside ``envelope``."""
        return [edge for edge in self.edges if envelope.contains(edge.envelope())]

    def __len__(self):
        return len(self.edges)

    @classmethod
    def from_geodataframe(
        cls, gdf: gpd.GeoDataFrame, id_field: str = "id", target_epsg: int = 4326
    ) -> "StreetGraph":
        """
        Builds a graph from LineString features.

        The first and last vertex of each line become the edge endpoints. Features
        are reprojected to ``target_epsg`` when their CRS differs.
        """
        if gdf.crs is None:
            logger.warning(f"Street edges have no CRS, assuming EPSG:{target_epsg}.")
            gdf = gdf.set_crs(epsg=target_epsg)
        gdf = reproject_gdf(gdf, target_epsg)
        gdf = explode_multilines(gdf)

        if id_field not in gdf.columns:
            logger.warning(f"Edge ID field '{id_field}' not found. Using row number as ID.")
            # Exploded parts share their source row index
            ids = gdf.reset_index(drop=True).index.tolist()
        else:
            ids = gdf[id_field].tolist()

        edges = []
        for edge_id, geometry in zip(ids, gdf.geometry):
            coords = list(geometry.coords)
            edges.append(
                StreetEdge(
                    id=edge_id,
                    from_coord=tuple(coords[0][:2]),
                    to_coord=tuple(coords[-1][:2]),
                    geometry=geometry,
                )
            )
        logger.info(f"Built street graph with {len(edges)} edges.")
        return cls(edges)

    def to_geodataframe(self, crs: str = "EPSG:4326") -> gpd.GeoDataFrame:
        """Exports the edges and their attributes. The AQI series is stored as a comma separated string."""
        records = []
        for edge in self.edges:
            geometry = edge.geometry
            if geometry is None:
                geometry = LineString([edge.from_coord, edge.to_coord])
            records.append(
                {
                    "id": edge.id,
                    "aqi": None if edge.aqi is None else ",".join(str(v) for v in edge.aqi.tolist()),
                    "aqi_time": edge.aqi_time,
                    "noise_level": edge.noise_level,
                    "geometry": geometry,
                }
            )
        gdf = gpd.GeoDataFrame(
            records, columns=["id", "aqi", "aqi_time", "noise_level", "geometry"], crs=crs
        )
        gdf["aqi_time"] = pd.array(gdf["aqi_time"], dtype="Int64")
        gdf["noise_level"] = pd.to_numeric(gdf["noise_level"])
        return gdf
