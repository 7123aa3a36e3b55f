from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class NgsiModel(BaseModel):
    """Base for NGSI entities. Unknown attributes are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Measurement(NgsiModel):
    type: Optional[str] = None
    value: Optional[float] = None


class DateObserved(NgsiModel):
    type: Optional[str] = None
    value: Optional[str] = None


class GeoPoint(NgsiModel):
    type: Optional[str] = None
    coordinates: Optional[List[Optional[float]]] = None  # [longitude, latitude]


class Location(NgsiModel):
    type: Optional[str] = None
    value: Optional[GeoPoint] = None


class NoiseLevelObserved(NgsiModel):
    """NGSI v2 ``NoiseLevelObserved`` entity."""

    id: Optional[str] = None
    type: Optional[str] = None
    location: Optional[Location] = None
    date_observed_from: Optional[DateObserved] = Field(default=None, alias="dateObservedFrom")
    date_observed_to: Optional[DateObserved] = Field(default=None, alias="dateObservedTo")
    la_eq: Optional[Measurement] = Field(default=None, alias="LAeq")
    la_max: Optional[Measurement] = Field(default=None, alias="LAmax")
    la_s: Optional[Measurement] = Field(default=None, alias="LAS")
    la_eq_d: Optional[Measurement] = Field(default=None, alias="LAeq_d")

    def measurement(self, name: str = "LAmax") -> Optional[float]:
        """Value of the measurement attribute with the given NGSI name, if present."""
        for field_name, field_info in type(self).model_fields.items():
            if field_info.alias == name:
                measurement = getattr(self, field_name)
                return None if measurement is None else measurement.value
        raise ValueError(f"Unknown noise measurement attribute: {name}")

    @property
    def coordinate(self) -> Optional[Tuple[float, float]]:
        """(longitude, latitude) of the observation, None if incomplete."""
        if self.location is None or self.location.value is None:
            return None
        coordinates = self.location.value.coordinates
        if coordinates is None or len(coordinates) < 2:
            return None
        if coordinates[0] is None or coordinates[1] is None:
            return None
        return coordinates[0], coordinates[1]


NOISE_LEVEL_LIST = TypeAdapter(List[NoiseLevelObserved])
