"""Geospatial value types used by spatial criteria and parameter binding."""

from dataclasses import dataclass
from enum import Enum


class Metrics(str, Enum):
    """Distance units understood by the repository layer."""

    KILOMETERS = "km"
    MILES = "mi"


MILES_TO_KILOMETERS = 1.609344


@dataclass(frozen=True)
class GeoLocation:
    """A point given as latitude and longitude in degrees."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class Distance:
    """A distance with its unit. Solr spatial filters expect kilometres."""

    value: float
    metric: Metrics = Metrics.KILOMETERS

    @property
    def kilometers(self) -> float:
        if self.metric == Metrics.MILES:
            return self.value * MILES_TO_KILOMETERS
        return float(self.value)
