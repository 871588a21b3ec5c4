"""
Data models for KMA observation, forecast and bulletin products.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

# PTY precipitation type codes: 0 none, 1 rain, 2 rain/snow, 3 snow,
# 5 drizzle, 6 drizzle/snow flurries, 7 snow flurries.
PTY_NONE = 0

# Squared-degree tolerance for nearest AWS site matching (about 50 km).
NEAREST_AWS_MAX_SQ_DEG = 0.2


@dataclass(frozen=True)
class PrecipitationValue:
    """A rainfall amount paired with the precipitation type reported with it."""

    amount: float
    pty: Optional[int] = None

    @property
    def value(self) -> float:
        """Rainfall amount, forced to 0 when PTY reports no precipitation."""
        if self.pty == PTY_NONE:
            return 0.0
        return self.amount


@dataclass(frozen=True)
class AWSObservation:
    """A single AWS site in the national 15-minute rainfall snapshot."""

    stn_id: str
    rn15: Optional[float]
    lat: Optional[float] = None
    lon: Optional[float] = None


@dataclass
class AWSSnapshot:
    """National AWS observation snapshot for one observation time."""

    tm: str
    stations: Dict[str, AWSObservation] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.stations)

    @property
    def has_coordinates(self) -> bool:
        return any(obs.lat is not None for obs in self.stations.values())

    def lookup(
        self,
        stn_id: str,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        max_sq_deg: float = NEAREST_AWS_MAX_SQ_DEG,
    ) -> Optional[float]:
        """
        Find the 15-minute rainfall for a station.

        The numeric part of ``stn_id`` is matched first. Stations that are not
        AWS sites themselves fall back to the nearest AWS site reporting
        coordinates, provided it lies within ``max_sq_deg``.

        Returns:
            Rainfall in mm, or None when no usable observation exists
        """
        digits = "".join(ch for ch in str(stn_id) if ch.isdigit())
        if digits:
            obs = self.stations.get(digits)
            if obs is not None and obs.rn15 is not None:
                return obs.rn15

        if lat is None or lon is None or not self.has_coordinates:
            return None

        nearest: Optional[AWSObservation] = None
        best = float("inf")
        for obs in self.stations.values():
            if obs.lat is None or obs.lon is None or obs.rn15 is None:
                continue
            dist = (obs.lat - lat) ** 2 + (obs.lon - lon) ** 2
            if dist < best:
                best = dist
                nearest = obs

        if nearest is not None and best < max_sq_deg:
            return nearest.rn15
        return None


@dataclass(frozen=True)
class WarningBulletin:
    """A weather warning bulletin issued by one regional office."""

    authority: str
    issued_at: int  # tmFc as YYYYMMDDHHMI
    text: str


@dataclass(frozen=True)
class RainAlert:
    """A heavy-rain watch or warning parsed from a bulletin line."""

    hazard: str
    level: str
    regions: Tuple[str, ...]
    raw: str
