"""
KMA 5 km forecast grid projection.

Converts WGS84 coordinates to the (nx, ny) indices used by the KMA
short-term forecast products. The grid is a Lambert conformal conic
projection with standard parallels 30N/60N, origin 38N 126E and grid
origin (43, 136).
"""

from dataclasses import dataclass
from math import cos, floor, log, pi, sin, tan

EARTH_RADIUS_KM = 6371.00877
GRID_SPACING_KM = 5.0
STANDARD_LAT_1 = 30.0
STANDARD_LAT_2 = 60.0
ORIGIN_LON = 126.0
ORIGIN_LAT = 38.0
ORIGIN_X = 43
ORIGIN_Y = 136

_DEGRAD = pi / 180.0


@dataclass(frozen=True)
class GridCell:
    """A KMA forecast grid cell."""

    nx: int
    ny: int

    @property
    def key(self) -> str:
        return f"{self.nx},{self.ny}"

    def __str__(self) -> str:
        return self.key


def _projection_constants():
    re = EARTH_RADIUS_KM / GRID_SPACING_KM
    slat1 = STANDARD_LAT_1 * _DEGRAD
    slat2 = STANDARD_LAT_2 * _DEGRAD
    olat = ORIGIN_LAT * _DEGRAD

    sn = tan(pi * 0.25 + slat2 * 0.5) / tan(pi * 0.25 + slat1 * 0.5)
    sn = log(cos(slat1) / cos(slat2)) / log(sn)
    sf = tan(pi * 0.25 + slat1 * 0.5)
    sf = (sf**sn) * cos(slat1) / sn
    ro = tan(pi * 0.25 + olat * 0.5)
    ro = re * sf / (ro**sn)
    return re, sn, sf, ro


_RE, _SN, _SF, _RO = _projection_constants()


def to_grid(lat: float, lon: float) -> GridCell:
    """
    Project a latitude/longitude pair onto the KMA forecast grid.

    Args:
        lat: Latitude in decimal degrees
        lon: Longitude in decimal degrees

    Returns:
        GridCell with the (nx, ny) indices

    Examples:
        >>> to_grid(37.5665, 126.9780)  # Seoul City Hall
        GridCell(nx=60, ny=127)
    """
    ra = tan(pi * 0.25 + lat * _DEGRAD * 0.5)
    ra = _RE * _SF / (ra**_SN)
    theta = lon * _DEGRAD - ORIGIN_LON * _DEGRAD
    if theta > pi:
        theta -= 2.0 * pi
    if theta < -pi:
        theta += 2.0 * pi
    theta *= _SN

    nx = floor(ra * sin(theta) + ORIGIN_X + 0.5)
    ny = floor(_RO - ra * cos(theta) + ORIGIN_Y + 0.5)
    return GridCell(int(nx), int(ny))
