"""
SQLite storage for stations, readings and forecasts.
"""

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from .models import Reading, Station

logger = logging.getLogger(__name__)

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS metros (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS districts (
    id INTEGER PRIMARY KEY,
    metro_id INTEGER NOT NULL REFERENCES metros(id),
    name TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS emds (
    id INTEGER PRIMARY KEY,
    district_id INTEGER NOT NULL REFERENCES districts(id),
    code TEXT NOT NULL,
    name TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS weather_stations (
    id INTEGER PRIMARY KEY,
    stn_id TEXT NOT NULL,
    name TEXT NOT NULL,
    lat REAL NOT NULL,
    lon REAL NOT NULL,
    emd_id INTEGER REFERENCES emds(id)
);
CREATE TABLE IF NOT EXISTS rainfall_realtime (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    station_id INTEGER NOT NULL REFERENCES weather_stations(id),
    rainfall_15min REAL NOT NULL,
    timestamp TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS rainfall_forecast (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    station_id INTEGER NOT NULL REFERENCES weather_stations(id),
    base_time TEXT NOT NULL,
    forecast_time TEXT NOT NULL,
    rainfall_forecast REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_realtime_station ON rainfall_realtime(station_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_forecast_station ON rainfall_forecast(station_id, base_time);
"""

_STATION_SELECT = """
    SELECT ws.id, ws.stn_id, ws.name, ws.lat, ws.lon,
           e.code, e.name, d.id, d.metro_id
    FROM weather_stations ws
    LEFT JOIN emds e ON ws.emd_id = e.id
    LEFT JOIN districts d ON e.district_id = d.id
"""


def _ts(moment: datetime) -> str:
    """Format a datetime as a UTC timestamp string; naive values are UTC."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(_TIME_FORMAT)


def _station(row: Iterable[Any]) -> Station:
    id_, stn_id, name, lat, lon, emd_code, emd_name, district_id, metro_id = row
    return Station(
        id=id_,
        stn_id=str(stn_id),
        name=name,
        lat=lat,
        lon=lon,
        emd_code=emd_code,
        emd_name=emd_name,
        district_id=district_id,
        metro_id=metro_id,
    )


class RainfallStore:
    """
    Station directory and rainfall records.

    Args:
        path: SQLite database file, or ``":memory:"``
    """

    def __init__(self, path: str = "rainfall.db"):
        self.path = path
        self._conn = sqlite3.connect(path)
        with self._conn:
            self._conn.executescript(_SCHEMA)
        logger.debug(f"Opened rainfall store at {path}")

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "RainfallStore":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    # Directory

    def add_region(self, region_id: int, name: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO metros (id, name) VALUES (?, ?)", (region_id, name)
            )

    def add_district(self, district_id: int, region_id: int, name: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO districts (id, metro_id, name) VALUES (?, ?, ?)",
                (district_id, region_id, name),
            )

    def add_emd(self, emd_id: int, district_id: int, code: str, name: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO emds (id, district_id, code, name) VALUES (?, ?, ?, ?)",
                (emd_id, district_id, code, name),
            )

    def add_station(
        self,
        station_id: int,
        stn_id: str,
        name: str,
        lat: float,
        lon: float,
        emd_id: Optional[int] = None,
    ) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO weather_stations (id, stn_id, name, lat, lon, emd_id)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (station_id, stn_id, name, lat, lon, emd_id),
            )

    def all_stations(self) -> List[Station]:
        rows = self._conn.execute(_STATION_SELECT + " ORDER BY ws.id").fetchall()
        return [_station(row) for row in rows]

    def stations_in_regions(self, region_ids: Iterable[int]) -> List[Station]:
        """Stations whose region is one of ``region_ids``."""
        ids = sorted(set(region_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        rows = self._conn.execute(
            _STATION_SELECT + f" WHERE d.metro_id IN ({placeholders}) ORDER BY ws.id", ids
        ).fetchall()
        return [_station(row) for row in rows]

    def stations_outside_regions(self, region_ids: Iterable[int]) -> List[Station]:
        """Stations not in any of ``region_ids``, including unassigned ones."""
        ids = sorted(set(region_ids))
        if not ids:
            return self.all_stations()
        placeholders = ",".join("?" for _ in ids)
        rows = self._conn.execute(
            _STATION_SELECT
            + f" WHERE d.metro_id IS NULL OR d.metro_id NOT IN ({placeholders}) ORDER BY ws.id",
            ids,
        ).fetchall()
        return [_station(row) for row in rows]

    # Records

    def insert_reading(self, reading: Reading) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT INTO rainfall_realtime (station_id, rainfall_15min, timestamp) VALUES (?, ?, ?)",
                (reading.station_id, reading.realtime_15min, _ts(reading.timestamp)),
            )

    def insert_forecast(self, station_id: int, base_time: datetime, value: float) -> None:
        """Record the hourly forecast valid for the hour after ``base_time``."""
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO rainfall_forecast (station_id, base_time, forecast_time, rainfall_forecast)
                VALUES (?, ?, ?, ?)
                """,
                (station_id, _ts(base_time), _ts(base_time + timedelta(hours=1)), value),
            )

    def latest_readings(
        self,
        now: datetime,
        freshness: float = 30 * 60,
        district_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Most recent reading and forecast per station.

        Records older than ``freshness`` seconds are ignored, so a station
        without a recent record reports 0 for both values.

        Args:
            now: Reference time
            freshness: Window in seconds
            district_id: Limit to one district

        Returns:
            List of dicts with station, emd and rainfall values
        """
        since = _ts(now - timedelta(seconds=freshness))
        query = """
            SELECT
                ws.id AS station_id,
                ws.stn_id AS stn_id,
                ws.name AS station_name,
                e.code AS emd_code,
                e.name AS emd_name,
                d.id AS district_id,
                COALESCE(rr.rainfall_15min, 0) AS realtime_15min,
                COALESCE(rf.rainfall_forecast, 0) AS forecast_hourly
            FROM weather_stations ws
            LEFT JOIN emds e ON ws.emd_id = e.id
            LEFT JOIN districts d ON e.district_id = d.id
            LEFT JOIN rainfall_realtime rr ON rr.id = (
                SELECT MAX(id) FROM rainfall_realtime
                WHERE station_id = ws.id AND timestamp >= ?
            )
            LEFT JOIN rainfall_forecast rf ON rf.id = (
                SELECT MAX(id) FROM rainfall_forecast
                WHERE station_id = ws.id AND base_time >= ?
            )
        """
        params: List[Any] = [since, since]
        if district_id is not None:
            query += " WHERE d.id = ?"
            params.append(district_id)
        query += " ORDER BY ws.id"

        cursor = self._conn.execute(query, params)
        columns = [col[0] for col in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def latest_readings_frame(
        self,
        now: datetime,
        freshness: float = 30 * 60,
        district_id: Optional[int] = None,
    ) -> Any:
        """Latest readings as a pandas DataFrame."""
        try:
            import pandas as pd
        except ImportError:
            raise ImportError(
                "pandas is required for DataFrame export. Install with: pip install pandas"
            ) from None

        rows = self.latest_readings(now, freshness, district_id)
        columns = [
            "station_id",
            "stn_id",
            "station_name",
            "emd_code",
            "emd_name",
            "district_id",
            "realtime_15min",
            "forecast_hourly",
        ]
        return pd.DataFrame(rows, columns=columns)

    def prune(self, before: datetime) -> int:
        """
        Delete readings and forecasts recorded before ``before``.

        Returns:
            Number of deleted rows
        """
        cutoff = _ts(before)
        with self._conn:
            realtime = self._conn.execute(
                "DELETE FROM rainfall_realtime WHERE timestamp < ?", (cutoff,)
            ).rowcount
            forecast = self._conn.execute(
                "DELETE FROM rainfall_forecast WHERE base_time < ?", (cutoff,)
            ).rowcount
        deleted = realtime + forecast
        if deleted:
            logger.debug(f"Pruned {realtime} readings and {forecast} forecasts before {cutoff}")
        return deleted
