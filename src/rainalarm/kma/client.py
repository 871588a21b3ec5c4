"""
KMA (Korea Meteorological Administration) client for rainalarm.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from .exceptions import KMAConnectionError, KMAError, KMAQueryError
from .grid import GridCell
from .models import AWSSnapshot, PrecipitationValue, WarningBulletin
from .parsers import (
    items_from_envelope,
    parse_aws_text,
    parse_forecast_items,
    parse_nowcast_items,
    parse_vsrt_grid_text,
    parse_warning_items,
)
from .quota import DailyQuota, QuotaUsage

logger = logging.getLogger(__name__)

# resultCode values of the data portal envelope that carry usable data
_RESULT_OK = "00"
_RESULT_NO_DATA = "03"


class KMAClient:
    """
    Client for the KMA data portal and the KMA APIHUB.

    The data portal (apis.data.go.kr) serves per-grid-cell nowcasts and
    forecasts and the warning bulletin list. The APIHUB (apihub.kma.go.kr)
    serves national tables in a single call: the AWS 15-minute rainfall
    snapshot and the radar-based nowcast grid.

    Every request counts against a shared :class:`DailyQuota`.
    """

    PORTAL_URL = "https://apis.data.go.kr/1360000"
    APIHUB_URL = "https://apihub.kma.go.kr/api/typ01/cgi-bin/url"

    FORECAST_SERVICE = "VilageFcstInfoService_2.0"
    WARNING_SERVICE = "WthrWrnInfoService"

    def __init__(
        self,
        api_key: Optional[str] = None,
        apihub_key: Optional[str] = None,
        timeout: float = 15.0,
        apihub_timeout: float = 30.0,
        quota: Optional[DailyQuota] = None,
    ):
        self.api_key = api_key
        self.apihub_key = apihub_key
        self.timeout = timeout
        self.apihub_timeout = apihub_timeout
        self.quota = quota or DailyQuota()
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "User-Agent": "rainalarm-kma-client/0.1.0",
                "Accept": "application/json, text/plain",
            },
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "KMAClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def has_apihub(self) -> bool:
        return bool(self.apihub_key)

    def usage(self) -> QuotaUsage:
        """Return today's call usage."""
        return self.quota.usage()

    async def _make_request(
        self,
        url: str,
        params: Dict[str, Any],
        timeout: Optional[float] = None,
        as_text: bool = False,
    ) -> Any:
        """Make a quota-guarded request with error handling."""
        operation = url.rsplit("/", 1)[-1]
        self.quota.acquire(operation)
        timeout = timeout or self.timeout

        try:
            response = await self._client.get(url, params=params, timeout=timeout)
            response.raise_for_status()
            if as_text:
                return response.text
            return response.json()

        except httpx.TimeoutException as e:
            raise KMAConnectionError(f"Request timeout after {timeout}s") from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise KMAQueryError(f"{operation} not found") from e
            elif e.response.status_code == 429:
                raise KMAConnectionError("Rate limit exceeded") from e
            elif e.response.status_code >= 500:
                raise KMAConnectionError("KMA service temporarily unavailable") from e
            else:
                raise KMAConnectionError(
                    f"HTTP error {e.response.status_code}: {e}"
                ) from e
        except httpx.RequestError as e:
            raise KMAConnectionError(f"Network error: {e}") from e
        except json.JSONDecodeError as e:
            raise KMAQueryError(f"Invalid JSON response: {e}") from e

    async def _portal_items(
        self, service: str, operation: str, params: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        """Call a data portal operation and unwrap the item list."""
        query = {"serviceKey": self.api_key, "dataType": "JSON", "pageNo": 1}
        query.update(params)
        data = await self._make_request(f"{self.PORTAL_URL}/{service}/{operation}", query)

        try:
            code = str(data["response"]["header"]["resultCode"])
        except (KeyError, TypeError) as e:
            raise KMAQueryError(f"{operation}: unexpected response envelope") from e

        if code == _RESULT_NO_DATA:
            return []
        if code != _RESULT_OK:
            message = data["response"]["header"].get("resultMsg", "")
            raise KMAQueryError(f"{operation}: resultCode {code} {message}".strip())

        return items_from_envelope(data)

    async def get_ultra_srt_ncst(
        self, cell: GridCell, base_date: str, base_time: str
    ) -> Optional[PrecipitationValue]:
        """
        Get the ultra-short nowcast for a grid cell.

        Args:
            cell: Forecast grid cell
            base_date: Base date in YYYYMMDD format
            base_time: Base time in HH00 format

        Returns:
            Rolling one-hour accumulation (RN1) with its PTY, or None when the
            portal returned no data for the cell
        """
        items = await self._portal_items(
            self.FORECAST_SERVICE,
            "getUltraSrtNcst",
            {
                "numOfRows": 10,
                "base_date": base_date,
                "base_time": base_time,
                "nx": cell.nx,
                "ny": cell.ny,
            },
        )
        value = parse_nowcast_items(items)
        logger.debug(f"getUltraSrtNcst {base_date} {base_time} ({cell}): {value}")
        return value

    async def get_ultra_srt_fcst(
        self, cell: GridCell, base_date: str, base_time: str
    ) -> Optional[PrecipitationValue]:
        """
        Get the ultra-short forecast for a grid cell.

        Args:
            cell: Forecast grid cell
            base_date: Base date in YYYYMMDD format
            base_time: Base time in HH30 format

        Returns:
            Nearest hourly RN1 forecast with its PTY, or None when absent
        """
        items = await self._portal_items(
            self.FORECAST_SERVICE,
            "getUltraSrtFcst",
            {
                "numOfRows": 60,
                "base_date": base_date,
                "base_time": base_time,
                "nx": cell.nx,
                "ny": cell.ny,
            },
        )
        value = parse_forecast_items(items)
        logger.debug(f"getUltraSrtFcst {base_date} {base_time} ({cell}): {value}")
        return value

    async def get_warning_list(self, from_date: str, to_date: str) -> List[WarningBulletin]:
        """
        Get the warning bulletins issued by every regional office.

        Args:
            from_date: First issuance date in YYYYMMDD format
            to_date: Last issuance date in YYYYMMDD format

        Returns:
            List of WarningBulletin objects
        """
        items = await self._portal_items(
            self.WARNING_SERVICE,
            "getWthrWrnList",
            {"numOfRows": 100, "fromTmFc": from_date, "toTmFc": to_date},
        )
        return parse_warning_items(items)

    async def get_aws_snapshot(self, tm: str) -> AWSSnapshot:
        """
        Get the national AWS 10-minute observation table.

        Args:
            tm: Observation time in YYYYMMDDHHMI format

        Returns:
            AWSSnapshot keyed by AWS station number
        """
        self._require_apihub()
        text = await self._make_request(
            f"{self.APIHUB_URL}/nph-aws1_10m",
            {"tm": tm, "stn": 0, "help": 1, "authKey": self.apihub_key},
            timeout=self.apihub_timeout,
            as_text=True,
        )
        snapshot = parse_aws_text(text, tm=tm)
        logger.info(f"AWS snapshot {tm}: {len(snapshot)} stations")
        return snapshot

    async def get_vsrt_grid(self, tmfc: str, tmef: str) -> Dict[GridCell, PrecipitationValue]:
        """
        Get the national radar-based nowcast grid.

        Args:
            tmfc: Issuance time in YYYYMMDDHHMI format
            tmef: Effective hour in YYYYMMDDHH format

        Returns:
            Mapping of grid cell to hourly rainfall (RN1) with PTY
        """
        self._require_apihub()
        text = await self._make_request(
            f"{self.APIHUB_URL}/nph-dfs_vsrt_grd",
            {"tmfc": tmfc, "tmef": tmef, "vars": "RN1:PTY", "authKey": self.apihub_key},
            timeout=self.apihub_timeout,
            as_text=True,
        )
        grid = parse_vsrt_grid_text(text)
        logger.info(f"VSRT grid {tmfc}/{tmef}: {len(grid)} points")
        return grid

    def _require_apihub(self) -> None:
        if not self.has_apihub:
            raise KMAError("KMA APIHUB key is not configured")
