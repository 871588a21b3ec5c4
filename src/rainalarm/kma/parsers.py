"""
Parsers for KMA payloads.

The data portal answers with a JSON envelope; the APIHUB endpoints answer
with whitespace or comma separated text tables whose column layout is
announced in ``#`` header lines. Rows that cannot be parsed are skipped:
a malformed payload yields fewer values, never an exception.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from .grid import GridCell
from .models import AWSObservation, AWSSnapshot, PrecipitationValue, WarningBulletin

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")
_RN15_COLUMN = re.compile(r"^(RN[-_]?15|R_?15M?$|15M$)")


def to_float(raw: Any) -> Optional[float]:
    """
    Read the leading number of a KMA value.

    Values such as ``"1.0mm"`` or ``"30.0~50.0mm"`` yield their leading
    number; ``"강수없음"`` (no precipitation), empty and non-numeric values
    yield None.
    """
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    match = _LEADING_NUMBER.match(str(raw))
    if not match:
        return None
    return float(match.group(1))


def to_int(raw: Any) -> Optional[int]:
    value = to_float(raw)
    return None if value is None else int(value)


def _non_negative(value: Optional[float]) -> float:
    # Missing-value sentinels (-999, -998.9) count as no rain
    if value is None or value < 0:
        return 0.0
    return round(value, 1)


def items_from_envelope(payload: Any) -> List[Dict[str, Any]]:
    """Return ``response.body.items.item`` as a list of dicts."""
    try:
        raw = payload["response"]["body"]["items"]["item"]
    except (KeyError, TypeError):
        return []
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, dict)]


def parse_nowcast_items(items: Iterable[Dict[str, Any]]) -> Optional[PrecipitationValue]:
    """
    Parse getUltraSrtNcst items into the rolling one-hour accumulation (RN1).

    A missing PTY item counts as no precipitation, so a residual RN1 left
    over after the rain stopped reads as 0.

    Returns:
        PrecipitationValue, or None when the payload carried no items
    """
    items = list(items)
    if not items:
        return None

    by_category = {item.get("category"): item for item in items}
    pty_item = by_category.get("PTY")
    pty = to_int(pty_item.get("obsrValue")) if pty_item else None
    if pty is None:
        pty = 0

    rn1_item = by_category.get("RN1")
    amount = _non_negative(to_float(rn1_item.get("obsrValue")) if rn1_item else None)
    return PrecipitationValue(amount=amount, pty=pty)


def parse_forecast_items(items: Iterable[Dict[str, Any]]) -> Optional[PrecipitationValue]:
    """
    Parse getUltraSrtFcst items into the nearest hourly forecast (RN1).

    The PTY item forecast for the same hour decides whether rain is expected;
    when it is missing the forecast counts as no precipitation.

    Returns:
        PrecipitationValue for the earliest forecast hour, or None when the
        payload had no RN1 items
    """
    items = list(items)
    rn1_items = [item for item in items if item.get("category") == "RN1"]
    if not rn1_items:
        return None

    first = min(
        rn1_items, key=lambda i: (str(i.get("fcstDate", "")), str(i.get("fcstTime", "")))
    )
    pty = 0
    for item in items:
        if (
            item.get("category") == "PTY"
            and item.get("fcstDate") == first.get("fcstDate")
            and item.get("fcstTime") == first.get("fcstTime")
        ):
            pty = to_int(item.get("fcstValue")) or 0
            break

    return PrecipitationValue(amount=_non_negative(to_float(first.get("fcstValue"))), pty=pty)


def _header_tokens(line: str) -> List[str]:
    return line.lstrip("#").strip().upper().split()


def _split_row(line: str) -> List[str]:
    if "," in line:
        parts = [part.strip() for part in line.split(",")]
    else:
        parts = line.split()
    return [part for part in parts if part != "="]


def parse_aws_text(text: str, tm: str = "") -> AWSSnapshot:
    """
    Parse the national AWS minute/10-minute observation table.

    The header line containing ``STN`` names the columns; the 15-minute
    rainfall column is detected by name (``RN-15m``, ``RN_15M``, ``RN15``...).
    Data rows may be comma or whitespace separated.

    Returns:
        AWSSnapshot keyed by numeric station id (empty when the header is
        missing)
    """
    snapshot = AWSSnapshot(tm=tm)
    lines = text.splitlines()

    col_stn = col_rn15 = col_lat = col_lon = -1
    for line in lines:
        stripped = line.strip()
        if not stripped.startswith("#"):
            continue
        tokens = _header_tokens(stripped)
        if "STN" not in tokens:
            continue
        for index, token in enumerate(tokens):
            if token in ("STN", "STN_ID"):
                col_stn = index
            elif _RN15_COLUMN.match(token):
                col_rn15 = index
            elif token == "LAT":
                col_lat = index
            elif token in ("LON", "LNG"):
                col_lon = index
        break

    if col_stn < 0:
        logger.warning("AWS payload has no STN header; treating as empty")
        return snapshot
    if col_rn15 < 0:
        logger.warning("AWS payload has no 15-minute rainfall column")

    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        parts = _split_row(stripped)
        if len(parts) <= col_stn:
            continue
        stn = parts[col_stn]
        if not stn.isdigit():
            continue

        def column(index: int) -> Optional[float]:
            if index < 0 or index >= len(parts):
                return None
            return to_float(parts[index])

        rn15 = column(col_rn15)
        snapshot.stations[stn] = AWSObservation(
            stn_id=stn,
            rn15=round(rn15, 1) if rn15 is not None and rn15 >= 0 else None,
            lat=column(col_lat),
            lon=column(col_lon),
        )

    return snapshot


def parse_vsrt_grid_text(text: str) -> Dict[GridCell, PrecipitationValue]:
    """
    Parse the national radar nowcast grid (nph-dfs_vsrt_grd).

    Columns are located from a ``# TM_FC TM_EF NX NY RN1 PTY`` header when one
    is present, otherwise that order is assumed. A missing PTY column leaves
    the type unknown, which does not force the amount to 0.
    """
    grid: Dict[GridCell, PrecipitationValue] = {}
    col_nx = col_ny = col_rn1 = col_pty = -1

    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith("#"):
            for index, token in enumerate(_header_tokens(stripped)):
                if token == "NX":
                    col_nx = index
                elif token == "NY":
                    col_ny = index
                elif token == "RN1":
                    col_rn1 = index
                elif token == "PTY":
                    col_pty = index
            continue

        parts = stripped.split()
        if col_nx >= 0 and col_ny >= 0 and col_rn1 >= 0 and len(parts) > col_rn1:
            nx, ny = to_int(parts[col_nx]), to_int(parts[col_ny])
            rn1 = to_float(parts[col_rn1])
            pty = to_int(parts[col_pty]) if 0 <= col_pty < len(parts) else None
        elif len(parts) >= 5:
            nx, ny = to_int(parts[2]), to_int(parts[3])
            rn1 = to_float(parts[4])
            pty = to_int(parts[5]) if len(parts) >= 6 else None
        else:
            continue

        if nx is None or ny is None:
            continue
        grid[GridCell(nx, ny)] = PrecipitationValue(amount=_non_negative(rn1), pty=pty)

    return grid


def parse_warning_items(items: Iterable[Dict[str, Any]]) -> List[WarningBulletin]:
    """Parse getWthrWrnList items into bulletins tagged with their issuing office."""
    bulletins = []
    for item in items:
        authority = item.get("stnId", item.get("stn_id"))
        issued_at = to_int(item.get("tmFc")) or 0
        bulletins.append(
            WarningBulletin(
                authority=str(authority) if authority not in (None, "") else "national",
                issued_at=issued_at,
                text=str(item.get("t2") or ""),
            )
        )
    return bulletins
