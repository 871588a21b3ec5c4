"""
Region names used in KMA warning bulletins and their region ids.

Bulletins name the metropolitan city or province an alert covers, sometimes
as a short form ("서울") or a sub-area ("경기도남부"). Every form maps to the
id of the enclosing metro/province.
"""

import re
from typing import Dict, FrozenSet, Iterable, List, Optional

from .kma.models import RainAlert

REGION_NAME_TO_ID: Dict[str, int] = {
    "서울특별시": 1,
    "서울": 1,
    "부산광역시": 2,
    "부산": 2,
    "대구광역시": 3,
    "대구": 3,
    "인천광역시": 4,
    "인천": 4,
    "광주광역시": 5,
    "광주": 5,
    "대전광역시": 6,
    "대전": 6,
    "울산광역시": 7,
    "울산": 7,
    "세종특별자치시": 8,
    "세종": 8,
    "경기도": 9,
    "경기도남부": 9,
    "경기도북부": 9,
    "경기남부": 9,
    "경기북부": 9,
    "강원특별자치도": 10,
    "강원도": 10,
    "강원도영서": 10,
    "강원도영동": 10,
    "강원영서": 10,
    "강원영동": 10,
    "강원": 10,
    "충청북도": 11,
    "충북": 11,
    "충청남도": 12,
    "충남": 12,
    "전북특별자치도": 13,
    "전라북도": 13,
    "전북": 13,
    "전라남도": 14,
    "전남": 14,
    "경상북도": 15,
    "경북": 15,
    "경북북부": 15,
    "경북남부": 15,
    "경상남도": 16,
    "경남": 16,
    "경남서부": 16,
    "경남동부": 16,
    "제주특별자치도": 17,
    "제주도": 17,
    "제주": 17,
}

# Only watches (주의보) and warnings (경보) for heavy rain (호우) qualify;
# advisory previews and other hazards do not match.
_ALERT_TITLE = re.compile(r"^(호우)(주의보|경보)\s*:\s*(.+)$")


def parse_alert_title(line: Optional[str]) -> Optional[RainAlert]:
    """
    Parse a bulletin title line such as ``"호우주의보 : 서울특별시, 경기도남부"``.

    Returns:
        RainAlert, or None when the line is not a heavy-rain watch or warning
    """
    if not line:
        return None
    match = _ALERT_TITLE.match(line.strip())
    if not match:
        return None
    regions = tuple(r.strip() for r in match.group(3).split(",") if r.strip())
    return RainAlert(hazard=match.group(1), level=match.group(2), regions=regions, raw=line.strip())


def parse_bulletin_text(text: str) -> List[RainAlert]:
    """Parse every qualifying line of a bulletin body."""
    alerts = []
    for line in text.splitlines():
        alert = parse_alert_title(line)
        if alert is not None:
            alerts.append(alert)
    return alerts


def resolve_regions(names: Iterable[str]) -> FrozenSet[int]:
    """Map region names to region ids, dropping names that are not known."""
    return frozenset(
        REGION_NAME_TO_ID[name] for name in names if name in REGION_NAME_TO_ID
    )
