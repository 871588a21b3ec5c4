"""
Regional heavy-rain alert state.

KMA regional offices each publish their own bulletins, and a later bulletin
from an office supersedes its earlier ones (including by lifting an alert).
The current alert picture is therefore the union of the latest bulletin of
every office.
"""

import dataclasses
import logging
from typing import Dict, Iterable, List, Optional

from .cache import EngineContext
from .exceptions import RainAlarmError
from .kma.models import RainAlert, WarningBulletin
from .models import AlertCheckResult, AlertLevel, RegionalAlertState
from .regions import parse_bulletin_text, resolve_regions
from .sources import DataSourceGateway
from .utils import Clock, utc_now

logger = logging.getLogger(__name__)


def select_latest_bulletins(bulletins: Iterable[WarningBulletin]) -> List[WarningBulletin]:
    """
    Keep the most recent bulletin of each issuing office.

    On equal issuance times the bulletin seen first is kept.
    """
    latest: Dict[str, WarningBulletin] = {}
    for bulletin in bulletins:
        current = latest.get(bulletin.authority)
        if current is None or bulletin.issued_at > current.issued_at:
            latest[bulletin.authority] = bulletin
    return list(latest.values())


def extract_alerts(bulletins: Iterable[WarningBulletin]) -> List[RainAlert]:
    """Heavy-rain watches and warnings currently in effect."""
    alerts: List[RainAlert] = []
    for bulletin in select_latest_bulletins(bulletins):
        alerts.extend(parse_bulletin_text(bulletin.text))
    return alerts


class AlertStateMonitor:
    """
    Maintains the :class:`RegionalAlertState` in the engine context.

    The monitor is the only writer of the state. Each check replaces it with
    a new value; a failed check keeps the previous level and regions and only
    records the error.
    """

    def __init__(
        self,
        gateway: DataSourceGateway,
        context: EngineContext,
        clock: Optional[Clock] = None,
    ):
        self.gateway = gateway
        self.context = context
        self._clock = clock or utc_now

    @property
    def state(self) -> RegionalAlertState:
        return self.context.alert_state

    async def check_and_update(self) -> AlertCheckResult:
        """
        Fetch today's bulletins and update the alert state.

        Returns:
            AlertCheckResult; ``changed`` is true only when the level flipped
        """
        previous = self.context.alert_state
        now = self._clock()

        try:
            bulletins = await self.gateway.fetch_bulletins()
        except RainAlarmError as e:
            state = dataclasses.replace(
                previous,
                last_checked_at=now,
                consecutive_errors=previous.consecutive_errors + 1,
                last_error=str(e) or type(e).__name__,
            )
            self.context.alert_state = state
            logger.warning(
                f"Bulletin fetch failed, keeping {previous.level.value} state. "
                f"Consecutive errors: {state.consecutive_errors} ({e})"
            )
            return AlertCheckResult(changed=False, state=state, error=True)

        alerts = extract_alerts(bulletins)
        if bulletins and not alerts:
            logger.info(f"{len(bulletins)} bulletin(s), no heavy-rain alert in effect")

        region_ids = set()
        for alert in alerts:
            region_ids |= resolve_regions(alert.regions)

        if alerts:
            # Alerts naming only unknown regions still mean rain somewhere
            level = AlertLevel.ACTIVE
        else:
            level = AlertLevel.IDLE

        state = RegionalAlertState(
            level=level,
            affected_region_ids=tuple(sorted(region_ids)),
            active_alerts=tuple(alerts),
            last_checked_at=now,
            consecutive_errors=0,
            last_error=None,
        )
        self.context.alert_state = state

        changed = state.level is not previous.level
        if changed:
            logger.info(
                f"Alert state {previous.level.value} -> {state.level.value}, "
                f"regions {list(state.affected_region_ids)}"
            )
        elif state.affected_region_ids != previous.affected_region_ids:
            logger.info(f"Alert regions updated: {list(state.affected_region_ids)}")

        return AlertCheckResult(changed=changed, state=state, error=False)
