"""
Outbound event delivery.

The engine reports alarms, per-district alarm counts and alert state changes
through a :class:`Broadcaster`. Delivery is fire-and-forget: a subscriber
that fails never interrupts a polling cycle.
"""

import json
import logging
from typing import Any, Callable, Dict, List

from .models import AlarmEvent, RegionalAlertState

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, Dict[str, Any]], None]


class Broadcaster:
    """Interface for event sinks."""

    def emit_alarm(self, event: AlarmEvent) -> None:
        raise NotImplementedError

    def emit_regional_counts(self, region_id: int, counts: Dict[int, int]) -> None:
        raise NotImplementedError

    def emit_alert_state(self, state: RegionalAlertState) -> None:
        raise NotImplementedError


class LoggingBroadcaster(Broadcaster):
    """Writes every event to the log."""

    def emit_alarm(self, event: AlarmEvent) -> None:
        logger.warning(
            f"ALARM {event.emd_name or event.stn_id}: "
            f"15min={event.realtime_15min}mm forecast={event.forecast_hourly}mm"
        )

    def emit_regional_counts(self, region_id: int, counts: Dict[int, int]) -> None:
        logger.info(f"Alarm counts for region {region_id}: {json.dumps(counts)}")

    def emit_alert_state(self, state: RegionalAlertState) -> None:
        logger.info(
            f"Alert state {state.level.value}, regions {list(state.affected_region_ids)}"
        )


class CallbackBroadcaster(Broadcaster):
    """
    Fans events out to registered callables.

    Each subscriber receives ``(event_type, payload)`` where the payload is a
    JSON-serializable dict.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def _publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event_type, payload)
            except Exception:
                logger.exception(f"Subscriber failed on {event_type}")

    def emit_alarm(self, event: AlarmEvent) -> None:
        self._publish("alarm", event.to_dict())

    def emit_regional_counts(self, region_id: int, counts: Dict[int, int]) -> None:
        self._publish("metro_alarm_counts", {"metroId": region_id, "counts": counts})

    def emit_alert_state(self, state: RegionalAlertState) -> None:
        self._publish("alert_state", state.to_dict())
