"""
Rainfall alarm engine for KMA rain gauge stations.

Polls KMA rainfall products adaptively (fast in regions under a heavy-rain
alert, slow elsewhere) and raises alarms when recent and forecast rainfall
cross their thresholds.
"""

try:
    from importlib import metadata

    __version__ = metadata.version(__name__)
except Exception:
    __version__ = "unknown"

from .alert_monitor import AlertStateMonitor, select_latest_bulletins
from .batcher import GridBatcher
from .broadcast import Broadcaster, CallbackBroadcaster, LoggingBroadcaster
from .cache import CycleCache, EngineContext, GridBaselineCache
from .config import AlarmConfig, load_config
from .engine import RainfallAlarmEngine
from .evaluator import (
    AlarmEvaluator,
    AlarmRule,
    CombinedTotalRule,
    ForecastThresholdRule,
    build_rule,
)
from .exceptions import ConfigurationError, RainAlarmError
from .kma import (
    DailyQuota,
    GridCell,
    KMAClient,
    KMAConnectionError,
    KMAError,
    KMAQueryError,
    QuotaExceededError,
    QuotaUsage,
    to_grid,
)
from .models import (
    AlarmEvent,
    AlertCheckResult,
    AlertLevel,
    CycleReport,
    EvaluationResult,
    Reading,
    RegionalAlertState,
    Station,
)
from .scheduler import TwoTierScheduler, error_backoff
from .sources import DataSourceGateway
from .storage import RainfallStore
from .sync import check_alerts_sync, poll_sync

__all__ = [
    # Engine
    "RainfallAlarmEngine",
    "TwoTierScheduler",
    "error_backoff",
    "GridBatcher",
    "AlarmEvaluator",
    "AlarmRule",
    "ForecastThresholdRule",
    "CombinedTotalRule",
    "build_rule",
    "AlertStateMonitor",
    "select_latest_bulletins",
    "DataSourceGateway",
    # State
    "EngineContext",
    "CycleCache",
    "GridBaselineCache",
    # Collaborators
    "RainfallStore",
    "Broadcaster",
    "LoggingBroadcaster",
    "CallbackBroadcaster",
    # Configuration
    "AlarmConfig",
    "load_config",
    # Models
    "Station",
    "Reading",
    "AlarmEvent",
    "AlertLevel",
    "RegionalAlertState",
    "AlertCheckResult",
    "EvaluationResult",
    "CycleReport",
    # KMA
    "KMAClient",
    "DailyQuota",
    "QuotaUsage",
    "GridCell",
    "to_grid",
    # Exceptions
    "RainAlarmError",
    "ConfigurationError",
    "KMAError",
    "KMAConnectionError",
    "KMAQueryError",
    "QuotaExceededError",
    # Sync
    "check_alerts_sync",
    "poll_sync",
]
