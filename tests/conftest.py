"""
Shared fixtures for rainalarm tests.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from rainalarm.broadcast import Broadcaster
from rainalarm.cache import EngineContext
from rainalarm.config import AlarmConfig
from rainalarm.kma.client import KMAClient
from rainalarm.kma.models import PrecipitationValue
from rainalarm.kma.quota import QuotaUsage
from rainalarm.sources import DataSourceGateway
from rainalarm.storage import RainfallStore

SEOUL = (37.5665, 126.9780)
BUSAN = (35.1796, 129.0756)

SEOUL_REGION = 1
BUSAN_REGION = 2


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingBroadcaster(Broadcaster):
    def __init__(self):
        self.alarms = []
        self.counts = []
        self.states = []

    def emit_alarm(self, event):
        self.alarms.append(event)

    def emit_regional_counts(self, region_id, counts):
        self.counts.append((region_id, counts))

    def emit_alert_state(self, state):
        self.states.append(state)


def make_kma_client(has_apihub: bool = False) -> Mock:
    """KMAClient double returning dry weather unless told otherwise."""
    client = Mock(spec=KMAClient)
    client.has_apihub = has_apihub
    client.get_ultra_srt_ncst = AsyncMock(return_value=PrecipitationValue(0.0, 0))
    client.get_ultra_srt_fcst = AsyncMock(return_value=PrecipitationValue(0.0, 0))
    client.get_vsrt_grid = AsyncMock(return_value={})
    client.get_aws_snapshot = AsyncMock()
    client.get_warning_list = AsyncMock(return_value=[])
    client.close = AsyncMock()
    client.usage.return_value = QuotaUsage("2024-07-15", 0, 10000, 10000)
    return client


@pytest.fixture
def clock():
    # 2024-07-15 12:50 KST
    return FakeClock(datetime(2024, 7, 15, 3, 50, tzinfo=timezone.utc))


@pytest.fixture
def config():
    return AlarmConfig(batch_pause=0)


@pytest.fixture
def context():
    return EngineContext()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def kma_client():
    return make_kma_client()


@pytest.fixture
def gateway(kma_client, context, config, clock):
    return DataSourceGateway(kma_client, context, config, clock=clock)


@pytest.fixture
def store():
    """
    In-memory store with two regions.

    Stations 1 and 2 share Seoul City Hall's grid cell, station 3 is in Busan.
    """
    store = RainfallStore(":memory:")
    store.add_region(SEOUL_REGION, "서울특별시")
    store.add_region(BUSAN_REGION, "부산광역시")
    store.add_district(11, SEOUL_REGION, "중구")
    store.add_district(21, BUSAN_REGION, "연제구")
    store.add_emd(111, 11, "1114055000", "명동")
    store.add_emd(211, 21, "2647069000", "연산1동")
    store.add_station(1, "108", "서울", *SEOUL, emd_id=111)
    store.add_station(2, "400", "중구", *SEOUL, emd_id=111)
    store.add_station(3, "159", "부산", *BUSAN, emd_id=211)
    yield store
    store.close()


@pytest.fixture
def stations(store):
    return store.all_stations()
