"""
Tests for the alarm threshold evaluator.
"""

import pytest

from rainalarm.config import AlarmConfig
from rainalarm.evaluator import (
    AlarmEvaluator,
    CombinedTotalRule,
    ForecastThresholdRule,
    build_rule,
)
from rainalarm.kma.exceptions import KMAConnectionError
from rainalarm.kma.models import AWSObservation, AWSSnapshot, PrecipitationValue
from rainalarm.sources import DataSourceGateway


@pytest.fixture
def evaluator(gateway, store, context, config, clock):
    return AlarmEvaluator(gateway, store, context, config, clock=clock)


@pytest.fixture
def station(stations):
    return stations[0]


def latest(store, clock, station_id):
    rows = {row["station_id"]: row for row in store.latest_readings(clock())}
    return rows[station_id]


class TestRules:
    def test_forecast_rule_inclusive(self):
        rule = ForecastThresholdRule(55.0)
        assert rule.is_alarm(25.0, 55.0)
        assert not rule.is_alarm(100.0, 54.9)

    def test_combined_rule_exclusive(self):
        rule = CombinedTotalRule(55.0)
        assert rule.is_alarm(25.0, 30.1)
        assert not rule.is_alarm(25.0, 30.0)

    def test_build_rule(self):
        assert isinstance(build_rule(AlarmConfig()), ForecastThresholdRule)
        rule = build_rule(AlarmConfig(alarm_rule="combined", combined_threshold=40.0))
        assert isinstance(rule, CombinedTotalRule)
        assert rule.threshold == 40.0


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_alarm_raised(self, evaluator, kma_client, context, station, store, clock):
        """25 mm in 15 minutes and a 60 mm hourly forecast raise an alarm."""
        context.baselines.update(station.cell, 10.0)
        kma_client.get_ultra_srt_fcst.return_value = PrecipitationValue(60.0, 1)

        result = await evaluator.evaluate(station, preloaded_realtime=35.0)

        assert result.alarm
        assert result.realtime_15min == 25.0
        assert result.forecast_hourly == 60.0
        assert result.forecast_called
        assert result.realtime_source == "nowcast_delta"
        assert result.total == 85.0

        row = latest(store, clock, station.id)
        assert row["realtime_15min"] == 25.0
        assert row["forecast_hourly"] == 60.0

    @pytest.mark.asyncio
    async def test_short_circuit_below_threshold(
        self, evaluator, kma_client, context, station, store, clock
    ):
        """At 18 mm no forecast is requested and a zero forecast is stored."""
        context.baselines.update(station.cell, 0.0)

        result = await evaluator.evaluate(station, preloaded_realtime=18.0)

        assert not result.alarm
        assert result.realtime_15min == 18.0
        assert result.forecast_hourly == 0.0
        assert not result.forecast_called
        kma_client.get_ultra_srt_fcst.assert_not_called()
        kma_client.get_vsrt_grid.assert_not_called()

        row = latest(store, clock, station.id)
        assert row["realtime_15min"] == 18.0
        assert row["forecast_hourly"] == 0.0

    @pytest.mark.asyncio
    async def test_threshold_is_exclusive(self, evaluator, kma_client, context, station):
        context.baselines.update(station.cell, 0.0)
        result = await evaluator.evaluate(station, preloaded_realtime=20.0)
        assert not result.forecast_called
        kma_client.get_ultra_srt_fcst.assert_not_called()

    @pytest.mark.asyncio
    async def test_forecast_below_threshold(self, evaluator, kma_client, context, station):
        context.baselines.update(station.cell, 0.0)
        kma_client.get_ultra_srt_fcst.return_value = PrecipitationValue(54.9, 1)

        result = await evaluator.evaluate(station, preloaded_realtime=30.0)

        assert result.forecast_called
        assert not result.alarm

    @pytest.mark.asyncio
    async def test_forecast_no_precipitation(self, evaluator, kma_client, context, station):
        """A 'none' precipitation type zeroes a large forecast amount."""
        context.baselines.update(station.cell, 0.0)
        kma_client.get_ultra_srt_fcst.return_value = PrecipitationValue(80.0, 0)

        result = await evaluator.evaluate(station, preloaded_realtime=30.0)

        assert result.forecast_hourly == 0.0
        assert not result.alarm

    @pytest.mark.asyncio
    async def test_forecast_failure_counts_as_zero(self, evaluator, kma_client, context, station):
        context.baselines.update(station.cell, 0.0)
        kma_client.get_ultra_srt_fcst.side_effect = KMAConnectionError("Network error")

        result = await evaluator.evaluate(station, preloaded_realtime=30.0)

        assert result.forecast_hourly == 0.0
        assert not result.alarm
        assert context.cycle.forecast[station.cell] == 0.0

    @pytest.mark.asyncio
    async def test_combined_rule(self, gateway, store, context, clock, kma_client, station):
        config = AlarmConfig(alarm_rule="combined")
        evaluator = AlarmEvaluator(gateway, store, context, config, clock=clock)
        context.baselines.update(station.cell, 0.0)
        kma_client.get_ultra_srt_fcst.return_value = PrecipitationValue(30.1, 1)

        result = await evaluator.evaluate(station, preloaded_realtime=25.0)

        assert result.alarm


class TestRealtimeResolution:
    @pytest.mark.asyncio
    async def test_first_cycle_without_baseline(self, evaluator, station):
        result = await evaluator.evaluate(station, preloaded_realtime=40.0)
        assert result.realtime_15min == 0.0
        assert result.realtime_source == "nowcast_delta"

    @pytest.mark.asyncio
    async def test_decreasing_accumulation(self, evaluator, context, station):
        context.baselines.update(station.cell, 12.0)
        result = await evaluator.evaluate(station, preloaded_realtime=8.0)
        assert result.realtime_15min == 0.0

    @pytest.mark.asyncio
    async def test_aws_has_priority(self, evaluator, context, station, kma_client):
        context.cycle.aws = AWSSnapshot("202407151240", {"108": AWSObservation("108", 21.5)})
        context.baselines.update(station.cell, 0.0)

        result = await evaluator.evaluate(station, preloaded_realtime=3.0)

        assert result.realtime_15min == 21.5
        assert result.realtime_source == "aws"
        kma_client.get_ultra_srt_ncst.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetches_nowcast_without_preload(self, evaluator, context, station, kma_client):
        context.baselines.update(station.cell, 5.0)
        kma_client.get_ultra_srt_ncst.return_value = PrecipitationValue(9.5, 1)

        result = await evaluator.evaluate(station)

        assert result.realtime_15min == 4.5
        kma_client.get_ultra_srt_ncst.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nothing_found(self, evaluator, station, kma_client):
        kma_client.get_ultra_srt_ncst.return_value = None

        result = await evaluator.evaluate(station)

        assert result.realtime_15min == 0.0
        assert result.realtime_source == "none"

    @pytest.mark.asyncio
    async def test_mock_resolver(self, kma_client, store, context, clock, station):
        config = AlarmConfig(mock_mode=True)
        gateway = DataSourceGateway(kma_client, context, config, clock=clock)
        gateway.mock_realtime = lambda: 3.3
        evaluator = AlarmEvaluator(gateway, store, context, config, clock=clock)

        result = await evaluator.evaluate(station)

        assert result.realtime_15min == 3.3
        assert result.realtime_source == "mock"
        kma_client.get_ultra_srt_ncst.assert_not_called()


class TestIdempotence:
    @pytest.mark.asyncio
    async def test_repeat_uses_cache(self, evaluator, context, station, kma_client):
        """Re-evaluating with unchanged caches gives the same result and no new calls."""
        context.baselines.update(station.cell, 0.0)
        kma_client.get_ultra_srt_ncst.return_value = PrecipitationValue(30.0, 1)
        kma_client.get_ultra_srt_fcst.return_value = PrecipitationValue(60.0, 1)

        first = await evaluator.evaluate(station)
        second = await evaluator.evaluate(station)

        assert first.alarm and second.alarm
        assert (first.realtime_15min, first.forecast_hourly) == (
            second.realtime_15min,
            second.forecast_hourly,
        )
        assert second.forecast_called is False
        assert kma_client.get_ultra_srt_ncst.await_count == 1
        assert kma_client.get_ultra_srt_fcst.await_count == 1
