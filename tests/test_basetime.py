"""
Tests for KMA issuance time selection.
"""

from datetime import datetime, timezone

import pytest

from rainalarm.kma.basetime import (
    aws_snapshot_time,
    bulletin_date,
    forecast_base,
    nowcast_base,
    vsrt_effective_time,
    vsrt_issue_time,
)
from rainalarm.utils import KST


def kst(year, month, day, hour, minute):
    return datetime(year, month, day, hour, minute, tzinfo=KST)


class TestNowcastBase:
    @pytest.mark.parametrize(
        "moment,expected",
        [
            (kst(2024, 7, 15, 12, 39), ("20240715", "1100")),
            (kst(2024, 7, 15, 12, 40), ("20240715", "1200")),
            (kst(2024, 7, 16, 0, 10), ("20240715", "2300")),
        ],
    )
    def test_base(self, moment, expected):
        assert nowcast_base(moment) == expected

    def test_utc_input(self):
        # 03:45 UTC is 12:45 KST
        moment = datetime(2024, 7, 15, 3, 45, tzinfo=timezone.utc)
        assert nowcast_base(moment) == ("20240715", "1200")

    def test_naive_input_is_utc(self):
        assert nowcast_base(datetime(2024, 7, 15, 3, 45)) == ("20240715", "1200")


class TestForecastBase:
    @pytest.mark.parametrize(
        "moment,expected",
        [
            (kst(2024, 7, 15, 12, 44), ("20240715", "1130")),
            (kst(2024, 7, 15, 12, 45), ("20240715", "1230")),
            (kst(2024, 1, 1, 0, 30), ("20231231", "2330")),
        ],
    )
    def test_base(self, moment, expected):
        assert forecast_base(moment) == expected


class TestAPIHubTimes:
    def test_aws_snapshot_time(self):
        assert aws_snapshot_time(kst(2024, 7, 15, 12, 3)) == "202407151150"
        assert aws_snapshot_time(kst(2024, 7, 15, 12, 17)) == "202407151210"

    def test_aws_snapshot_time_crosses_midnight(self):
        assert aws_snapshot_time(kst(2024, 7, 16, 0, 2)) == "202407152350"

    def test_vsrt_issue_time(self):
        assert vsrt_issue_time(kst(2024, 7, 15, 12, 15)) == "202407151200"
        assert vsrt_issue_time(kst(2024, 7, 15, 12, 9)) == "202407151150"

    def test_vsrt_effective_time(self):
        assert vsrt_effective_time(kst(2024, 7, 15, 12, 15)) == "2024071513"
        assert vsrt_effective_time(kst(2024, 7, 15, 23, 15)) == "2024071600"

    def test_bulletin_date_follows_kst(self):
        assert bulletin_date(datetime(2024, 7, 15, 14, 59, tzinfo=timezone.utc)) == "20240715"
        assert bulletin_date(datetime(2024, 7, 15, 15, 0, tzinfo=timezone.utc)) == "20240716"
