"""
Tests for the KMA client.
"""

from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from rainalarm.kma.client import KMAClient
from rainalarm.kma.exceptions import KMAConnectionError, KMAError, KMAQueryError
from rainalarm.kma.grid import GridCell
from rainalarm.kma.models import PrecipitationValue
from rainalarm.kma.quota import DailyQuota


def envelope(items, code="00", message="NORMAL_SERVICE"):
    return {
        "response": {
            "header": {"resultCode": code, "resultMsg": message},
            "body": {"items": {"item": items}},
        }
    }


def json_response(data):
    response = Mock()
    response.json.return_value = data
    response.raise_for_status.return_value = None
    return response


def text_response(text):
    response = Mock()
    response.text = text
    response.raise_for_status.return_value = None
    return response


class TestKMAClient:
    """Test KMAClient functionality."""

    @pytest.fixture
    def client(self):
        """Create a test client."""
        return KMAClient(api_key="portal-key", timeout=5, quota=DailyQuota(limit=100))

    def test_init(self, client):
        """Test client initialization."""
        assert client.timeout == 5
        assert client.apihub_timeout == 30.0
        assert client.PORTAL_URL == "https://apis.data.go.kr/1360000"
        assert not client.has_apihub

    @patch("httpx.AsyncClient")
    @pytest.mark.asyncio
    async def test_get_ultra_srt_ncst_success(self, mock_client_class, client):
        """Test nowcast retrieval for a grid cell."""
        mock_client = AsyncMock()
        mock_client.get.return_value = json_response(
            envelope(
                [
                    {"category": "PTY", "obsrValue": "1"},
                    {"category": "RN1", "obsrValue": "12.5"},
                    {"category": "T1H", "obsrValue": "24.1"},
                ]
            )
        )
        mock_client_class.return_value = mock_client

        # Replace the client's _client with the mock
        client._client = mock_client

        value = await client.get_ultra_srt_ncst(GridCell(60, 127), "20240715", "1200")

        assert value == PrecipitationValue(12.5, 1)
        args, kwargs = mock_client.get.call_args
        assert args[0].endswith("/VilageFcstInfoService_2.0/getUltraSrtNcst")
        assert kwargs["params"]["nx"] == 60
        assert kwargs["params"]["ny"] == 127
        assert kwargs["params"]["base_time"] == "1200"
        assert kwargs["params"]["serviceKey"] == "portal-key"
        assert client.usage().calls == 1

    @pytest.mark.asyncio
    async def test_no_data_result(self, client):
        """resultCode 03 means no data, not an error."""
        mock_client = AsyncMock()
        mock_client.get.return_value = json_response(envelope([], code="03", message="NO_DATA"))
        client._client = mock_client

        assert await client.get_ultra_srt_ncst(GridCell(60, 127), "20240715", "1200") is None

    @pytest.mark.asyncio
    async def test_error_result_code(self, client):
        mock_client = AsyncMock()
        mock_client.get.return_value = json_response(
            envelope([], code="30", message="SERVICE_KEY_IS_NOT_REGISTERED_ERROR")
        )
        client._client = mock_client

        with pytest.raises(KMAQueryError, match="resultCode 30"):
            await client.get_ultra_srt_fcst(GridCell(60, 127), "20240715", "1130")

    @pytest.mark.asyncio
    async def test_get_warning_list(self, client):
        mock_client = AsyncMock()
        mock_client.get.return_value = json_response(
            envelope(
                [
                    {"stnId": "108", "tmFc": "202407151000", "t2": "호우주의보 : 서울특별시"},
                    {"stnId": "159", "tmFc": "202407150900", "t2": "호우경보 : 부산광역시"},
                ]
            )
        )
        client._client = mock_client

        bulletins = await client.get_warning_list("20240715", "20240715")

        assert [b.authority for b in bulletins] == ["108", "159"]
        params = mock_client.get.call_args.kwargs["params"]
        assert params["fromTmFc"] == "20240715"
        assert params["toTmFc"] == "20240715"

    @patch("httpx.AsyncClient")
    @pytest.mark.asyncio
    async def test_timeout_error(self, mock_client_class, client):
        """Test timeout error handling."""
        mock_client = AsyncMock()
        mock_client.get.side_effect = httpx.TimeoutException("Timeout")
        mock_client_class.return_value = mock_client

        # Replace the client's _client with the mock
        client._client = mock_client

        with pytest.raises(KMAConnectionError, match="Request timeout"):
            await client.get_ultra_srt_ncst(GridCell(60, 127), "20240715", "1200")

    @patch("httpx.AsyncClient")
    @pytest.mark.asyncio
    async def test_http_error_404(self, mock_client_class, client):
        """Test 404 error handling."""
        mock_response = Mock()
        mock_response.status_code = 404

        mock_client = AsyncMock()
        mock_client.get.side_effect = httpx.HTTPStatusError(
            "Not found", request=Mock(), response=mock_response
        )
        mock_client_class.return_value = mock_client

        client._client = mock_client

        with pytest.raises(KMAQueryError, match="not found"):
            await client.get_warning_list("20240715", "20240715")

    @pytest.mark.asyncio
    async def test_http_error_503(self, client):
        mock_response = Mock()
        mock_response.status_code = 503

        mock_client = AsyncMock()
        mock_client.get.side_effect = httpx.HTTPStatusError(
            "Unavailable", request=Mock(), response=mock_response
        )
        client._client = mock_client

        with pytest.raises(KMAConnectionError, match="temporarily unavailable"):
            await client.get_warning_list("20240715", "20240715")

    @pytest.mark.asyncio
    async def test_network_error(self, client):
        mock_client = AsyncMock()
        mock_client.get.side_effect = httpx.ConnectError("connection refused")
        client._client = mock_client

        with pytest.raises(KMAConnectionError, match="Network error"):
            await client.get_warning_list("20240715", "20240715")

    @pytest.mark.asyncio
    async def test_apihub_requires_key(self, client):
        """APIHUB products fail fast without a key and without spending quota."""
        mock_client = AsyncMock()
        client._client = mock_client

        with pytest.raises(KMAError, match="APIHUB key"):
            await client.get_aws_snapshot("202407151150")

        mock_client.get.assert_not_called()
        assert client.usage().calls == 0


class TestAPIHub:
    @pytest.fixture
    def client(self):
        return KMAClient(api_key="portal-key", apihub_key="hub-key")

    @pytest.mark.asyncio
    async def test_get_aws_snapshot(self, client):
        mock_client = AsyncMock()
        mock_client.get.return_value = text_response(
            "# TM STN RN-15m\n202407151150 108 4.5\n202407151150 159 0.0\n"
        )
        client._client = mock_client

        snapshot = await client.get_aws_snapshot("202407151150")

        assert len(snapshot) == 2
        assert snapshot.lookup("108") == 4.5
        kwargs = mock_client.get.call_args.kwargs
        assert kwargs["params"]["authKey"] == "hub-key"
        assert kwargs["timeout"] == 30.0

    @pytest.mark.asyncio
    async def test_get_vsrt_grid(self, client):
        mock_client = AsyncMock()
        mock_client.get.return_value = text_response(
            "# TM_FC TM_EF NX NY RN1 PTY\n202407151200 2024071513 60 127 55.0 1\n"
        )
        client._client = mock_client

        grid = await client.get_vsrt_grid("202407151200", "2024071513")

        assert grid[GridCell(60, 127)].value == 55.0
        params = mock_client.get.call_args.kwargs["params"]
        assert params["vars"] == "RN1:PTY"
        assert params["tmef"] == "2024071513"
