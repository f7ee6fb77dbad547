"""Integration tests for the Hermes price board: HTTP parsing and feed reads."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import ADMIN, NOW
from lending_risk.models import AssetPriceConfig, PythPrice, Valuation
from lending_risk.oracles import DualFeedPriceOracle, HermesPriceBoard, ManualAggregator


def _make_hermes_response(items: list[dict]) -> dict:
    return {"parsed": items}


def _item(feed_id: str, price: str, conf: str, expo: int = -8, t: int = NOW) -> dict:
    return {
        "id": feed_id,
        "price": {"price": price, "conf": conf, "expo": expo, "publish_time": t},
    }


def _mock_session(status: int = 200, data: dict | None = None) -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=data or {})
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    mock_session.get = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


class TestHermesRefresh:
    @pytest.mark.asyncio
    async def test_parses_response_correctly(self, board: HermesPriceBoard) -> None:
        mock_session = _mock_session(
            data=_make_hermes_response(
                [
                    _item("aaa111", "350000000", "100000"),
                    _item("bbb222", "10000000000000", "5000000000", t=NOW - 5),
                ]
            )
        )

        with patch("lending_risk.oracles.hermes.aiohttp.ClientSession", return_value=mock_session):
            with patch("lending_risk.oracles.hermes.aiohttp.TCPConnector"):
                stored = await board.refresh(["0xAAA111", "bbb222"])

        assert stored == 2
        assert board.get_price_unsafe("aaa111") == PythPrice(350000000, 100000, -8, NOW)
        assert board.get_price_unsafe("0xBBB222").publish_time == NOW - 5

        url = mock_session.get.call_args[0][0]
        assert url.startswith("https://hermes.example.com?")
        assert "ids[]=aaa111" in url and "ids[]=bbb222" in url

    @pytest.mark.asyncio
    async def test_handles_http_error(self, board: HermesPriceBoard) -> None:
        mock_session = _mock_session(status=500)

        with patch("lending_risk.oracles.hermes.aiohttp.ClientSession", return_value=mock_session):
            with patch("lending_risk.oracles.hermes.aiohttp.TCPConnector"):
                stored = await board.refresh(["aaa111"])

        assert stored == 0
        with pytest.raises(KeyError):
            board.get_price_unsafe("aaa111")

    @pytest.mark.asyncio
    async def test_handles_network_error(self, board: HermesPriceBoard) -> None:
        mock_session = _mock_session()
        mock_session.get = MagicMock(side_effect=ConnectionError("timeout"))

        with patch("lending_risk.oracles.hermes.aiohttp.ClientSession", return_value=mock_session):
            with patch("lending_risk.oracles.hermes.aiohttp.TCPConnector"):
                stored = await board.refresh(["aaa111"])

        assert stored == 0

    @pytest.mark.asyncio
    async def test_skips_malformed_items(self, board: HermesPriceBoard) -> None:
        mock_session = _mock_session(
            data=_make_hermes_response([{"id": "aaa111"}, {"price": {"price": "1"}}])
        )

        with patch("lending_risk.oracles.hermes.aiohttp.ClientSession", return_value=mock_session):
            with patch("lending_risk.oracles.hermes.aiohttp.TCPConnector"):
                stored = await board.refresh(["aaa111"])

        assert stored == 0

    @pytest.mark.asyncio
    async def test_no_feed_ids_skips_request(self, board: HermesPriceBoard) -> None:
        with patch("lending_risk.oracles.hermes.aiohttp.ClientSession") as session_cls:
            assert await board.refresh(["", ""]) == 0
        session_cls.assert_not_called()


class TestBoardAsProbabilisticFeed:
    @pytest.fixture()
    def oracle(self, board: HermesPriceBoard) -> DualFeedPriceOracle:
        oracle = DualFeedPriceOracle(ADMIN, board, clock=lambda: NOW)
        oracle.set_asset_configs(
            ADMIN,
            ["bTSLA", "bUSDC"],
            [
                AssetPriceConfig(
                    underlying="TSLA",
                    base_unit=10**18,
                    deterministic_feed=ManualAggregator(8, 250 * 10**8, NOW - 60),
                    probabilistic_feed_id="0xAAA111",
                    max_price_age=3600,
                    valuation=Valuation.BORROWED,
                ),
                AssetPriceConfig(
                    underlying="USDC",
                    base_unit=10**6,
                    probabilistic_feed_id="bbb222",
                    max_price_age=3600,
                ),
            ],
        )
        return oracle

    @pytest.mark.asyncio
    async def test_refreshed_update_wins_when_newer(
        self, board: HermesPriceBoard, oracle: DualFeedPriceOracle
    ) -> None:
        mock_session = _mock_session(
            data=_make_hermes_response(
                [
                    # 251 +/- 1 USD at expo -8, borrowed side takes the high edge
                    _item("aaa111", "25100000000", "100000000"),
                    _item("bbb222", "99990000", "10000", expo=-8),
                ]
            )
        )

        with patch("lending_risk.oracles.hermes.aiohttp.ClientSession", return_value=mock_session):
            with patch("lending_risk.oracles.hermes.aiohttp.TCPConnector"):
                await board.refresh(["aaa111", "bbb222"])

        assert oracle.get_internal_price("bTSLA").mantissa == 252 * 10**6
        # collateral side takes the low edge: 0.9999 - 0.0001
        assert oracle.get_internal_price("bUSDC").mantissa == 999_800
        assert oracle.get_underlying_price("bUSDC") == 999_800 * 10**24

    def test_without_refresh_deterministic_used(self, oracle: DualFeedPriceOracle) -> None:
        assert oracle.get_internal_price("bTSLA").mantissa == 250 * 10**6
