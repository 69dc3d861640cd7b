"""Tests for instrument listing and whitelist filtering."""

from unittest.mock import AsyncMock

import pytest

from candlesync.data.catalog import (
    DEFAULT_WHITELIST,
    InstrumentCatalog,
    filter_instruments,
    parse_whitelist,
)
from candlesync.exceptions import ConfigError, UpstreamError
from candlesync.oanda.client import OandaClient


class TestFilterInstruments:
    def test_prefix_match(self) -> None:
        selected = filter_instruments(["EUR_USD", "EUR_USD_SHORT", "GBP_USD"], ["eur_usd"])
        assert selected == ["EUR_USD", "EUR_USD_SHORT"]

    def test_preserves_upstream_order(self) -> None:
        selected = filter_instruments(
            ["XAU_USD", "EUR_USD", "NATGAS_USD", "USD_JPY"],
            ["natgas_usd", "eur_usd", "xau_usd"],
        )
        assert selected == ["XAU_USD", "EUR_USD", "NATGAS_USD"]

    def test_duplicate_whitelist_entries_do_not_duplicate_instruments(self) -> None:
        assert filter_instruments(["XAU_USD"], ["xau_usd", "xau_usd"]) == ["XAU_USD"]

    def test_empty_whitelist_selects_nothing(self) -> None:
        assert filter_instruments(["EUR_USD"], []) == []

    def test_prefix_is_not_substring(self) -> None:
        assert filter_instruments(["USD_EUR_USD"], ["eur_usd"]) == []


class TestParseWhitelist:
    def test_trims_and_lowercases(self) -> None:
        assert parse_whitelist(" NATGAS_USD, xau_usd ,Eur_Usd") == [
            "natgas_usd",
            "xau_usd",
            "eur_usd",
        ]

    def test_drops_blank_entries(self) -> None:
        assert parse_whitelist("eur_usd,,") == ["eur_usd"]

    def test_rejects_empty_list(self) -> None:
        with pytest.raises(ConfigError):
            parse_whitelist(" , ")

    def test_default_whitelist(self) -> None:
        assert len(DEFAULT_WHITELIST) == 17
        assert "spx500_usd" in DEFAULT_WHITELIST
        assert all(entry == entry.lower() for entry in DEFAULT_WHITELIST)


@pytest.fixture
def mock_client() -> AsyncMock:
    client = AsyncMock(spec=OandaClient)
    client.fetch_instruments.return_value = [
        {"name": "EUR_USD", "type": "CURRENCY"},
        {"name": "EUR_USD_SHORT", "type": "CFD"},
        {"name": "GBP_USD", "type": "CURRENCY"},
    ]
    return client


@pytest.mark.asyncio
async def test_list_instruments(mock_client: AsyncMock) -> None:
    catalog = InstrumentCatalog(mock_client)
    assert await catalog.list_instruments() == ["EUR_USD", "EUR_USD_SHORT", "GBP_USD"]
    mock_client.fetch_instruments.assert_awaited_once()


@pytest.mark.asyncio
async def test_select_filters_catalog(mock_client: AsyncMock) -> None:
    catalog = InstrumentCatalog(mock_client)
    assert await catalog.select(["eur_usd"]) == ["EUR_USD", "EUR_USD_SHORT"]


@pytest.mark.asyncio
async def test_malformed_record_is_upstream_error(mock_client: AsyncMock) -> None:
    mock_client.fetch_instruments.return_value = [{"name": "EUR_USD"}, {"displayName": "x"}]
    catalog = InstrumentCatalog(mock_client)

    with pytest.raises(UpstreamError, match="Malformed instrument record"):
        await catalog.list_instruments()


@pytest.mark.asyncio
async def test_client_failure_propagates(mock_client: AsyncMock) -> None:
    mock_client.fetch_instruments.side_effect = UpstreamError("HTTP 401", status_code=401)
    catalog = InstrumentCatalog(mock_client)

    with pytest.raises(UpstreamError):
        await catalog.select(["eur_usd"])
