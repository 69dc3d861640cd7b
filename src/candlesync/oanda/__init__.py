"""Broker client layer -- OANDA v20 REST API via httpx."""

from candlesync.oanda.client import OandaClient

__all__ = ["OandaClient"]
