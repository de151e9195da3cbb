"""Supra oracle price feed: latest snapshot and hourly history."""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List

import requests

from supra_agent.errors import TransientFetchError
from supra_agent.models import MarketSnapshot


logger = logging.getLogger(__name__)

HOURLY_RESOLUTION = 3600


class OracleClient(ABC):
    """Price feed consumed by the orchestrator."""

    @abstractmethod
    def fetch_snapshot(self, trading_pair: str) -> MarketSnapshot:
        """
        Latest price data for ``trading_pair``.

        Raises:
            TransientFetchError: If the feed is unreachable or returns no data
        """
        pass

    @abstractmethod
    def fetch_history(self, trading_pair: str, hours_back: int = 24) -> List[Dict[str, Any]]:
        """Hourly candles, oldest first. Empty list when unavailable."""
        pass


class SupraOracleClient(OracleClient):
    """OracleClient backed by the Supra kline REST API."""

    def __init__(self, api_key: str, base_url: str = "https://prod-kline-rest.supra.com",
                 snapshot_timeout: float = 10.0, history_timeout: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.snapshot_timeout = snapshot_timeout
        self.history_timeout = history_timeout
        self.session = requests.Session()
        self.session.headers.update({"x-api-key": api_key})

    def fetch_snapshot(self, trading_pair: str) -> MarketSnapshot:
        logger.debug(f"Fetching live data for {trading_pair.upper()}...")
        try:
            response = self.session.get(
                f"{self.base_url}/latest",
                params={"trading_pair": trading_pair},
                timeout=self.snapshot_timeout,
            )
            response.raise_for_status()
            instruments = response.json().get("instruments") or []
        except (requests.RequestException, ValueError) as e:
            raise TransientFetchError(f"Error fetching {trading_pair}: {e}") from e

        if not instruments:
            raise TransientFetchError(f"No price data returned for {trading_pair}")

        instrument = instruments[0]
        try:
            snapshot = MarketSnapshot(
                trading_pair=trading_pair,
                current_price=float(instrument["currentPrice"]),
                change_24h=float(instrument.get("24h_change") or 0),
                high_24h=float(instrument["24h_high"]),
                low_24h=float(instrument["24h_low"]),
                timestamp=instrument.get("timestamp") or datetime.now(timezone.utc).isoformat(),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise TransientFetchError(f"Malformed price data for {trading_pair}: {e}") from e

        logger.info(f"Live data: {trading_pair.upper()} = ${snapshot.current_price:.2f}")
        return snapshot

    def fetch_history(self, trading_pair: str, hours_back: int = 24) -> List[Dict[str, Any]]:
        end_date = int(time.time() * 1000)
        start_date = end_date - hours_back * 60 * 60 * 1000
        try:
            response = self.session.get(
                f"{self.base_url}/history",
                params={
                    "trading_pair": trading_pair,
                    "startDate": start_date,
                    "endDate": end_date,
                    "resolution": HOURLY_RESOLUTION,
                },
                timeout=self.history_timeout,
            )
            response.raise_for_status()
            data = response.json().get("data") or []
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Error fetching historical data for {trading_pair}: {e}")
            return []

        logger.debug(f"Historical data: {len(data)} data points")
        return list(data)
