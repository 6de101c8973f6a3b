# coinpulse/collector/rate_fetcher.py
import logging
import time
from typing import Any

import ccxt.async_support as ccxt

from coinpulse.aggregator.timeframe import DAY_MS, HOUR_MS
from coinpulse.client.models import RateSample
from coinpulse.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

OHLCV_LIMIT = 1000


class ExchangeRateFetcher:
    """通过交易所小时 K 线获取参考资产的 USD 价格"""

    def __init__(self, exchange_id: str = "binance", symbol: str = "ETH/USDT"):
        self.exchange_id = exchange_id
        self.symbol = symbol
        self.exchange: Any = None

    async def init(self) -> None:
        exchange_class = getattr(ccxt, self.exchange_id)
        self.exchange = exchange_class()

    async def close(self) -> None:
        if self.exchange:
            await self.exchange.close()
            self.exchange = None

    async def fetch_reference_rate_series(self, days: int) -> list[RateSample]:
        assert self.exchange is not None

        now_ms = int(time.time() * 1000)
        since = now_ms - days * DAY_MS
        samples: list[RateSample] = []

        while since < now_ms:
            try:
                candles: list[list[Any]] = await self.exchange.fetch_ohlcv(
                    self.symbol, "1h", since=since, limit=OHLCV_LIMIT
                )
            except ccxt.BaseError as e:
                raise UpstreamUnavailable(self.exchange_id, str(e)) from e

            if not candles:
                break

            for candle in candles:
                # [timestamp, open, high, low, close, volume]
                close = float(candle[4])
                if close > 0:
                    samples.append(RateSample(timestamp=int(candle[0]), price_usd=close))

            if len(candles) < OHLCV_LIMIT:
                break
            since = int(candles[-1][0]) + HOUR_MS

        logger.debug(f"Fetched {len(samples)} hourly {self.symbol} candles for {days}d")
        return samples
