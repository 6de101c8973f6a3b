"""核心算法依赖的外部数据源接口"""

from typing import Protocol

from coinpulse.client.models import MarketSnapshot, RateSample, SwapPage


class SwapFeed(Protocol):
    async def fetch_swaps(
        self, coin_address: str, count: int, cursor: str | None = None
    ) -> SwapPage: ...


class SnapshotFeed(Protocol):
    async def fetch_snapshot(self, coin_address: str) -> MarketSnapshot | None: ...


class ReferenceRateFeed(Protocol):
    async def fetch_reference_rate_series(self, days: int) -> list[RateSample]: ...
