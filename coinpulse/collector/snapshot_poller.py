# coinpulse/collector/snapshot_poller.py
import asyncio
import logging
import time
from typing import Any, Protocol

from coinpulse.client.feeds import SnapshotFeed, SwapFeed
from coinpulse.client.models import MarketSnapshot
from coinpulse.fetching import gather_in_batches, guarded_fetch
from coinpulse.storage.models import EventType, LiveEvent

from .base import BaseCollector

logger = logging.getLogger(__name__)


class Broadcaster(Protocol):
    def rooms(self) -> list[str]: ...

    async def broadcast(self, coin_address: str, event: LiveEvent) -> int: ...

    async def broadcast_all(self, event: LiveEvent) -> int: ...


def _now_ms() -> int:
    return int(time.time() * 1000)


def snapshot_payload(snapshot: MarketSnapshot) -> dict[str, Any]:
    return {
        "price": snapshot.current_price_usd,
        "change24h": snapshot.price_change_24h_percent,
        "volume24h": snapshot.volume_24h_usd,
        "liquidity": snapshot.liquidity_usd,
    }


class SnapshotPoller(BaseCollector):
    """
    推送通道服务端轮询器

    每隔 interval 秒为所有有订阅者的币种拉取快照与最新交易,
    广播 price-update / new-trade, 最后广播一次全局 market-update。
    new-trade 只来自真实链上记录, 首次轮询只记录已见交易, 不推送。
    """

    def __init__(
        self,
        hub: Broadcaster,
        snapshot_feed: SnapshotFeed,
        swap_feed: SwapFeed,
        interval: float = 10,
        batch_size: int = 5,
        batch_delay: float = 1.0,
        swap_count: int = 10,
        timeout: float = 8.0,
    ):
        super().__init__("snapshot-poller")
        self.hub = hub
        self.snapshot_feed = snapshot_feed
        self.swap_feed = swap_feed
        self.interval = interval
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.swap_count = swap_count
        self.timeout = timeout
        self._seen: dict[str, set[str]] = {}

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        self._seen.clear()

    async def poll_once(self) -> dict[str, MarketSnapshot | None]:
        coins = self.hub.rooms()
        # 无订阅者的币种不再跟踪
        for coin_address in list(self._seen):
            if coin_address not in coins:
                del self._seen[coin_address]
        if not coins:
            return {}

        snapshots = await gather_in_batches(
            coins, self._poll_coin, batch_size=self.batch_size, delay_seconds=self.batch_delay
        )

        valid = [s for s in snapshots.values() if s is not None]
        market = {
            "totalVolume24h": sum(s.volume_24h_usd for s in valid),
            "totalLiquidity": sum(s.liquidity_usd for s in valid),
            "totalCoins": len(valid),
        }
        await self.hub.broadcast_all(LiveEvent(EventType.MARKET_UPDATE, None, market, _now_ms()))
        return snapshots

    async def _poll_coin(self, coin_address: str) -> MarketSnapshot | None:
        result = await guarded_fetch(
            self.snapshot_feed.fetch_snapshot(coin_address), "snapshot", self.timeout
        )
        snapshot = result.value
        if snapshot is not None:
            await self.hub.broadcast(
                coin_address,
                LiveEvent(EventType.PRICE_UPDATE, coin_address, snapshot_payload(snapshot), _now_ms()),
            )

        await self._emit_new_trades(coin_address)
        return snapshot

    async def _emit_new_trades(self, coin_address: str) -> None:
        result = await guarded_fetch(
            self.swap_feed.fetch_swaps(coin_address, self.swap_count), "swaps", self.timeout
        )
        if result.value is None:
            return

        records = [r for r in result.value.records if r.transaction_hash]
        seen = self._seen.get(coin_address)
        # 最新一页即可覆盖去重所需范围
        self._seen[coin_address] = {r.transaction_hash for r in records}
        if seen is None:
            return

        fresh = [r for r in records if r.transaction_hash not in seen and r.timestamp_ms is not None]
        fresh.sort(key=lambda r: r.timestamp_ms or 0)
        for record in fresh:
            payload = {
                "direction": record.direction.value,
                "amount": record.token_amount,
                "actor": record.counterparty_address,
                "timestamp": record.timestamp_ms,
                "txHash": record.transaction_hash,
            }
            await self.hub.broadcast(
                coin_address, LiveEvent(EventType.NEW_TRADE, coin_address, payload, _now_ms())
            )
        if fresh:
            logger.debug(f"Pushed {len(fresh)} new trades for {coin_address}")

    async def _run(self) -> None:
        while self.running:
            try:
                await asyncio.sleep(self.interval)
                await self.poll_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Snapshot poll failed: {e}")
