# coinpulse/aggregator/activity.py
import logging
import random
import time

from coinpulse.client.feeds import SnapshotFeed, SwapFeed
from coinpulse.client.models import Direction, MarketSnapshot, SwapRecord
from coinpulse.config import ActivityConfig
from coinpulse.errors import UpstreamUnavailable
from coinpulse.fetching import guarded_fetch
from coinpulse.storage.models import ActivityRecord, ActivitySource, RecentActivity

logger = logging.getLogger(__name__)

NO_ACTIVITY_MESSAGE = "No recent trading activity"


class ActivityAggregator:
    """
    最近交易列表, 按优先级选择数据源:

    1. 聚合器快照 (按 24h 成交量插值出最近交易, 标记为 synthetic)
    2. 链上交易记录
    3. 都没有时返回空列表
    """

    def __init__(
        self,
        snapshot_feed: SnapshotFeed,
        swap_feed: SwapFeed,
        config: ActivityConfig | None = None,
        rng: random.Random | None = None,
        timeout: float = 8.0,
    ):
        self.snapshot_feed = snapshot_feed
        self.swap_feed = swap_feed
        self.config = config or ActivityConfig()
        self.rng = rng or random.Random()
        self.timeout = timeout

    def synthesize(self, snapshot: MarketSnapshot, now_ms: int) -> list[ActivityRecord]:
        if snapshot.current_price_usd <= 0 or snapshot.volume_24h_usd <= 0:
            return []

        average = snapshot.volume_24h_usd / 24 / self.config.trades_per_hour
        spacing_ms = self.config.spacing_minutes * 60 * 1000
        variation = self.config.amount_variation

        records: list[ActivityRecord] = []
        for i in range(self.config.limit):
            is_buy = self.rng.random() < self.config.buy_probability
            amount = average * (1 + (self.rng.random() - 0.5) * 2 * variation)
            records.append(
                ActivityRecord(
                    direction=Direction.BUY if is_buy else Direction.SELL,
                    amount=f"{amount:.6f}",
                    actor_address=snapshot.pair_address,
                    timestamp=now_ms - i * spacing_ms,
                    transaction_hash="",
                    synthetic=True,
                )
            )
        return records

    def from_swaps(self, swaps: list[SwapRecord]) -> list[ActivityRecord]:
        records: list[ActivityRecord] = []
        for swap in swaps:
            timestamp = swap.timestamp_ms
            if timestamp is None:
                continue
            records.append(
                ActivityRecord(
                    direction=swap.direction,
                    amount=swap.token_amount,
                    actor_address=swap.counterparty_address,
                    timestamp=timestamp,
                    transaction_hash=swap.transaction_hash,
                )
            )
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records[: self.config.limit]

    async def recent_activity(self, coin_address: str, now_ms: int | None = None) -> RecentActivity:
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        failures = 0

        snapshot = await guarded_fetch(
            self.snapshot_feed.fetch_snapshot(coin_address), "snapshot", self.timeout
        )
        if snapshot.failed:
            failures += 1
        elif snapshot.value is not None:
            activities = self.synthesize(snapshot.value, now_ms)
            if activities:
                logger.debug(f"Synthesized {len(activities)} activities for {coin_address}")
                return RecentActivity(activities=activities, source=ActivitySource.AGGREGATOR)

        page = await guarded_fetch(
            self.swap_feed.fetch_swaps(coin_address, self.config.limit), "swaps", self.timeout
        )
        if page.failed:
            failures += 1
        elif page.value is not None:
            activities = self.from_swaps(page.value.records)
            if activities:
                return RecentActivity(activities=activities, source=ActivitySource.RAW)

        if failures == 2:
            raise UpstreamUnavailable("activity", "all activity sources failed")
        return RecentActivity(message=NO_ACTIVITY_MESSAGE)
