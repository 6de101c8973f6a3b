# coinpulse/service.py
import asyncio
import logging
import random
import time
from typing import Literal

from coinpulse.aggregator.activity import ActivityAggregator
from coinpulse.aggregator.price_series import PriceSeriesBuilder
from coinpulse.aggregator.timeframe import window
from coinpulse.aggregator.usd import PriceUnit, build_rate_table, to_usd
from coinpulse.client.coingecko import CoinGeckoClient
from coinpulse.client.dexscreener import DexScreenerClient
from coinpulse.client.models import CoinSummary, MarketSnapshot, SwapPage
from coinpulse.client.zora import ZoraClient
from coinpulse.collector.rate_fetcher import ExchangeRateFetcher
from coinpulse.config import Config
from coinpulse.errors import UpstreamUnavailable
from coinpulse.fetching import FetchResult, guarded_fetch
from coinpulse.storage.cache import TTLCache
from coinpulse.storage.models import PricePoint, PriceHistory, RecentActivity, SeriesMode

logger = logging.getLogger(__name__)

HistoryMode = Literal["auto", "snapshot"]

TIMEFRAME_DAYS = {"24h": 1, "7d": 7, "30d": 30, "1y": 365}

NO_PAIRS_MESSAGE = "No trading pairs found"
NO_DATA_MESSAGE = "No trading data available"


def build_rate_feed(config: Config) -> CoinGeckoClient | ExchangeRateFetcher:
    rate = config.reference_rate
    if rate.source == "exchange":
        return ExchangeRateFetcher(exchange_id=rate.exchange, symbol=rate.symbol)
    return CoinGeckoClient(
        base_url=config.upstream.coingecko_base_url,
        coin_id=rate.coin_id,
        headers={"User-Agent": config.upstream.user_agent},
    )


class CoinDataService:
    """币种数据服务: 价格历史与最近交易, 负责超时、回退链与短期缓存"""

    def __init__(
        self,
        config: Config,
        zora: ZoraClient | None = None,
        dexscreener: DexScreenerClient | None = None,
        rate_feed: CoinGeckoClient | ExchangeRateFetcher | None = None,
        cache: TTLCache | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config
        upstream = config.upstream
        headers = {"User-Agent": upstream.user_agent}

        self.zora = zora or ZoraClient(
            base_url=upstream.zora_base_url,
            headers=dict(headers),
            chain_id=upstream.chain_id,
            api_key=upstream.zora_api_key,
        )
        self.dexscreener = dexscreener or DexScreenerClient(
            base_url=upstream.dexscreener_base_url, headers=dict(headers)
        )
        self.rate_feed = rate_feed or build_rate_feed(config)
        self.cache = cache or TTLCache(config.cache.ttl_seconds, config.cache.max_entries)
        self.timeout = upstream.timeout_seconds
        self.unit = PriceUnit(config.series.anchor_unit)

        rng = rng or random.Random()
        self.builder = PriceSeriesBuilder.from_config(config.series, rng)
        self.activity = ActivityAggregator(
            self.dexscreener, self.zora, config.activity, rng=rng, timeout=self.timeout
        )

    async def init(self) -> None:
        await self.zora.init()
        await self.dexscreener.init()
        await self.rate_feed.init()
        logger.info(f"Coin data service ready (anchor unit: {self.unit.value})")

    async def close(self) -> None:
        await self.zora.close()
        await self.dexscreener.close()
        await self.rate_feed.close()

    def purge_cache(self) -> int:
        return self.cache.purge_expired()

    async def _resolve_snapshot(
        self, coin_address: str
    ) -> tuple[MarketSnapshot | None, list[FetchResult]]:
        """聚合器快照优先, 没有交易对时用索引服务的币种概要作为锚定"""
        attempts: list[FetchResult] = []

        result: FetchResult[MarketSnapshot | None] = await guarded_fetch(
            self.dexscreener.fetch_snapshot(coin_address), "snapshot", self.timeout
        )
        attempts.append(result)
        if result.value is not None:
            return result.value, attempts

        coin: FetchResult[CoinSummary | None] = await guarded_fetch(
            self.zora.fetch_coin(coin_address), "coin", self.timeout
        )
        attempts.append(coin)
        if coin.value is not None:
            snapshot = coin.value.to_snapshot()
            if snapshot is not None:
                logger.info(f"Using indexer coin summary as anchor for {coin_address}")
            return snapshot, attempts
        return None, attempts

    async def get_snapshot(self, coin_address: str) -> MarketSnapshot | None:
        snapshot, _ = await self._resolve_snapshot(coin_address)
        return snapshot

    async def _rate_table(self, days: int) -> dict[int, float]:
        result = await guarded_fetch(
            self.rate_feed.fetch_reference_rate_series(days), "reference-rate", self.timeout
        )
        if not result.value:
            logger.warning("Reference rates unavailable, using fallback rate")
            return {}
        return build_rate_table(result.value)

    async def _trade_points(
        self, swaps: SwapPage | None, snapshot: MarketSnapshot, days: int
    ) -> list[PricePoint]:
        if swaps is None or not swaps.records:
            return []
        points = self.builder.build(swaps.records, snapshot, self.unit)
        if not points or self.unit is PriceUnit.USD:
            return points

        rates = await self._rate_table(days)
        return to_usd(points, rates, self.unit, self.config.reference_rate.fallback_rate_usd)

    async def get_price_history(
        self,
        coin_address: str,
        timeframe: str = "24h",
        days: int | None = None,
        mode: HistoryMode = "auto",
        now_ms: int | None = None,
    ) -> PriceHistory:
        """
        价格历史

        auto: 交易记录优先, 没有可用交易时退回快照合成;
        snapshot: 直接使用快照合成。
        所有数据源都失败时抛出 UpstreamUnavailable, 合法的空结果带 message 返回。
        """
        if days is None:
            days = TIMEFRAME_DAYS.get(timeframe, 1)
        key = TTLCache.key(coin_address, mode, f"{timeframe}:{days}")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        swaps_result: FetchResult[SwapPage] = FetchResult()
        if mode == "auto":
            swaps_result, (snapshot, attempts) = await asyncio.gather(
                guarded_fetch(
                    self.zora.fetch_swaps(coin_address, self.config.series.swap_count),
                    "swaps",
                    self.timeout,
                ),
                self._resolve_snapshot(coin_address),
            )
            attempts = [swaps_result, *attempts]
        else:
            snapshot, attempts = await self._resolve_snapshot(coin_address)

        points: list[PricePoint] = []
        if snapshot is not None:
            points = await self._trade_points(swaps_result.value, snapshot, days)

        # 所有上游请求结束后再取当前时间, "now" 点与响应时间一致
        if now_ms is None:
            now_ms = int(time.time() * 1000)

        series_mode = SeriesMode.NONE
        if snapshot is not None:
            if points:
                series_mode = SeriesMode.TRADES
            else:
                points = self.builder.synthesize(snapshot, timeframe, now_ms)
                if points:
                    series_mode = SeriesMode.SYNTHETIC

        if not points and all(a.failed for a in attempts):
            raise UpstreamUnavailable("price-history", "all price sources failed")

        current_price = snapshot.current_price_usd if snapshot is not None else None
        if points:
            max_age_ms = self.config.series.live_point_max_age_seconds * 1000
            points = window(points, timeframe, current_price, now_ms, max_age_ms)

        history = PriceHistory(
            points=points,
            total_trades_used=len(swaps_result.value.records)
            if series_mode is SeriesMode.TRADES and swaps_result.value
            else 0,
            generated_at=now_ms,
            mode=series_mode,
            current_price=current_price,
        )
        if not points:
            history.message = NO_PAIRS_MESSAGE if snapshot is None else NO_DATA_MESSAGE

        logger.debug(
            f"Price history for {coin_address} ({timeframe}, {mode}): "
            f"{len(points)} points, mode={series_mode.value}"
        )
        if not any(a.failed for a in attempts):
            self.cache.set(key, history)
        return history

    async def get_recent_activity(self, coin_address: str) -> RecentActivity:
        key = TTLCache.key(coin_address, "activity")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        activity = await self.activity.recent_activity(coin_address)
        self.cache.set(key, activity)
        return activity

    async def get_coin(self, coin_address: str) -> CoinSummary | None:
        key = TTLCache.key(coin_address, "coin")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            coin = await asyncio.wait_for(self.zora.fetch_coin(coin_address), timeout=self.timeout)
        except TimeoutError:
            logger.warning(f"Coin lookup for {coin_address} timed out")
            return None
        if coin is not None:
            self.cache.set(key, coin)
        return coin
