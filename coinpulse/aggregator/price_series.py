# coinpulse/aggregator/price_series.py
import logging
import math
import random
import time
from dataclasses import dataclass

from coinpulse.aggregator.timeframe import DAY_MS, HOUR_MS, WEEK_MS
from coinpulse.aggregator.usd import PriceUnit
from coinpulse.client.models import Direction, MarketSnapshot, SwapRecord
from coinpulse.config import SeriesConfig
from coinpulse.storage.models import PricePoint

logger = logging.getLogger(__name__)

# 合成模式: 时间周期 -> (点数, 间隔)
SYNTHETIC_GRID = {
    "24h": (24, HOUR_MS),
    "7d": (168, HOUR_MS),
    "30d": (30, DAY_MS),
    "1y": (52, WEEK_MS),
}


@dataclass
class DriftParams:
    buy_drift: float = 1.0001
    sell_drift: float = 0.9999
    clamp_band: float = 0.25


@dataclass
class SyntheticParams:
    jitter: float = 0.02
    floor: float = 0.5


class PriceSeriesBuilder:
    """由交易记录或市场快照生成价格序列"""

    def __init__(
        self,
        drift: DriftParams | None = None,
        synthetic: SyntheticParams | None = None,
        rng: random.Random | None = None,
    ):
        self.drift = drift or DriftParams()
        self.synthetic = synthetic or SyntheticParams()
        self.rng = rng or random.Random()

    @classmethod
    def from_config(
        cls, config: SeriesConfig, rng: random.Random | None = None
    ) -> "PriceSeriesBuilder":
        return cls(
            drift=DriftParams(
                buy_drift=config.buy_drift,
                sell_drift=config.sell_drift,
                clamp_band=config.clamp_band,
            ),
            synthetic=SyntheticParams(
                jitter=config.synthetic_jitter,
                floor=config.synthetic_floor,
            ),
            rng=rng,
        )

    @staticmethod
    def _normalize(swaps: list[SwapRecord]) -> list[tuple[int, float, SwapRecord]]:
        """丢弃无效记录并按时间升序排序"""
        rows: list[tuple[int, float, SwapRecord]] = []
        for swap in swaps:
            timestamp = swap.timestamp_ms
            if timestamp is None:
                logger.warning(f"Invalid timestamp in swap {swap.transaction_hash}: {swap.block_timestamp!r}")
                continue
            try:
                volume = float(swap.token_amount)
            except ValueError:
                logger.warning(f"Invalid amount in swap {swap.transaction_hash}: {swap.token_amount!r}")
                continue
            if not math.isfinite(volume) or volume < 0:
                continue
            rows.append((timestamp, volume, swap))

        rows.sort(key=lambda row: row[0])
        return rows

    def build(
        self,
        swaps: list[SwapRecord],
        snapshot: MarketSnapshot | None,
        unit: PriceUnit = PriceUnit.USD,
    ) -> list[PricePoint]:
        """
        交易锚定模式

        以快照当前价为锚, 买入使基准价按 buy_drift 上浮, 卖出按 sell_drift 下调,
        每个点限制在锚定价 ±clamp_band 之内。得到的是走势合理的价格,
        而非逐笔真实成交价。
        """
        if not swaps:
            return []
        if snapshot is None:
            logger.warning("No snapshot to anchor trade series")
            return []

        anchor = snapshot.current_price_usd if unit is PriceUnit.USD else snapshot.price_native
        if anchor is None or not math.isfinite(anchor) or anchor <= 0:
            return []

        low = anchor * (1 - self.drift.clamp_band)
        high = anchor * (1 + self.drift.clamp_band)

        points: list[PricePoint] = []
        base = anchor
        for timestamp, volume, swap in self._normalize(swaps):
            points.append(
                PricePoint(
                    timestamp=timestamp,
                    price=min(max(base, low), high),
                    volume=volume,
                    direction=swap.direction,
                )
            )
            if swap.direction is Direction.BUY:
                base = min(base * self.drift.buy_drift, high)
            else:
                base = max(base * self.drift.sell_drift, low)

        logger.debug(f"Generated {len(points)} price points from {len(swaps)} swaps")
        return points

    def synthesize(
        self,
        snapshot: MarketSnapshot | None,
        timeframe: str,
        now_ms: int | None = None,
    ) -> list[PricePoint]:
        """
        合成模式 (仅有快照时)

        在 24h 前价格与当前价之间线性插值, 每点叠加 ±jitter 的随机扰动,
        且不低于当前价的 floor 倍, 最后追加恰好等于当前价的 "now" 点。
        """
        if snapshot is None:
            raise ValueError("Synthetic series requires a market snapshot")
        if timeframe not in SYNTHETIC_GRID:
            raise ValueError(f"Unknown timeframe: {timeframe}")
        if now_ms is None:
            now_ms = int(time.time() * 1000)

        current = snapshot.current_price_usd
        if not math.isfinite(current) or current <= 0:
            return []

        divisor = 1 + snapshot.price_change_24h_percent / 100
        if divisor <= 0:
            logger.warning(f"Invalid 24h change {snapshot.price_change_24h_percent}% for pair {snapshot.pair_address}")
            return []
        price_24h_ago = current / divisor

        count, interval = SYNTHETIC_GRID[timeframe]
        floor = current * self.synthetic.floor
        volume_per_point = max(snapshot.volume_24h_usd, 0.0) * interval / DAY_MS

        points: list[PricePoint] = []
        previous = price_24h_ago
        for i in range(count):
            progress = i / (count - 1) if count > 1 else 1.0
            base = price_24h_ago + (current - price_24h_ago) * progress
            jitter = (self.rng.random() - 0.5) * 2 * self.synthetic.jitter
            price = max(base * (1 + jitter), floor)

            points.append(
                PricePoint(
                    timestamp=now_ms - (count - i) * interval,
                    price=price,
                    volume=volume_per_point * (0.5 + self.rng.random()),
                    direction=Direction.BUY if price >= previous else Direction.SELL,
                )
            )
            previous = price

        points.append(PricePoint(timestamp=now_ms, price=current, volume=0.0, direction=Direction.BUY))
        return points
