# coinpulse/aggregator/timeframe.py
import time

from coinpulse.client.models import Direction
from coinpulse.storage.models import PricePoint

HOUR_MS = 3600 * 1000
DAY_MS = 24 * HOUR_MS
WEEK_MS = 7 * DAY_MS

TIMEFRAME_WINDOWS = {
    "24h": DAY_MS,
    "7d": 7 * DAY_MS,
    "30d": 30 * DAY_MS,
    "1y": 365 * DAY_MS,
}

LIVE_POINT_MAX_AGE_MS = 60 * 1000


def window_duration(timeframe: str) -> int:
    try:
        return TIMEFRAME_WINDOWS[timeframe]
    except KeyError:
        raise ValueError(f"Unknown timeframe: {timeframe}") from None


def window(
    points: list[PricePoint],
    timeframe: str,
    now_price: float | None,
    now_ms: int | None = None,
    max_age_ms: int = LIVE_POINT_MAX_AGE_MS,
) -> list[PricePoint]:
    """
    截取最近时间窗口内的价格点, 必要时追加当前价格点

    当窗口内少于 2 个点或最后一个点早于 max_age_ms 时,
    若有实时价格则在末尾追加 {now, now_price, 0, BUY}。
    已有点的顺序保持不变。
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    cutoff = now_ms - window_duration(timeframe)
    filtered = [p for p in points if p.timestamp >= cutoff]

    stale = len(filtered) < 2 or filtered[-1].timestamp < now_ms - max_age_ms
    # 追加点必须在最后, 不能早于已有点
    in_order = not filtered or filtered[-1].timestamp <= now_ms
    if stale and in_order and now_price is not None and now_price > 0:
        filtered.append(
            PricePoint(timestamp=now_ms, price=now_price, volume=0.0, direction=Direction.BUY)
        )

    return filtered
