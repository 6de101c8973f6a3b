# coinpulse/aggregator/usd.py
import logging
from enum import Enum

from coinpulse.aggregator.timeframe import HOUR_MS
from coinpulse.client.models import RateSample
from coinpulse.storage.models import PricePoint

logger = logging.getLogger(__name__)

# 参考汇率缺失时使用的 USD 价格
FALLBACK_RATE_USD = 3500.0


class PriceUnit(Enum):
    USD = "usd"
    NATIVE = "native"


def bucket_hour(timestamp_ms: int) -> int:
    return timestamp_ms // HOUR_MS * HOUR_MS


def build_rate_table(samples: list[RateSample]) -> dict[int, float]:
    """按小时分桶, 同一小时内较晚的样本覆盖较早的"""
    table: dict[int, float] = {}
    for sample in sorted(samples, key=lambda s: s.timestamp):
        if sample.price_usd > 0:
            table[bucket_hour(sample.timestamp)] = sample.price_usd
    return table


def to_usd(
    points: list[PricePoint],
    rates: dict[int, float],
    unit: PriceUnit = PriceUnit.NATIVE,
    fallback_rate: float = FALLBACK_RATE_USD,
) -> list[PricePoint]:
    """
    将原生资产计价的价格点转换为 USD

    不修改输入, 返回等长且顺序一致的新列表。unit 为 USD 时原样返回副本。
    """
    if unit is PriceUnit.USD:
        return list(points)

    converted: list[PricePoint] = []
    missing = 0
    for point in points:
        rate = rates.get(bucket_hour(point.timestamp))
        if rate is None:
            rate = fallback_rate
            missing += 1
        converted.append(
            PricePoint(
                timestamp=point.timestamp,
                price=point.price * rate,
                volume=point.volume,
                direction=point.direction,
            )
        )

    if missing:
        logger.warning(f"No reference rate for {missing}/{len(points)} points, used {fallback_rate}")
    return converted
