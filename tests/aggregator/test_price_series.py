# tests/aggregator/test_price_series.py
import random

import pytest

from coinpulse.aggregator.price_series import (
    DriftParams,
    PriceSeriesBuilder,
    SyntheticParams,
)
from coinpulse.aggregator.usd import PriceUnit
from coinpulse.client.models import Direction, MarketSnapshot, SwapRecord
from coinpulse.config import SeriesConfig

NOW_MS = 1_706_600_000_000


def make_snapshot(price: float = 0.01, change: float = 10.0, volume: float = 50000.0, **kwargs) -> MarketSnapshot:
    return MarketSnapshot(
        current_price_usd=price,
        price_change_24h_percent=change,
        volume_24h_usd=volume,
        liquidity_usd=kwargs.pop("liquidity", 100000.0),
        pair_address=kwargs.pop("pair_address", "0xpair"),
        **kwargs,
    )


def make_swap(timestamp, direction: Direction = Direction.BUY, amount: str = "100") -> SwapRecord:
    return SwapRecord(
        direction=direction,
        token_amount=amount,
        counterparty_address="0xtrader",
        block_timestamp=timestamp,
        transaction_hash=f"0xtx{timestamp}",
    )


def test_empty_swaps_yield_empty_series():
    builder = PriceSeriesBuilder(rng=random.Random(1))
    assert builder.build([], make_snapshot()) == []


def test_synthetic_scenario_24h():
    builder = PriceSeriesBuilder(rng=random.Random(42))
    snapshot = make_snapshot(price=0.004, change=10, volume=50000)

    points = builder.synthesize(snapshot, "24h", now_ms=NOW_MS)

    assert len(points) == 25
    assert points[-1].price == 0.004
    assert points[-1].timestamp == NOW_MS
    assert points[-1].volume == 0.0


@pytest.mark.parametrize("timeframe,count", [("24h", 24), ("7d", 168), ("30d", 30), ("1y", 52)])
def test_synthetic_point_counts_and_order(timeframe, count):
    builder = PriceSeriesBuilder(rng=random.Random(7))
    points = builder.synthesize(make_snapshot(), timeframe, now_ms=NOW_MS)

    assert len(points) == count + 1
    timestamps = [p.timestamp for p in points]
    assert timestamps == sorted(timestamps)


def test_synthetic_floor_holds_with_large_jitter():
    builder = PriceSeriesBuilder(synthetic=SyntheticParams(jitter=0.9, floor=0.5), rng=random.Random(3))
    snapshot = make_snapshot(price=1.0, change=300)

    points = builder.synthesize(snapshot, "7d", now_ms=NOW_MS)

    assert points
    assert all(p.price >= 0.5 for p in points)


def test_synthetic_jitter_is_bounded():
    builder = PriceSeriesBuilder(rng=random.Random(11))
    snapshot = make_snapshot(price=2.0, change=0)

    points = builder.synthesize(snapshot, "24h", now_ms=NOW_MS)

    # 24h 涨跌为 0 时插值基准恒为当前价
    assert all(2.0 * 0.98 <= p.price <= 2.0 * 1.02 for p in points)


def test_synthetic_is_deterministic_with_seed():
    snapshot = make_snapshot()
    first = PriceSeriesBuilder(rng=random.Random(5)).synthesize(snapshot, "30d", now_ms=NOW_MS)
    second = PriceSeriesBuilder(rng=random.Random(5)).synthesize(snapshot, "30d", now_ms=NOW_MS)
    assert first == second


def test_synthetic_guards_degenerate_snapshots():
    builder = PriceSeriesBuilder(rng=random.Random(1))
    assert builder.synthesize(make_snapshot(price=0), "24h", now_ms=NOW_MS) == []
    assert builder.synthesize(make_snapshot(change=-100), "24h", now_ms=NOW_MS) == []
    assert builder.synthesize(make_snapshot(change=-150), "24h", now_ms=NOW_MS) == []


def test_synthetic_requires_snapshot_and_known_timeframe():
    builder = PriceSeriesBuilder()
    with pytest.raises(ValueError):
        builder.synthesize(None, "24h")
    with pytest.raises(ValueError, match="Unknown timeframe"):
        builder.synthesize(make_snapshot(), "5m")


def test_trade_anchored_scenario_five_buys():
    builder = PriceSeriesBuilder()
    swaps = [make_swap(1_706_600_000 + i * 60) for i in range(5)]

    points = builder.build(swaps, make_snapshot(price=0.01))

    assert len(points) == 5
    assert [p.timestamp for p in points] == [s.timestamp_ms for s in swaps]
    assert all(0.0075 <= p.price <= 0.0125 for p in points)
    for previous, current in zip(points, points[1:]):
        assert current.price > previous.price
    assert points[0].price == 0.01


def test_trade_anchored_sorts_unordered_swaps():
    builder = PriceSeriesBuilder()
    swaps = [make_swap(300), make_swap(100, Direction.SELL), make_swap(200)]

    points = builder.build(swaps, make_snapshot())

    assert [p.timestamp for p in points] == [100_000, 200_000, 300_000]
    assert points[0].direction is Direction.SELL


def test_trade_anchored_clamps_long_runs():
    builder = PriceSeriesBuilder()
    anchor = 0.01
    buys = [make_swap(1_000 + i) for i in range(5000)]
    sells = [make_swap(10_000 + i, Direction.SELL) for i in range(5000)]

    up = builder.build(buys, make_snapshot(price=anchor))
    down = builder.build(sells, make_snapshot(price=anchor))

    assert max(p.price for p in up) <= anchor * 1.25
    assert min(p.price for p in down) >= anchor * 0.75
    assert up[-1].price == pytest.approx(anchor * 1.25)
    assert down[-1].price == pytest.approx(anchor * 0.75)


def test_trade_anchored_drops_invalid_records():
    builder = PriceSeriesBuilder()
    swaps = [
        make_swap(100),
        make_swap("not-a-time"),
        make_swap(0),
        make_swap(200, amount="abc"),
        make_swap("1970-01-01T00:05:00Z"),
    ]

    points = builder.build(swaps, make_snapshot())

    assert [p.timestamp for p in points] == [100_000, 300_000]


def test_trade_anchored_without_snapshot_is_empty():
    builder = PriceSeriesBuilder()
    assert builder.build([make_swap(100)], None) == []
    assert builder.build([make_swap(100)], make_snapshot(price=0)) == []


def test_trade_anchored_native_unit_uses_native_price():
    builder = PriceSeriesBuilder()
    snapshot = make_snapshot(price=0.01, price_native=0.000004)

    points = builder.build([make_swap(100)], snapshot, PriceUnit.NATIVE)

    assert points[0].price == 0.000004
    assert builder.build([make_swap(100)], make_snapshot(), PriceUnit.NATIVE) == []


def test_from_config_uses_configured_drift():
    config = SeriesConfig(buy_drift=1.01, sell_drift=0.99, clamp_band=0.1, synthetic_jitter=0.0)
    builder = PriceSeriesBuilder.from_config(config, random.Random(1))

    assert builder.drift == DriftParams(buy_drift=1.01, sell_drift=0.99, clamp_band=0.1)
    assert builder.synthetic.jitter == 0.0

    points = builder.build([make_swap(100), make_swap(200)], make_snapshot(price=1.0))
    assert points[1].price == pytest.approx(1.01)
