# tests/aggregator/test_live_merger.py
from coinpulse.aggregator.live_merger import LiveState, LiveUpdateMerger
from coinpulse.client.models import Direction
from coinpulse.storage.models import EventType, LiveEvent

COIN = "0x" + "ab" * 20


def trade_event(n: int, coin: str = COIN) -> LiveEvent:
    return LiveEvent(
        type=EventType.NEW_TRADE,
        coin_address=coin,
        payload={
            "direction": "buy" if n % 2 else "SELL",
            "amount": str(n * 100),
            "actor": f"0xactor{n}",
            "timestamp": 1_706_600_000_000 + n,
            "txHash": f"0xtx{n}",
        },
        timestamp=1_706_600_000_000 + n,
    )


def price_event(price, timestamp: int = 1_706_600_000_000, **payload) -> LiveEvent:
    return LiveEvent(
        type=EventType.PRICE_UPDATE,
        coin_address=COIN,
        payload={"price": price, "change24h": 5.0, "volume24h": 1000.0, **payload},
        timestamp=timestamp,
    )


def test_new_trades_are_most_recent_first():
    merger = LiveUpdateMerger()
    merger.subscribe(COIN)

    for n in (1, 2, 3):
        assert merger.apply(trade_event(n))

    trades = merger.trades(COIN)
    assert [t.transaction_hash for t in trades] == ["0xtx3", "0xtx2", "0xtx1"]
    assert trades[0].direction is Direction.BUY
    assert trades[1].direction is Direction.SELL


def test_trades_are_capped_at_ten():
    merger = LiveUpdateMerger()
    merger.subscribe(COIN)

    for n in range(25):
        merger.apply(trade_event(n))

    trades = merger.trades(COIN)
    assert len(trades) == 10
    assert trades[0].transaction_hash == "0xtx24"
    assert trades[-1].transaction_hash == "0xtx15"


def test_price_updates_append_in_arrival_order():
    merger = LiveUpdateMerger(max_points=3)
    merger.subscribe(COIN)

    for i, price in enumerate([1.0, 1.1, 1.2, 1.3]):
        merger.apply(price_event(price, timestamp=1000 + i))

    points = merger.points(COIN)
    assert [p.price for p in points] == [1.1, 1.2, 1.3]
    assert all(p.direction is Direction.BUY for p in points)
    assert merger.buffer(COIN).price == 1.3
    assert merger.buffer(COIN).volume_24h == 1000.0


def test_price_update_uses_pushed_direction():
    merger = LiveUpdateMerger()
    merger.subscribe(COIN)
    merger.apply(price_event(2.0, direction="SELL"))
    assert merger.points(COIN)[0].direction is Direction.SELL


def test_invalid_price_is_ignored():
    merger = LiveUpdateMerger()
    merger.subscribe(COIN)

    merger.apply(price_event(None))
    merger.apply(price_event(0))
    merger.apply(price_event("nan-ish"))

    assert merger.points(COIN) == []


def test_unsubscribed_coin_is_ignored():
    merger = LiveUpdateMerger()
    assert merger.apply(trade_event(1)) is False
    assert merger.trades(COIN) == []


def test_addresses_are_case_insensitive():
    merger = LiveUpdateMerger()
    merger.subscribe(COIN.upper().replace("0X", "0x"))

    assert merger.apply(trade_event(1))
    assert len(merger.trades(COIN)) == 1


def test_global_market_update():
    merger = LiveUpdateMerger()
    event = LiveEvent(EventType.MARKET_UPDATE, None, {"totalCoins": 3}, 1)

    assert merger.apply(event)
    assert merger.market == {"totalCoins": 3}


def test_state_machine_transitions():
    merger = LiveUpdateMerger()
    merger.subscribe(COIN)
    assert merger.state(COIN) is LiveState.COLD

    merger.record_rest_load(COIN)
    assert merger.state(COIN) is LiveState.POLLING

    merger.apply(price_event(1.0))
    assert merger.state(COIN) is LiveState.LIVE
    assert merger.is_live(COIN)

    merger.on_disconnect()
    assert merger.state(COIN) is LiveState.RECONNECTING
    assert not merger.is_live(COIN)
    assert merger.connected is False

    resubscribe = merger.on_connect()
    assert resubscribe == [COIN]
    assert merger.state(COIN) is LiveState.POLLING
    assert merger.connected is True

    merger.apply(trade_event(1))
    assert merger.state(COIN) is LiveState.LIVE


def test_invalid_payload_does_not_switch_to_live():
    merger = LiveUpdateMerger()
    merger.subscribe(COIN)
    merger.record_rest_load(COIN)
    trade = trade_event(1)
    trade.payload.pop("direction")

    assert merger.apply(price_event(None)) is False
    assert merger.apply(trade) is False

    assert merger.state(COIN) is LiveState.POLLING
    assert merger.points(COIN) == []
    assert merger.trades(COIN) == []


def test_rest_load_does_not_downgrade_live():
    merger = LiveUpdateMerger()
    merger.subscribe(COIN)
    merger.apply(price_event(1.0))

    merger.record_rest_load(COIN)

    assert merger.state(COIN) is LiveState.LIVE


def test_unsubscribe_discards_buffer():
    merger = LiveUpdateMerger()
    merger.subscribe(COIN)
    merger.apply(trade_event(1))

    merger.unsubscribe(COIN)

    assert merger.subscribed() == []
    assert merger.trades(COIN) == []
    assert merger.state(COIN) is None


def test_trade_timestamp_accepts_iso_string():
    merger = LiveUpdateMerger()
    merger.subscribe(COIN)
    event = LiveEvent(
        EventType.NEW_TRADE,
        COIN,
        {"direction": "BUY", "amount": "1", "timestamp": "1970-01-01T00:00:10Z"},
        99,
    )

    merger.apply(event)

    assert merger.trades(COIN)[0].timestamp == 10_000
