# tests/client/test_client_models.py
from coinpulse.client.models import CoinSummary, Direction, SwapRecord, parse_timestamp_ms


def test_direction_parse():
    assert Direction.parse("buy") is Direction.BUY
    assert Direction.parse("SELL") is Direction.SELL
    assert Direction.parse(Direction.BUY) is Direction.BUY
    assert Direction.parse("transfer") is None
    assert Direction.parse(None) is None


def test_parse_timestamp_ms():
    assert parse_timestamp_ms(1706600000) == 1_706_600_000_000
    assert parse_timestamp_ms("1706600000") == 1_706_600_000_000
    assert parse_timestamp_ms("2024-01-30T07:33:20Z") == 1_706_600_000_000
    assert parse_timestamp_ms("2024-01-30T07:33:20") == 1_706_600_000_000
    assert parse_timestamp_ms("2024-01-30T15:33:20+08:00") == 1_706_600_000_000


def test_parse_timestamp_rejects_invalid():
    assert parse_timestamp_ms(None) is None
    assert parse_timestamp_ms(True) is None
    assert parse_timestamp_ms(0) is None
    assert parse_timestamp_ms(-5) is None
    assert parse_timestamp_ms("") is None
    assert parse_timestamp_ms("yesterday") is None


def test_swap_record_timestamp():
    record = SwapRecord(Direction.BUY, "1", "0xa", "1706600000", "0xtx")
    assert record.timestamp_ms == 1_706_600_000_000


def test_coin_summary_guards_division():
    coin = CoinSummary("0xa", "A", "A", market_cap=0.0, total_supply=0.0,
                       market_cap_delta_24h=5.0, volume_24h=0.0, holders=0)
    assert coin.current_price == 0.0
    assert coin.price_change_24h == 0.0
    assert coin.to_snapshot() is None
