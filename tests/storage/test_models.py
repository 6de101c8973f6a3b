# tests/storage/test_models.py
from coinpulse.client.models import Direction
from coinpulse.storage.models import (
    ActivityRecord,
    EventType,
    LiveEvent,
    PriceHistory,
    PricePoint,
    SeriesMode,
)


def test_price_point_to_dict():
    point = PricePoint(timestamp=1000, price=0.5, volume=3.0, direction=Direction.BUY)
    assert point.to_dict() == {"timestamp": 1000, "price": 0.5, "volume": 3.0, "type": "BUY"}


def test_activity_record_to_dict():
    record = ActivityRecord(Direction.SELL, "12.5", "0xactor", 2000, "0xtx", synthetic=True)
    assert record.to_dict() == {
        "activityType": "SELL",
        "amount": "12.5",
        "actorAddress": "0xactor",
        "timestamp": 2000,
        "transactionHash": "0xtx",
        "synthetic": True,
    }


def test_live_event_to_dict():
    event = LiveEvent(EventType.NEW_TRADE, "0xcoin", {"amount": "1"}, 5)
    assert event.to_dict() == {
        "type": "new-trade",
        "coinAddress": "0xcoin",
        "payload": {"amount": "1"},
        "timestamp": 5,
    }


def test_price_history_defaults():
    history = PriceHistory()
    assert history.points == []
    assert history.mode is SeriesMode.NONE
    assert history.message is None
