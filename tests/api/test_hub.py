# tests/api/test_hub.py
from unittest.mock import AsyncMock, MagicMock

from coinpulse.api.hub import LiveHub, room_name
from coinpulse.storage.models import EventType, LiveEvent

COIN_A = "0x" + "a1" * 20
COIN_B = "0x" + "b2" * 20


def socket() -> MagicMock:
    ws = MagicMock()
    ws.send_json = AsyncMock()
    return ws


def event(coin: str | None = COIN_A) -> LiveEvent:
    return LiveEvent(EventType.PRICE_UPDATE, coin, {"price": 1.0}, 1)


def test_room_name():
    assert room_name("0xABC") == "coin-0xabc"


def test_join_and_leave():
    hub = LiveHub()
    ws = socket()

    hub.join(ws, COIN_A)
    hub.join(ws, COIN_B)
    assert sorted(hub.rooms()) == sorted([COIN_A, COIN_B])

    hub.leave(ws, COIN_A)
    assert hub.rooms() == [COIN_B]

    hub.leave_all(ws)
    assert hub.rooms() == []


async def test_broadcast_reaches_room_members_only():
    hub = LiveHub()
    a, b = socket(), socket()
    hub.join(a, COIN_A)
    hub.join(b, COIN_B)

    sent = await hub.broadcast(COIN_A, event())

    assert sent == 1
    a.send_json.assert_called_once_with(event().to_dict())
    b.send_json.assert_not_called()


async def test_broadcast_all_sends_once_per_socket():
    hub = LiveHub()
    ws = socket()
    hub.join(ws, COIN_A)
    hub.join(ws, COIN_B)

    assert await hub.broadcast_all(event(None)) == 1


async def test_failed_socket_is_dropped():
    hub = LiveHub()
    broken = socket()
    broken.send_json = AsyncMock(side_effect=RuntimeError("closed"))
    hub.join(broken, COIN_A)

    assert await hub.broadcast(COIN_A, event()) == 0
    assert hub.rooms() == []
