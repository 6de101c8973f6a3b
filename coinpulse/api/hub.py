# coinpulse/api/hub.py
import logging

from fastapi import WebSocket

from coinpulse.storage.models import LiveEvent

logger = logging.getLogger(__name__)


def room_name(coin_address: str) -> str:
    return f"coin-{coin_address.lower()}"


class LiveHub:
    """进程内的房间注册表, 按币种将事件扇出给 websocket 订阅者"""

    def __init__(self) -> None:
        self._rooms: dict[str, set[WebSocket]] = {}

    def join(self, websocket: WebSocket, coin_address: str) -> None:
        self._rooms.setdefault(coin_address.lower(), set()).add(websocket)
        logger.debug(f"Client joined {room_name(coin_address)}")

    def leave(self, websocket: WebSocket, coin_address: str) -> None:
        key = coin_address.lower()
        members = self._rooms.get(key)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self._rooms[key]
        logger.debug(f"Client left {room_name(coin_address)}")

    def leave_all(self, websocket: WebSocket) -> None:
        for coin_address in list(self._rooms):
            self.leave(websocket, coin_address)

    def rooms(self) -> list[str]:
        return list(self._rooms)

    def members(self, coin_address: str) -> set[WebSocket]:
        return set(self._rooms.get(coin_address.lower(), ()))

    async def send(self, websocket: WebSocket, event: LiveEvent) -> bool:
        try:
            await websocket.send_json(event.to_dict())
            return True
        except Exception as e:
            logger.warning(f"Dropping live subscriber after send failure: {e}")
            self.leave_all(websocket)
            return False

    async def broadcast(self, coin_address: str, event: LiveEvent) -> int:
        sent = 0
        for websocket in self.members(coin_address):
            if await self.send(websocket, event):
                sent += 1
        return sent

    async def broadcast_all(self, event: LiveEvent) -> int:
        sockets: set[WebSocket] = set()
        for members in self._rooms.values():
            sockets |= members

        sent = 0
        for websocket in sockets:
            if await self.send(websocket, event):
                sent += 1
        return sent
