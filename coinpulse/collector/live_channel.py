# coinpulse/collector/live_channel.py
import asyncio
import json
import logging
import time
from typing import Any, Protocol

import websockets

from coinpulse.aggregator.live_merger import LiveUpdateMerger
from coinpulse.config import LiveConfig
from coinpulse.storage.models import ActivityRecord, EventType, LiveEvent, PricePoint

from .base import BaseCollector

logger = logging.getLogger(__name__)

SUBSCRIBE = "subscribe-coin"
UNSUBSCRIBE = "unsubscribe-coin"


class ChannelListener(Protocol):
    async def on_event(self, event: LiveEvent) -> None: ...

    async def on_connect(self) -> None: ...

    async def on_disconnect(self) -> None: ...

    async def on_connect_error(self, error: Exception) -> None: ...


def parse_event(data: dict[str, Any]) -> LiveEvent | None:
    try:
        event_type = EventType(data.get("type"))
    except ValueError:
        return None

    payload = data.get("payload")
    timestamp = data.get("timestamp")
    return LiveEvent(
        type=event_type,
        coin_address=data.get("coinAddress"),
        payload=payload if isinstance(payload, dict) else {},
        timestamp=int(timestamp) if isinstance(timestamp, (int, float)) else int(time.time() * 1000),
    )


class LiveChannel(BaseCollector):
    """推送通道客户端, 每个进程一个实例, 事件分发给所有监听者"""

    def __init__(self, url: str, reconnect_delay: float = 5.0):
        super().__init__("live-channel")
        self.url = url
        self.reconnect_delay = reconnect_delay
        self.ws: Any = None
        self.connected = False
        self._listeners: list[ChannelListener] = []
        self._rooms: dict[str, int] = {}

    @classmethod
    def from_config(cls, config: LiveConfig) -> "LiveChannel":
        return cls(config.url, reconnect_delay=config.reconnect_delay_seconds)

    def add_listener(self, listener: ChannelListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ChannelListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _notify(self, method: str, *args: Any) -> None:
        for listener in list(self._listeners):
            try:
                await getattr(listener, method)(*args)
            except Exception as e:
                logger.error(f"Live channel listener {method} failed: {e}")

    async def connect(self) -> None:
        self.ws = await websockets.connect(self.url)
        self.connected = True
        logger.info(f"Live channel connected: {self.url}")
        await self._notify("on_connect")

    async def disconnect(self) -> None:
        if self.ws:
            await self.ws.close()
            self.ws = None
        if self.connected:
            self.connected = False
            await self._notify("on_disconnect")

    async def _send(self, action: str, coin_address: str) -> bool:
        if self.ws is None or not self.connected:
            return False
        await self.ws.send(json.dumps({"action": action, "coinAddress": coin_address}))
        return True

    async def subscribe(self, coin_address: str) -> None:
        key = coin_address.lower()
        count = self._rooms.get(key, 0)
        self._rooms[key] = count + 1
        if count == 0:
            await self._send(SUBSCRIBE, key)

    async def unsubscribe(self, coin_address: str) -> None:
        key = coin_address.lower()
        count = self._rooms.get(key, 0)
        if count <= 1:
            self._rooms.pop(key, None)
            if count == 1:
                await self._send(UNSUBSCRIBE, key)
        else:
            self._rooms[key] = count - 1

    async def resend_subscription(self, coin_address: str) -> None:
        """重连后由订阅方调用, 通道本身不会自动重新订阅"""
        await self._send(SUBSCRIBE, coin_address.lower())

    async def _process_message(self, message: str | bytes) -> None:
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse live message: {message!r}")
            return

        event = parse_event(data) if isinstance(data, dict) else None
        if event is None:
            logger.debug(f"Ignoring unknown live message: {data}")
            return
        await self._notify("on_event", event)

    async def _run(self) -> None:
        while self.running:
            if self.ws is None:
                try:
                    await self.connect()
                except asyncio.CancelledError:
                    break
                except (OSError, websockets.WebSocketException) as e:
                    logger.warning(f"Live channel connect error: {e}")
                    await self._notify("on_connect_error", e)
                    await asyncio.sleep(self.reconnect_delay)
                    continue

            try:
                message = await self.ws.recv()
                await self._process_message(message)
            except asyncio.CancelledError:
                break
            except websockets.ConnectionClosed:
                logger.warning("Live channel disconnected, reconnecting...")
                self.ws = None
                self.connected = False
                await self._notify("on_disconnect")
                await asyncio.sleep(self.reconnect_delay)
            except Exception as e:
                logger.error(f"Live channel error: {e}")
                await asyncio.sleep(self.reconnect_delay)


class LiveSession:
    """单个客户端会话: 独立的 LiveUpdateMerger, 共享的 LiveChannel"""

    def __init__(self, channel: LiveChannel, merger: LiveUpdateMerger | None = None):
        self.channel = channel
        self.merger = merger or LiveUpdateMerger()
        self.merger.connected = channel.connected
        channel.add_listener(self)

    @classmethod
    def from_config(cls, channel: LiveChannel, config: LiveConfig) -> "LiveSession":
        return cls(channel, LiveUpdateMerger(config.max_points, config.max_trades))

    async def subscribe(self, coin_address: str) -> None:
        # 通道引用计数按会话计, 同一会话重复订阅不再累加
        if self.merger.buffer(coin_address) is not None:
            return
        self.merger.subscribe(coin_address)
        await self.channel.subscribe(coin_address)

    async def unsubscribe(self, coin_address: str) -> None:
        if self.merger.buffer(coin_address) is None:
            return
        self.merger.unsubscribe(coin_address)
        await self.channel.unsubscribe(coin_address)

    async def close(self) -> None:
        for coin_address in self.merger.subscribed():
            await self.unsubscribe(coin_address)
        self.channel.remove_listener(self)

    def record_rest_load(self, coin_address: str) -> None:
        self.merger.record_rest_load(coin_address)

    def chart_points(self, coin_address: str, rest_points: list[PricePoint]) -> list[PricePoint]:
        """实时模式下在 REST 序列后追加推送点, 早于 REST 末尾的推送点被丢弃"""
        if not self.merger.is_live(coin_address):
            return list(rest_points)
        last = rest_points[-1].timestamp if rest_points else 0
        return list(rest_points) + [p for p in self.merger.points(coin_address) if p.timestamp >= last]

    def activity(self, coin_address: str, rest_activity: list[ActivityRecord]) -> list[ActivityRecord]:
        trades = self.merger.trades(coin_address)
        if self.merger.is_live(coin_address) and trades:
            return trades
        return list(rest_activity)

    async def on_event(self, event: LiveEvent) -> None:
        self.merger.apply(event)

    async def on_connect(self) -> None:
        for coin_address in self.merger.on_connect():
            await self.channel.resend_subscription(coin_address)

    async def on_disconnect(self) -> None:
        self.merger.on_disconnect()

    async def on_connect_error(self, error: Exception) -> None:
        self.merger.on_disconnect()
