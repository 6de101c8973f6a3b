# coinpulse/aggregator/live_merger.py
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from coinpulse.client.models import Direction, parse_timestamp_ms
from coinpulse.storage.models import ActivityRecord, EventType, LiveEvent, PricePoint

logger = logging.getLogger(__name__)

MAX_LIVE_POINTS = 100
MAX_LIVE_TRADES = 10


class LiveState(Enum):
    """
    每个订阅币种的数据来源状态

    cold         -> 已订阅, 尚无任何数据
    polling      -> 使用 REST 数据 (初次加载完成, 或重连后尚未收到推送)
    live         -> 已收到推送, 推送数据为主要来源
    reconnecting -> 推送连接断开, 回退到最近一次 REST 数据
    """

    COLD = "cold"
    POLLING = "polling"
    LIVE = "live"
    RECONNECTING = "reconnecting"


@dataclass
class CoinBuffer:
    """单个币种的有界实时缓冲"""

    points: deque[PricePoint]
    trades: deque[ActivityRecord]
    state: LiveState = LiveState.COLD
    price: float | None = None
    price_change_24h: float | None = None
    volume_24h: float | None = None
    market: dict[str, Any] = field(default_factory=dict)


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class LiveUpdateMerger:
    """将推送事件合并进有界的内存序列, 每个订阅会话一个实例"""

    def __init__(self, max_points: int = MAX_LIVE_POINTS, max_trades: int = MAX_LIVE_TRADES):
        self.max_points = max_points
        self.max_trades = max_trades
        self.connected = False
        self.market: dict[str, Any] = {}
        self._buffers: dict[str, CoinBuffer] = {}

    @staticmethod
    def _key(coin_address: str) -> str:
        return coin_address.lower()

    def subscribe(self, coin_address: str) -> CoinBuffer:
        key = self._key(coin_address)
        buffer = self._buffers.get(key)
        if buffer is None:
            buffer = CoinBuffer(
                points=deque(maxlen=self.max_points),
                trades=deque(maxlen=self.max_trades),
            )
            self._buffers[key] = buffer
        return buffer

    def unsubscribe(self, coin_address: str) -> None:
        self._buffers.pop(self._key(coin_address), None)

    def subscribed(self) -> list[str]:
        return list(self._buffers)

    def buffer(self, coin_address: str) -> CoinBuffer | None:
        return self._buffers.get(self._key(coin_address))

    def state(self, coin_address: str) -> LiveState | None:
        buffer = self.buffer(coin_address)
        return buffer.state if buffer else None

    def is_live(self, coin_address: str) -> bool:
        return self.state(coin_address) is LiveState.LIVE

    def points(self, coin_address: str) -> list[PricePoint]:
        buffer = self.buffer(coin_address)
        return list(buffer.points) if buffer else []

    def trades(self, coin_address: str) -> list[ActivityRecord]:
        """最近的交易, 最新的在前"""
        buffer = self.buffer(coin_address)
        return list(buffer.trades) if buffer else []

    def record_rest_load(self, coin_address: str) -> None:
        """REST 初次加载完成"""
        buffer = self.buffer(coin_address)
        if buffer and buffer.state is LiveState.COLD:
            buffer.state = LiveState.POLLING

    def on_connect(self) -> list[str]:
        """
        推送连接建立

        Returns:
            需要由调用方重新发送订阅消息的币种列表
        """
        self.connected = True
        for buffer in self._buffers.values():
            if buffer.state is LiveState.RECONNECTING:
                buffer.state = LiveState.POLLING
        return self.subscribed()

    def on_disconnect(self) -> None:
        self.connected = False
        for buffer in self._buffers.values():
            buffer.state = LiveState.RECONNECTING

    def apply(self, event: LiveEvent) -> bool:
        """
        合并一条推送事件

        Returns:
            事件是否被接收 (未订阅的币种或无效的载荷返回 False)
        """
        if event.type is EventType.MARKET_UPDATE and event.coin_address is None:
            self.market = dict(event.payload)
            return True

        if event.coin_address is None:
            return False
        buffer = self.buffer(event.coin_address)
        if buffer is None:
            return False

        applied = True
        if event.type is EventType.PRICE_UPDATE:
            applied = self._apply_price(buffer, event)
        elif event.type is EventType.NEW_TRADE:
            applied = self._apply_trade(buffer, event)
        elif event.type is EventType.MARKET_UPDATE:
            buffer.market = dict(event.payload)

        # 只有实际写入数据的事件才切换到推送模式
        if applied:
            buffer.state = LiveState.LIVE
        return applied

    def _apply_price(self, buffer: CoinBuffer, event: LiveEvent) -> bool:
        payload = event.payload
        price = _to_float(payload.get("price"))
        if price is None or price <= 0:
            logger.debug(f"Ignoring price update without valid price: {payload}")
            return False

        buffer.price = price
        buffer.price_change_24h = _to_float(payload.get("change24h")) or 0.0
        buffer.volume_24h = _to_float(payload.get("volume24h")) or 0.0
        direction = Direction.parse(payload.get("direction")) or Direction.BUY
        buffer.points.append(
            PricePoint(
                timestamp=event.timestamp,
                price=price,
                volume=buffer.volume_24h,
                direction=direction,
            )
        )
        return True

    def _apply_trade(self, buffer: CoinBuffer, event: LiveEvent) -> bool:
        payload = event.payload
        direction = Direction.parse(payload.get("direction"))
        if direction is None:
            logger.debug(f"Ignoring trade without direction: {payload}")
            return False

        buffer.trades.appendleft(
            ActivityRecord(
                direction=direction,
                amount=str(payload.get("amount") or "0"),
                actor_address=payload.get("actor") or "",
                timestamp=_trade_timestamp(payload.get("timestamp"), event.timestamp),
                transaction_hash=payload.get("txHash") or "",
            )
        )
        return True


def _trade_timestamp(value: Any, default: int) -> int:
    # 推送中的数值时间已是毫秒
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        return int(value)
    if isinstance(value, str):
        return parse_timestamp_ms(value) or default
    return default
