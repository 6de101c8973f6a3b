# coinpulse/storage/models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from coinpulse.client.models import Direction


class SeriesMode(Enum):
    TRADES = "trades"
    SYNTHETIC = "synthetic"
    NONE = "none"


class ActivitySource(Enum):
    AGGREGATOR = "aggregator"
    RAW = "raw"
    NONE = "none"


class EventType(Enum):
    INITIAL = "initial"
    PRICE_UPDATE = "price-update"
    NEW_TRADE = "new-trade"
    MARKET_UPDATE = "market-update"


@dataclass(frozen=True)
class PricePoint:
    timestamp: int  # ms
    price: float
    volume: float
    direction: Direction

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "price": self.price,
            "volume": self.volume,
            "type": self.direction.value,
        }


@dataclass(frozen=True)
class ActivityRecord:
    direction: Direction
    amount: str
    actor_address: str
    timestamp: int  # ms
    transaction_hash: str
    synthetic: bool = False  # 由聚合成交量插值生成

    def to_dict(self) -> dict[str, Any]:
        return {
            "activityType": self.direction.value,
            "amount": self.amount,
            "actorAddress": self.actor_address,
            "timestamp": self.timestamp,
            "transactionHash": self.transaction_hash,
            "synthetic": self.synthetic,
        }


@dataclass
class PriceHistory:
    points: list[PricePoint] = field(default_factory=list)
    total_trades_used: int = 0
    generated_at: int = 0
    mode: SeriesMode = SeriesMode.NONE
    current_price: float | None = None
    message: str | None = None


@dataclass
class RecentActivity:
    activities: list[ActivityRecord] = field(default_factory=list)
    source: ActivitySource = ActivitySource.NONE
    message: str | None = None


@dataclass(frozen=True)
class LiveEvent:
    type: EventType
    coin_address: str | None
    payload: dict[str, Any]
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "coinAddress": self.coin_address,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }
