"""上游数据源的数据模型"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class Direction(Enum):
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value: object) -> "Direction | None":
        if isinstance(value, Direction):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.upper())
        except ValueError:
            return None


def parse_timestamp_ms(value: int | float | str | None) -> int | None:
    """
    将区块时间转换为毫秒时间戳

    整数按秒处理, 字符串可以是纯数字 (秒) 或 ISO-8601。
    无法解析或非正数时返回 None。
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        ms = int(value * 1000)
    else:
        text = value.strip()
        if not text:
            return None
        if text.isdigit():
            ms = int(text) * 1000
        else:
            try:
                dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=UTC)
            ms = int(dt.timestamp() * 1000)

    return ms if ms > 0 else None


@dataclass(frozen=True)
class SwapRecord:
    """链上交易记录"""

    direction: Direction
    token_amount: str
    counterparty_address: str
    block_timestamp: int | str
    transaction_hash: str

    @property
    def timestamp_ms(self) -> int | None:
        return parse_timestamp_ms(self.block_timestamp)


@dataclass
class SwapPage:
    """分页的交易记录"""

    records: list[SwapRecord] = field(default_factory=list)
    has_more: bool = False
    cursor: str | None = None


@dataclass(frozen=True)
class MarketSnapshot:
    """聚合器的市场快照 (流动性最高的交易对)"""

    current_price_usd: float
    price_change_24h_percent: float
    volume_24h_usd: float
    liquidity_usd: float
    pair_address: str
    price_native: float | None = None


@dataclass(frozen=True)
class RateSample:
    """参考资产的 USD 价格"""

    timestamp: int
    price_usd: float


@dataclass(frozen=True)
class CoinSummary:
    """索引服务返回的币种概要"""

    address: str
    name: str
    symbol: str
    market_cap: float
    total_supply: float
    market_cap_delta_24h: float
    volume_24h: float
    holders: int

    @property
    def current_price(self) -> float:
        if self.total_supply <= 0:
            return 0.0
        return self.market_cap / self.total_supply

    @property
    def price_change_24h(self) -> float:
        if self.market_cap <= 0:
            return 0.0
        return self.market_cap_delta_24h / self.market_cap * 100

    def to_snapshot(self) -> MarketSnapshot | None:
        """在聚合器没有交易对时作为备用锚定价格"""
        price = self.current_price
        if price <= 0:
            return None
        return MarketSnapshot(
            current_price_usd=price,
            price_change_24h_percent=self.price_change_24h,
            volume_24h_usd=self.volume_24h,
            liquidity_usd=0.0,
            pair_address="",
        )
