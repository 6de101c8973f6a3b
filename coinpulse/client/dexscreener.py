"""DEX 聚合器 (DexScreener) 客户端"""

import logging
from dataclasses import dataclass
from typing import Any

from coinpulse.client.http import JSONClient
from coinpulse.client.models import MarketSnapshot

logger = logging.getLogger(__name__)


def _nested_float(pair: dict[str, Any], key: str, sub: str | None = None) -> float:
    value: Any = pair.get(key)
    if sub is not None:
        value = value.get(sub) if isinstance(value, dict) else None
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def select_best_pair(pairs: list[dict[str, Any]]) -> dict[str, Any] | None:
    """选择流动性最高的交易对, 相同时保留先出现的"""
    best: dict[str, Any] | None = None
    for pair in pairs:
        if best is None or _nested_float(pair, "liquidity", "usd") > _nested_float(
            best, "liquidity", "usd"
        ):
            best = pair
    return best


def pair_to_snapshot(pair: dict[str, Any]) -> MarketSnapshot | None:
    price = _nested_float(pair, "priceUsd")
    if price <= 0:
        return None

    native = _nested_float(pair, "priceNative")
    return MarketSnapshot(
        current_price_usd=price,
        price_change_24h_percent=_nested_float(pair, "priceChange", "h24"),
        volume_24h_usd=_nested_float(pair, "volume", "h24"),
        liquidity_usd=_nested_float(pair, "liquidity", "usd"),
        pair_address=pair.get("pairAddress") or "",
        price_native=native if native > 0 else None,
    )


@dataclass
class DexScreenerClient(JSONClient):
    """聚合器客户端, 按合约地址返回市场快照"""

    base_url: str = "https://api.dexscreener.com"
    source: str = "dexscreener"

    async def fetch_pairs(self, coin_address: str) -> list[dict[str, Any]]:
        data = await self._request("GET", f"/latest/dex/tokens/{coin_address}")
        return list((data or {}).get("pairs") or [])

    async def fetch_snapshot(self, coin_address: str) -> MarketSnapshot | None:
        """获取市场快照, 没有有效交易对时返回 None"""
        pairs = await self.fetch_pairs(coin_address)
        if not pairs:
            logger.info(f"No pairs found for {coin_address}")
            return None

        best = select_best_pair(pairs)
        assert best is not None
        snapshot = pair_to_snapshot(best)
        if snapshot is None:
            logger.info(f"Best pair for {coin_address} has no valid price")
            return None

        logger.debug(
            f"Using pair {snapshot.pair_address} for {coin_address} "
            f"with liquidity ${snapshot.liquidity_usd:,.0f}"
        )
        return snapshot
