"""链上索引服务 (Zora coins API) 客户端"""

import logging
from dataclasses import dataclass
from typing import Any

from coinpulse.client.http import JSONClient
from coinpulse.client.models import CoinSummary, Direction, SwapPage, SwapRecord

logger = logging.getLogger(__name__)

BASE_CHAIN_ID = 8453


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class ZoraClient(JSONClient):
    """索引服务客户端, 提供交易记录与币种概要"""

    base_url: str = "https://api-sdk.zora.engineering"
    source: str = "zora"
    chain_id: int = BASE_CHAIN_ID
    api_key: str | None = None

    def __post_init__(self) -> None:
        if self.api_key:
            self.headers["api-key"] = self.api_key

    @staticmethod
    def _parse_swap(node: dict[str, Any]) -> SwapRecord | None:
        direction = Direction.parse(node.get("activityType"))
        if direction is None:
            return None
        block_timestamp = node.get("blockTimestamp")
        if block_timestamp is None:
            return None
        return SwapRecord(
            direction=direction,
            token_amount=str(node.get("coinAmount") or "0"),
            counterparty_address=node.get("senderAddress") or "",
            block_timestamp=block_timestamp,
            transaction_hash=node.get("transactionHash") or "",
        )

    async def fetch_swaps(
        self, coin_address: str, count: int, cursor: str | None = None
    ) -> SwapPage:
        """获取交易记录 (按区块时间倒序返回)"""
        data = await self._request(
            "GET",
            "/coinSwaps",
            {"address": coin_address, "chain": self.chain_id, "first": count, "after": cursor},
        )
        token = (data or {}).get("zora20Token") or {}
        activities = token.get("swapActivities") or {}

        records: list[SwapRecord] = []
        for edge in activities.get("edges") or []:
            record = self._parse_swap(edge.get("node") or {})
            if record is None:
                logger.debug(f"Skipping malformed swap for {coin_address}: {edge}")
                continue
            records.append(record)

        page_info = activities.get("pageInfo") or {}
        return SwapPage(
            records=records,
            has_more=bool(page_info.get("hasNextPage")),
            cursor=page_info.get("endCursor"),
        )

    async def fetch_coin(self, coin_address: str) -> CoinSummary | None:
        """获取币种概要, 不存在时返回 None"""
        data = await self._request(
            "GET", "/coin", {"address": coin_address, "chain": self.chain_id}
        )
        token = (data or {}).get("zora20Token")
        if not token:
            return None

        return CoinSummary(
            address=token.get("address") or coin_address,
            name=token.get("name") or "Unknown Coin",
            symbol=token.get("symbol") or "UNKNOWN",
            market_cap=_to_float(token.get("marketCap")),
            total_supply=_to_float(token.get("totalSupply")),
            market_cap_delta_24h=_to_float(token.get("marketCapDelta24h")),
            volume_24h=_to_float(token.get("volume24h") or token.get("totalVolume")),
            holders=int(_to_float(token.get("uniqueHolders"))),
        )
