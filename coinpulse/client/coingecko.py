"""CoinGecko 客户端, 提供参考资产的历史 USD 价格"""

from dataclasses import dataclass

from coinpulse.client.http import JSONClient
from coinpulse.client.models import RateSample


@dataclass
class CoinGeckoClient(JSONClient):
    base_url: str = "https://api.coingecko.com/api/v3"
    source: str = "coingecko"
    coin_id: str = "ethereum"

    async def fetch_reference_rate_series(self, days: int) -> list[RateSample]:
        """获取最近 days 天的价格序列 (days <= 90 时为小时粒度)"""
        data = await self._request(
            "GET",
            f"/coins/{self.coin_id}/market_chart",
            {"vs_currency": "usd", "days": days},
        )
        samples: list[RateSample] = []
        for entry in (data or {}).get("prices") or []:
            try:
                timestamp, price = int(entry[0]), float(entry[1])
            except (TypeError, ValueError, IndexError):
                continue
            if price > 0:
                samples.append(RateSample(timestamp=timestamp, price_usd=price))
        return samples
