# coinpulse/config.py
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel


class UpstreamConfig(BaseModel):
    timeout_seconds: float = 8.0
    zora_base_url: str = "https://api-sdk.zora.engineering"
    zora_api_key: str | None = None
    chain_id: int = 8453
    dexscreener_base_url: str = "https://api.dexscreener.com"
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    user_agent: str = "coinpulse/0.1"


class ReferenceRateConfig(BaseModel):
    source: Literal["coingecko", "exchange"] = "coingecko"
    exchange: str = "binance"
    symbol: str = "ETH/USDT"
    coin_id: str = "ethereum"
    fallback_rate_usd: float = 3500.0


class SeriesConfig(BaseModel):
    swap_count: int = 100
    anchor_unit: Literal["usd", "native"] = "usd"
    buy_drift: float = 1.0001
    sell_drift: float = 0.9999
    clamp_band: float = 0.25
    synthetic_jitter: float = 0.02
    synthetic_floor: float = 0.5
    live_point_max_age_seconds: int = 60


class ActivityConfig(BaseModel):
    limit: int = 10
    spacing_minutes: int = 5
    buy_probability: float = 0.6
    amount_variation: float = 0.4
    trades_per_hour: int = 10


class CacheConfig(BaseModel):
    ttl_seconds: float = 120
    max_entries: int = 1024


class LiveConfig(BaseModel):
    url: str = "ws://localhost:8000/api/live"
    max_points: int = 100
    max_trades: int = 10
    poll_interval_seconds: float = 10
    reconnect_delay_seconds: float = 5
    batch_size: int = 5
    batch_delay_seconds: float = 1.0


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"


class Config(BaseModel):
    upstream: UpstreamConfig = UpstreamConfig()
    reference_rate: ReferenceRateConfig = ReferenceRateConfig()
    series: SeriesConfig = SeriesConfig()
    activity: ActivityConfig = ActivityConfig()
    cache: CacheConfig = CacheConfig()
    live: LiveConfig = LiveConfig()
    server: ServerConfig = ServerConfig()


def load_config(path: Path) -> Config:
    with open(path) as f:
        data = yaml.safe_load(f)
    return Config(**(data or {}))
