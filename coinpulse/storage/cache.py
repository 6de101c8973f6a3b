# coinpulse/storage/cache.py
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

CacheKey = tuple[str, str, str]


class TTLCache:
    """按 (币种地址, 模式, 时间周期) 缓存请求结果的短期内存缓存"""

    def __init__(
        self,
        ttl_seconds: float = 120,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[CacheKey, tuple[float, Any]] = OrderedDict()

    @staticmethod
    def key(coin_address: str, mode: str, timeframe: str = "") -> CacheKey:
        return (coin_address.lower(), mode, timeframe)

    def get(self, key: CacheKey) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: CacheKey, value: Any) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (self._clock(), value)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
