# coinpulse/fetching.py
import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine, Hashable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from coinpulse.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


@dataclass
class FetchResult(Generic[T]):
    value: T | None = None
    failed: bool = False


async def guarded_fetch(
    coro: Coroutine[Any, Any, T],
    source: str,
    timeout: float,
) -> FetchResult[T]:
    """
    带超时的上游请求

    超时视为上游为空 (继续回退链), UpstreamUnavailable 记为失败。
    """
    try:
        return FetchResult(value=await asyncio.wait_for(coro, timeout=timeout))
    except TimeoutError:
        logger.warning(f"{source} timed out after {timeout}s, treating as empty")
        return FetchResult()
    except UpstreamUnavailable as e:
        logger.error(f"{source} unavailable: {e}")
        return FetchResult(failed=True)


async def gather_in_batches(
    items: list[K],
    fetch: Callable[[K], Awaitable[T]],
    batch_size: int = 5,
    delay_seconds: float = 1.0,
) -> dict[K, T]:
    """
    分批并发请求, 批次之间等待 delay_seconds 以遵守上游限流

    单项失败只记录日志, 不影响其他项。
    """
    results: dict[K, T] = {}
    for start in range(0, len(items), batch_size):
        batch = items[start : start + batch_size]
        outcomes = await asyncio.gather(*(fetch(item) for item in batch), return_exceptions=True)
        for item, outcome in zip(batch, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.error(f"Batch fetch failed for {item}: {outcome}")
                continue
            results[item] = outcome

        if start + batch_size < len(items):
            await asyncio.sleep(delay_seconds)
    return results
