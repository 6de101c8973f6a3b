# coinpulse/api/app.py
import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from coinpulse.api.hub import LiveHub
from coinpulse.api.routes import router
from coinpulse.collector.snapshot_poller import SnapshotPoller
from coinpulse.config import Config
from coinpulse.service import CoinDataService

logger = logging.getLogger(__name__)


async def purge_cache_periodically(service: CoinDataService, interval: float) -> None:
    """定时清理过期缓存"""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = service.purge_cache()
            if removed > 0:
                logger.debug(f"Purged {removed} expired cache entries")
        except Exception as e:
            logger.error(f"Failed to purge cache: {e}")


def create_app(
    config: Config | None = None,
    service: CoinDataService | None = None,
    hub: LiveHub | None = None,
    poller: SnapshotPoller | None = None,
) -> FastAPI:
    config = config or Config()
    service = service or CoinDataService(config)
    hub = hub or LiveHub()
    poller = poller or SnapshotPoller(
        hub,
        service.dexscreener,
        service.zora,
        interval=config.live.poll_interval_seconds,
        batch_size=config.live.batch_size,
        batch_delay=config.live.batch_delay_seconds,
        swap_count=config.activity.limit,
        timeout=config.upstream.timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await service.init()
        await poller.start()
        cleanup = asyncio.create_task(purge_cache_periodically(service, config.cache.ttl_seconds))
        logger.info("coinpulse started")

        yield

        cleanup.cancel()
        await poller.stop()
        await service.close()
        logger.info("coinpulse stopped")

    app = FastAPI(title="coinpulse", lifespan=lifespan)
    app.state.config = config
    app.state.service = service
    app.state.hub = hub
    app.state.poller = poller
    app.include_router(router)
    return app
