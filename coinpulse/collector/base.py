# coinpulse/collector/base.py
import asyncio
import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class BaseCollector(ABC):
    def __init__(self, name: str):
        self.name = name
        self.running = False
        self._task: asyncio.Task[None] | None = None

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    async def start(self) -> None:
        self.running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"{self.__class__.__name__} started for {self.name}")

    async def stop(self) -> None:
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.disconnect()
        logger.info(f"{self.__class__.__name__} stopped for {self.name}")

    @abstractmethod
    async def _run(self) -> None:
        pass
