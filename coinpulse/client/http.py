"""aiohttp JSON 客户端基类"""

import json
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from coinpulse.errors import UpstreamUnavailable


@dataclass
class JSONClient:
    """带会话生命周期的 JSON API 客户端"""

    base_url: str = ""
    source: str = "upstream"
    headers: dict[str, str] = field(default_factory=dict)
    _session: aiohttp.ClientSession | None = field(default=None, repr=False)

    async def init(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(headers=self.headers)

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "JSONClient":
        await self.init()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """发送 HTTP 请求, 所有传输层失败统一为 UpstreamUnavailable"""
        if self._session is None:
            raise RuntimeError("Session not initialized. Call init() or use 'async with'.")

        url = f"{self.base_url}{endpoint}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            if method == "GET":
                response = await self._session.get(url, params=params)
            else:
                response = await self._session.post(url, json=params)

            if response.status != 200:
                error_text = await response.text()
                raise UpstreamUnavailable(self.source, error_text or "empty response", response.status)

            return await response.json()
        except aiohttp.ClientError as e:
            raise UpstreamUnavailable(self.source, str(e)) from e
        except json.JSONDecodeError as e:
            raise UpstreamUnavailable(self.source, f"invalid JSON: {e}") from e
