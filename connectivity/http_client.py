"""
HTTP 传输客户端：对 httpx 的最小封装。

每次调用创建独立的 AsyncClient（无连接池、无重试）。
一次调用只有三种结果之一：完整响应、TransportError、TransportTimeout。
"""

import asyncio
import json
import logging
from typing import Any

import httpx

from connectivity.errors import TransportError, TransportTimeout
from connectivity.models import HttpResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10_000
TIMEOUT_MESSAGE = "Request timeout - Provider API did not respond in time"


def _decode_json(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


class HttpClient:
    """发送单次 HTTP(S) 请求并捕获原始响应体。"""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        # 测试时可注入 httpx.MockTransport
        self._transport = transport

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: Any = None,
        timeout_ms: int | None = None,
    ) -> HttpResponse:
        timeout_s = (timeout_ms or DEFAULT_TIMEOUT_MS) / 1000

        kwargs: dict[str, Any] = {"headers": headers or {}}
        if isinstance(body, (dict, list)):
            kwargs["json"] = body
        elif isinstance(body, (str, bytes)):
            kwargs["content"] = body

        try:
            return await asyncio.wait_for(
                self._send(method.upper(), url, timeout_s, kwargs),
                timeout=timeout_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(f"请求超时 ({timeout_s}s): {method.upper()} {url}")
            raise TransportTimeout(TIMEOUT_MESSAGE) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}") from e

    async def _send(self, method: str, url: str, timeout_s: float, kwargs: dict[str, Any]) -> HttpResponse:
        async with httpx.AsyncClient(transport=self._transport, timeout=timeout_s) as client:
            resp = await client.request(method, url, **kwargs)
            text = resp.text
            return HttpResponse(
                status_code=resp.status_code,
                reason=resp.reason_phrase,
                headers=dict(resp.headers),
                body=text,
                data=_decode_json(text),
            )

    async def get(self, url: str, headers: dict[str, str] | None = None, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> HttpResponse:
        return await self.request(url, "GET", headers=headers, timeout_ms=timeout_ms)

    async def post(self, url: str, body: Any = None, headers: dict[str, str] | None = None, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> HttpResponse:
        return await self.request(url, "POST", headers=headers, body=body, timeout_ms=timeout_ms)

    async def put(self, url: str, body: Any = None, headers: dict[str, str] | None = None, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> HttpResponse:
        return await self.request(url, "PUT", headers=headers, body=body, timeout_ms=timeout_ms)

    async def delete(self, url: str, headers: dict[str, str] | None = None, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> HttpResponse:
        return await self.request(url, "DELETE", headers=headers, timeout_ms=timeout_ms)
