"""
HTTP transport for the exchange REST API.
Knows nothing about authentication: it sends what it is given and maps
failures to TransportError.
"""

from __future__ import annotations
import asyncio
import json
from typing import Any, Dict, Optional, Protocol, Sequence, Tuple
import aiohttp
from yarl import URL
import logging

from exchange.exceptions import TransportError
from exchange.models import TransportResponse

logger = logging.getLogger(__name__)


def make_relative_uri(uri_parts: Sequence[Any]) -> str:
    """['orders', 'abc'] -> '/orders/abc'"""
    return "/" + "/".join(str(part) for part in uri_parts)


class Transport(Protocol):
    """What the authenticated client needs from an HTTP layer."""

    async def request(
        self,
        method: str,
        path: str,
        *,
        data: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[TransportResponse, Any]:
        ...

    async def close(self) -> None:
        ...


class AiohttpTransport:
    """Async transport over a lazily created aiohttp session."""

    def __init__(
        self,
        base_url: str,
        timeout_sec: float = 30.0,
        user_agent: str = "ac-trading-client",
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self.user_agent = user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_sec),
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def get(self, path: str, **kwargs) -> Tuple[TransportResponse, Any]:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Tuple[TransportResponse, Any]:
        return await self.request("POST", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Tuple[TransportResponse, Any]:
        return await self.request("DELETE", path, **kwargs)

    async def request(
        self,
        method: str,
        path: str,
        *,
        data: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[TransportResponse, Any]:
        """
        Send one request. `path` already carries any query string and is
        sent as-is (encoded=True) so the request target matches what was signed.
        """
        session = await self._get_session()
        url = URL(f"{self.base_url}{path}", encoded=True)

        try:
            async with session.request(method, url, data=data, headers=headers) as resp:
                raw = await resp.read()
                charset = resp.charset or "utf-8"
                response = TransportResponse(
                    status=resp.status,
                    url=str(resp.url),
                    headers=dict(resp.headers),
                )
        except aiohttp.ClientError as e:
            logger.error(f"[REST] {method} {path} Exception: {e}")
            raise TransportError(f"{method} {path} failed: {e}") from e
        except asyncio.TimeoutError as e:
            logger.error(f"[REST] {method} {path} Timeout after {self.timeout_sec}s")
            raise TransportError(f"{method} {path} timed out") from e

        try:
            text = raw.decode(charset)
        except (UnicodeDecodeError, LookupError) as e:
            logger.error(f"[REST] {method} {path} Undecodable body: status={response.status}, charset={charset}")
            raise TransportError(
                f"{method} {path} returned a body that is not valid {charset}",
                status=response.status,
                body=raw[:200],
            ) from e

        payload = self._decode(text)
        if not response.ok:
            message = self._error_message(payload, text, response.status)
            logger.error(f"[REST] {method} {path} Error: status={response.status}, msg={message}")
            raise TransportError(message, status=response.status, body=payload)

        return response, payload

    @staticmethod
    def _decode(text: str) -> Any:
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    @staticmethod
    def _error_message(payload: Any, text: str, status: int) -> str:
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return text[:200] or f"HTTP {status}"
