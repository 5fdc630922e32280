"""Shared fixtures for client tests.

FakeTransport stands in for the HTTP layer: it records every call and
replays a scripted sequence of pages or failures.
"""

from __future__ import annotations

import asyncio
import base64
from typing import Any, Dict, List, Optional

import pytest

from exchange.auth_client import AuthenticatedClient
from exchange.models import TransportResponse

API_KEY = "test-key"
API_SECRET = base64.b64encode(b"super-secret-key-bytes").decode()
PASSPHRASE = "test-pass"


class FakeTransport:
    """Transport stub.

    Each entry in `script` is either a response body (returned with a 200)
    or an Exception instance (raised). Once the script runs out, `default`
    is returned.
    """

    def __init__(self, script: Optional[List[Any]] = None, default: Any = None) -> None:
        self.script: List[Any] = list(script or [])
        self.default = default
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def request(self, method, path, *, data=None, headers=None):
        await asyncio.sleep(0)
        self.calls.append(
            {"method": method, "path": path, "data": data, "headers": dict(headers or {})}
        )
        outcome = self.script.pop(0) if self.script else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return TransportResponse(status=200, url=path), outcome

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def client(transport: FakeTransport) -> AuthenticatedClient:
    return AuthenticatedClient(
        API_KEY, API_SECRET, PASSPHRASE, "https://api.test", transport=transport
    )


def make_client(script: List[Any], default: Any = None):
    """Build a client wired to a scripted FakeTransport. Returns (client, transport)."""
    fake = FakeTransport(script, default=default)
    return (
        AuthenticatedClient(API_KEY, API_SECRET, PASSPHRASE, "https://api.test", transport=fake),
        fake,
    )
