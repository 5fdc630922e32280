"""
Data models for the authenticated client.
Orders, fills and reports stay plain dicts; only the request plumbing is typed.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class Side(Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(Enum):
    LIMIT = "limit"
    MARKET = "market"
    STOP = "stop"


class ReportType(Enum):
    FILLS = "fills"
    ACCOUNT = "account"


class SecretEncoding(Enum):
    BASE64 = "base64"
    RAW = "raw"


# Order types that may be placed without explicit price/size
SIZE_EXEMPT_ORDER_TYPES = frozenset({OrderType.MARKET.value, OrderType.STOP.value})

# Header names are case-sensitive on the exchange side
HEADER_KEY = "AC-ACCESS-KEY"
HEADER_SIGN = "AC-ACCESS-SIGN"
HEADER_TIMESTAMP = "AC-ACCESS-TIMESTAMP"
HEADER_PASSPHRASE = "AC-ACCESS-PASSPHRASE"


@dataclass(frozen=True)
class Credentials:
    """API identity. Read-only for the lifetime of a client."""
    key: str
    secret: str = field(repr=False)
    passphrase: str = field(repr=False)
    secret_encoding: SecretEncoding = SecretEncoding.BASE64


@dataclass(frozen=True)
class SignatureBundle:
    """Per-request proof of identity. Never reused across requests."""
    key: str
    signature: str
    timestamp: int          # Unix seconds, as signed
    passphrase: str = field(repr=False)
    body: str = ""          # Exact text that was signed and must be sent

    def headers(self) -> Dict[str, str]:
        return {
            HEADER_KEY: self.key,
            HEADER_SIGN: self.signature,
            HEADER_TIMESTAMP: str(self.timestamp),
            HEADER_PASSPHRASE: self.passphrase,
        }


@dataclass
class RequestOptions:
    """Query parameters and structured body for one call."""
    query: Optional[Mapping[str, Any]] = None
    body: Any = None


@dataclass
class TransportResponse:
    """Response metadata returned next to the decoded body."""
    status: int
    url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass
class TransportOptions:
    """Knobs for the default aiohttp transport."""
    timeout_sec: float = 30.0
    user_agent: str = "ac-trading-client"
    secret_encoding: SecretEncoding = SecretEncoding.BASE64
