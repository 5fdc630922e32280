"""
Request signer.

prehash = timestamp + METHOD + request_path + body
signature = base64(HMAC-SHA256(decoded_secret, prehash))

request_path is the path as sent, including "?query" when there is one.
The body text returned in the bundle is the only text that may be transmitted.
"""

from __future__ import annotations
import base64
import binascii
import hashlib
import hmac
import json
import time
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

from exchange.exceptions import InvalidCredentialsError, SignatureError
from exchange.models import Credentials, SecretEncoding, SignatureBundle


def serialize_body(body: Any) -> str:
    """Compact JSON, the single serialization used for signing and sending."""
    if body is None:
        return ""
    try:
        return json.dumps(body, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise SignatureError(f"Body is not JSON serializable: {e}") from e


def serialize_query(query: Optional[Mapping[str, Any]]) -> str:
    """Encode query params; None values are dropped, lists repeat the key."""
    if not query:
        return ""
    return urlencode([(k, v) for k, v in query.items() if v is not None], doseq=True)


def decode_secret(credentials: Credentials) -> bytes:
    if not credentials.secret:
        raise InvalidCredentialsError("API secret is empty")

    try:
        encoding = SecretEncoding(credentials.secret_encoding)
    except ValueError:
        raise InvalidCredentialsError(
            f"Unknown secret encoding: {credentials.secret_encoding!r}"
        ) from None

    if encoding is SecretEncoding.RAW:
        return credentials.secret.encode("utf-8")

    try:
        return base64.b64decode(credentials.secret, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidCredentialsError("API secret is not valid base64") from None


def sign_request(
    credentials: Credentials,
    method: str,
    relative_path: str,
    body: Any = None,
    timestamp: Optional[int] = None,
) -> SignatureBundle:
    """Sign one request. Pass `timestamp` only to reproduce a known signature."""
    key = decode_secret(credentials)
    if timestamp is None:
        timestamp = int(time.time())

    body_text = serialize_body(body)
    prehash = f"{timestamp}{method.upper()}{relative_path}{body_text}"
    digest = hmac.new(key, prehash.encode("utf-8"), hashlib.sha256).digest()

    return SignatureBundle(
        key=credentials.key,
        signature=base64.b64encode(digest).decode("ascii"),
        timestamp=timestamp,
        passphrase=credentials.passphrase,
        body=body_text,
    )
