"""
Authenticated REST client.
Signs every call, validates order/report/withdrawal params locally, and
drains open orders page by page for bulk cancellation.
"""

from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Dict, Iterable, List, Mapping, Optional, Set, Tuple, TYPE_CHECKING
import logging

from exchange.completion import Completion, ResultPair, data_only, deliver
from exchange.exceptions import InvalidCredentialsError, LoopAbortError, TransportError, ValidationError
from exchange.models import (
    SIZE_EXEMPT_ORDER_TYPES,
    Credentials,
    ReportType,
    RequestOptions,
    SecretEncoding,
    Side,
    TransportOptions,
    TransportResponse,
)
from exchange.signer import serialize_query, sign_request
from exchange.transport import AiohttpTransport, Transport, make_relative_uri

if TYPE_CHECKING:
    from config import ClientConfig

logger = logging.getLogger(__name__)


class AuthenticatedClient:
    """Async client for the private (signed) REST endpoints."""

    def __init__(
        self,
        key: str,
        secret: str,
        passphrase: str,
        api_uri: str,
        options: Optional[TransportOptions] = None,
        transport: Optional[Transport] = None,
    ):
        self.options = options or TransportOptions()
        try:
            encoding = SecretEncoding(self.options.secret_encoding)
        except ValueError:
            raise InvalidCredentialsError(
                f"Unknown secret encoding: {self.options.secret_encoding!r}"
            ) from None

        self._credentials = Credentials(
            key=key,
            secret=secret,
            passphrase=passphrase,
            secret_encoding=encoding,
        )
        self.api_uri = api_uri
        self._owns_transport = transport is None
        self._transport: Transport = transport or AiohttpTransport(
            base_url=api_uri,
            timeout_sec=self.options.timeout_sec,
            user_agent=self.options.user_agent,
        )
        self._pending: Set["asyncio.Task[None]"] = set()

    @classmethod
    def from_config(cls, config: "ClientConfig") -> "AuthenticatedClient":
        ex = config.exchange
        return cls(
            key=ex.api_key,
            secret=ex.api_secret,
            passphrase=ex.passphrase,
            api_uri=ex.base_url,
            options=TransportOptions(
                timeout_sec=ex.timeout_sec,
                user_agent=ex.user_agent,
                secret_encoding=ex.secret_encoding,
            ),
        )

    async def __aenter__(self) -> "AuthenticatedClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self):
        """Wait for callback-style calls still in flight, then close the transport."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        if self._owns_transport:
            await self._transport.close()

    # ==================== Signed request pipeline ====================

    async def request(
        self,
        method: str,
        uri_parts: Iterable[Any],
        options: Optional[RequestOptions] = None,
    ) -> Tuple[TransportResponse, Any]:
        """Sign and send one request. Returns the transport's (response, data)."""
        options = options or RequestOptions()
        method = method.upper()

        path = make_relative_uri(list(uri_parts))
        query = serialize_query(options.query)
        if query:
            path = f"{path}?{query}"

        bundle = sign_request(self._credentials, method, path, options.body)

        headers = bundle.headers()
        data = None
        if options.body is not None:
            # Send the exact text that was signed
            data = bundle.body
            headers["Content-Type"] = "application/json"

        logger.debug(f"[AUTH] {method} {path} ts={bundle.timestamp}")
        return await self._transport.request(method, path, data=data, headers=headers)

    async def get(self, uri_parts: Iterable[Any], options: Optional[RequestOptions] = None) -> ResultPair:
        return await self.request("GET", uri_parts, options)

    async def post(self, uri_parts: Iterable[Any], options: Optional[RequestOptions] = None) -> ResultPair:
        return await self.request("POST", uri_parts, options)

    async def delete(self, uri_parts: Iterable[Any], options: Optional[RequestOptions] = None) -> ResultPair:
        return await self.request("DELETE", uri_parts, options)

    def _dispatch(
        self,
        pair: Awaitable[ResultPair],
        callback: Optional[Completion],
    ) -> Optional[Awaitable[Any]]:
        if callback is None:
            return data_only(pair)
        deliver(pair, callback, self._pending)
        return None

    # ==================== Validation ====================

    @staticmethod
    def _require_params(params: Any, required: Iterable[str]) -> None:
        if not isinstance(params, Mapping):
            raise ValidationError("`params` must be a mapping")
        for name in required:
            if params.get(name) is None:
                raise ValidationError(f"`params` must include param `{name}`")

    @staticmethod
    def _require_id(
        value: Any,
        name: str,
        alternative: str,
        callback: Optional[Completion] = None,
    ) -> bool:
        """
        True when `value` is usable. A missing id raises ValidationError, or,
        for callback-style calls, is handed to the callback instead.
        """
        if value is not None and value != "":
            return True
        err = ValidationError(f"must provide an {name} or consider {alternative}")
        if callback is None:
            raise err
        callback(err)
        return False

    # ==================== Accounts ====================

    def get_accounts(self, *, callback: Optional[Completion] = None):
        """List trading accounts."""
        return self._dispatch(self.get(["accounts"]), callback)

    def get_account(self, account_id: str, *, callback: Optional[Completion] = None):
        return self._dispatch(self.get(["accounts", account_id]), callback)

    # ==================== Orders ====================

    def place_order(self, params: Mapping[str, Any], *, callback: Optional[Completion] = None):
        """
        Place an order.
        `side` and `product_id` are always required. `price` and `size` are
        required unless `type` is size-exempt (market, stop), in which case
        either `size` or `funds` must be given.
        """
        self._require_params(params, ["side", "product_id"])
        needs_size = params.get("type") not in SIZE_EXEMPT_ORDER_TYPES
        if needs_size:
            self._require_params(params, ["price", "size"])
        elif params.get("size") is None and params.get("funds") is None:
            raise ValidationError("`params` must include either `size` or `funds`")

        if params["side"] not in (Side.BUY.value, Side.SELL.value):
            raise ValidationError("`side` must be `buy` or `sell`")

        logger.info(
            f"[ORDER] Placing: {params['side']} {params.get('size') or params.get('funds')} "
            f"{params['product_id']} @ {params.get('price') or 'Market'} ({params.get('type', 'limit')})"
        )
        body = dict(params)
        return self._dispatch(self.post(["orders"], RequestOptions(body=body)), callback)

    def buy(self, params: Mapping[str, Any], *, callback: Optional[Completion] = None):
        return self.place_order({**params, "side": Side.BUY.value}, callback=callback)

    def sell(self, params: Mapping[str, Any], *, callback: Optional[Completion] = None):
        return self.place_order({**params, "side": Side.SELL.value}, callback=callback)

    def cancel_order(self, order_id: Optional[str] = None, *, callback: Optional[Completion] = None):
        """Cancel one order by id. Use cancel_all_orders to cancel in bulk."""
        if not self._require_id(order_id, "order_id", "cancel_all_orders", callback):
            return None
        logger.info(f"[ORDER] Cancelling: {order_id}")
        return self._dispatch(self.delete(["orders", order_id]), callback)

    def cancel_orders(self, *, callback: Optional[Completion] = None):
        """Single unfiltered bulk delete. Returns whatever the exchange sends back."""
        return self._dispatch(self.delete(["orders"]), callback)

    def cancel_all_orders(
        self,
        filter_args: Optional[Mapping[str, Any]] = None,
        *,
        callback: Optional[Completion] = None,
    ):
        """Cancel every open order matching `filter_args`. Resolves to the cancelled ids."""
        return self._dispatch(self._drain_orders(dict(filter_args or {})), callback)

    async def _drain_orders(self, filter_args: Dict[str, Any]) -> Tuple[Optional[TransportResponse], List[Any]]:
        """
        Repeat DELETE /orders with the same filter until a page comes back empty.
        Each page is a batch of ids the exchange just cancelled, so the next
        request only sees what is still open. The loop either grows `cancelled`
        or stops; it never tracks offsets itself.
        """
        options = RequestOptions(query=filter_args)
        cancelled: List[Any] = []
        response: Optional[TransportResponse] = None
        pages = 0

        while True:
            try:
                response, page = await self.delete(["orders"], options)
            except TransportError as e:
                logger.error(
                    f"[CANCEL] Aborted after {pages} page(s), "
                    f"{len(cancelled)} order(s) already cancelled: {e}"
                )
                raise LoopAbortError(e, pages) from e

            if not isinstance(page, list):
                cause = TransportError(
                    f"Expected a list of order ids, got {type(page).__name__}",
                    status=response.status if response else None,
                    body=page,
                )
                logger.error(f"[CANCEL] Aborted after {pages} page(s): {cause}")
                raise LoopAbortError(cause, pages) from cause

            if not page:
                break

            pages += 1
            cancelled.extend(page)
            logger.info(f"[CANCEL] Page {pages}: {len(page)} cancelled ({len(cancelled)} total)")

        logger.info(f"[CANCEL] Done. {len(cancelled)} order(s) cancelled")
        return response, cancelled

    def get_orders(
        self,
        filter_args: Optional[Mapping[str, Any]] = None,
        *,
        callback: Optional[Completion] = None,
    ):
        return self._dispatch(self.get(["orders"], RequestOptions(query=filter_args)), callback)

    def get_order(self, order_id: Optional[str] = None, *, callback: Optional[Completion] = None):
        if not self._require_id(order_id, "order_id", "get_orders", callback):
            return None
        return self._dispatch(self.get(["orders", order_id]), callback)

    # ==================== Fills / withdrawals / reports ====================

    def get_fills(
        self,
        filter_args: Optional[Mapping[str, Any]] = None,
        *,
        callback: Optional[Completion] = None,
    ):
        return self._dispatch(self.get(["fills"], RequestOptions(query=filter_args)), callback)

    def withdraw_crypto(self, body: Mapping[str, Any], *, callback: Optional[Completion] = None):
        """Withdraw to an external crypto address."""
        self._require_params(body, ["amount", "currency", "crypto_address"])
        logger.info(f"[WITHDRAW] {body['amount']} {body['currency']}")
        return self._dispatch(
            self.post(["withdrawals", "crypto"], RequestOptions(body=dict(body))),
            callback,
        )

    def create_report(self, params: Mapping[str, Any], *, callback: Optional[Completion] = None):
        """
        Request a report. `fills` reports need `product_id`,
        `account` reports need `account_id`.
        """
        required = ["type", "start_date", "end_date"]
        self._require_params(params, required)

        if params["type"] == ReportType.FILLS.value:
            self._require_params(params, required + ["product_id"])
        elif params["type"] == ReportType.ACCOUNT.value:
            self._require_params(params, required + ["account_id"])

        return self._dispatch(self.post(["reports"], RequestOptions(body=dict(params))), callback)

    def get_report_status(self, report_id: str, *, callback: Optional[Completion] = None):
        return self._dispatch(self.get(["reports", report_id]), callback)
