from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac

import pytest

from exchange.auth_client import AuthenticatedClient
from exchange.exceptions import InvalidCredentialsError, TransportError, ValidationError
from exchange.models import RequestOptions, TransportOptions

from conftest import API_KEY, API_SECRET, PASSPHRASE, FakeTransport, make_client


def _sign(ts: str, method: str, path: str, body: str = "") -> str:
    digest = hmac.new(base64.b64decode(API_SECRET), f"{ts}{method}{path}{body}".encode(),
                      hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


# ---------------------------------------------------------------------------
# Signed request pipeline
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_every_call_carries_auth_headers(client, transport):
    transport.default = [{"id": "acc-1"}]
    data = await client.get_accounts()

    assert data == [{"id": "acc-1"}]
    call = transport.calls[0]
    assert call["method"] == "GET"
    assert call["path"] == "/accounts"
    assert call["data"] is None
    headers = call["headers"]
    assert headers["AC-ACCESS-KEY"] == API_KEY
    assert headers["AC-ACCESS-PASSPHRASE"] == PASSPHRASE
    ts = headers["AC-ACCESS-TIMESTAMP"]
    assert ts.isdigit()
    assert headers["AC-ACCESS-SIGN"] == _sign(ts, "GET", "/accounts")


@pytest.mark.asyncio
async def test_transmitted_body_is_the_signed_text(client, transport):
    transport.default = {"id": "o-1"}
    params = {"side": "buy", "product_id": "BTC-USD", "price": "100.5", "size": "0.01"}
    await client.place_order(params)

    call = transport.calls[0]
    assert call["method"] == "POST"
    assert call["path"] == "/orders"
    assert call["data"] == '{"side":"buy","product_id":"BTC-USD","price":"100.5","size":"0.01"}'
    assert call["headers"]["Content-Type"] == "application/json"
    ts = call["headers"]["AC-ACCESS-TIMESTAMP"]
    assert call["headers"]["AC-ACCESS-SIGN"] == _sign(ts, "POST", "/orders", call["data"])
    # Caller's dict is left alone
    assert params == {"side": "buy", "product_id": "BTC-USD", "price": "100.5", "size": "0.01"}


@pytest.mark.asyncio
async def test_query_is_part_of_the_signed_path(client, transport):
    transport.default = []
    await client.get_orders({"status": "open", "product_id": "BTC-USD"})

    call = transport.calls[0]
    assert call["path"] == "/orders?status=open&product_id=BTC-USD"
    ts = call["headers"]["AC-ACCESS-TIMESTAMP"]
    assert call["headers"]["AC-ACCESS-SIGN"] == _sign(ts, "GET", call["path"])


@pytest.mark.asyncio
async def test_request_uppercases_method(client, transport):
    transport.default = {}
    response, data = await client.request("delete", ["orders", "abc"], RequestOptions())
    assert response.status == 200
    assert transport.calls[0]["method"] == "DELETE"
    assert transport.calls[0]["path"] == "/orders/abc"


@pytest.mark.asyncio
async def test_transport_failure_passes_through_unchanged():
    err = TransportError("Insufficient funds", status=400, body={"message": "Insufficient funds"})
    client, _ = make_client([err])
    with pytest.raises(TransportError) as exc_info:
        await client.get_fills()
    assert exc_info.value is err


@pytest.mark.asyncio
async def test_endpoint_paths():
    client, fake = make_client([], default={})
    await client.get_account("acc-9")
    await client.get_order("ord-1")
    await client.cancel_order("ord-2")
    await client.cancel_orders()
    await client.get_fills({"order_id": "ord-1"})
    await client.withdraw_crypto({"amount": "1", "currency": "BTC", "crypto_address": "bc1q"})
    await client.create_report({"type": "account", "start_date": "a", "end_date": "b",
                                "account_id": "acc-9"})
    await client.get_report_status("rep-1")

    assert [(c["method"], c["path"]) for c in fake.calls] == [
        ("GET", "/accounts/acc-9"),
        ("GET", "/orders/ord-1"),
        ("DELETE", "/orders/ord-2"),
        ("DELETE", "/orders"),
        ("GET", "/fills?order_id=ord-1"),
        ("POST", "/withdrawals/crypto"),
        ("POST", "/reports"),
        ("GET", "/reports/rep-1"),
    ]


def test_unknown_secret_encoding_is_rejected():
    with pytest.raises(InvalidCredentialsError):
        AuthenticatedClient(API_KEY, API_SECRET, PASSPHRASE, "https://api.test",
                            options=TransportOptions(secret_encoding="hex"),
                            transport=FakeTransport())


@pytest.mark.asyncio
async def test_close_only_closes_owned_transport(client, transport):
    await client.close()
    assert transport.closed is False


# ---------------------------------------------------------------------------
# Validation (local, before any transport call)
# ---------------------------------------------------------------------------


def test_limit_order_without_price_and_size_fails(client, transport):
    with pytest.raises(ValidationError, match="price"):
        client.place_order({"side": "buy", "product_id": "X"})
    assert transport.calls == []


@pytest.mark.asyncio
async def test_market_order_with_funds_passes_validation(client, transport):
    transport.default = {"id": "o-1"}
    await client.place_order({"side": "buy", "product_id": "X", "type": "market", "funds": 100})
    assert len(transport.calls) == 1


def test_market_order_needs_size_or_funds(client, transport):
    with pytest.raises(ValidationError, match="size` or `funds"):
        client.place_order({"side": "sell", "product_id": "X", "type": "stop"})
    assert transport.calls == []


@pytest.mark.asyncio
async def test_zero_values_count_as_present(client, transport):
    transport.default = {}
    await client.place_order({"side": "buy", "product_id": "X", "type": "market", "size": 0})
    await client.place_order({"side": "buy", "product_id": "X", "price": 0, "size": 0})
    assert len(transport.calls) == 2


def test_none_counts_as_missing(client, transport):
    with pytest.raises(ValidationError):
        client.place_order({"side": "buy", "product_id": "X", "price": None, "size": 1})
    assert transport.calls == []


def test_invalid_side_rejected(client, transport):
    with pytest.raises(ValidationError, match="side"):
        client.place_order({"side": "hold", "product_id": "X", "price": 1, "size": 1})
    assert transport.calls == []


@pytest.mark.asyncio
async def test_buy_and_sell_force_side(client, transport):
    transport.default = {}
    params = {"side": "sell", "product_id": "X", "price": 1, "size": 1}
    await client.buy(params)
    await client.sell({"product_id": "X", "price": 1, "size": 1})

    assert '"side":"buy"' in transport.calls[0]["data"]
    assert '"side":"sell"' in transport.calls[1]["data"]
    assert params["side"] == "sell"


def test_missing_order_id_fails_locally(client, transport):
    with pytest.raises(ValidationError, match="cancel_all_orders"):
        client.cancel_order()
    with pytest.raises(ValidationError, match="get_orders"):
        client.get_order()
    with pytest.raises(ValidationError):
        client.get_order("")
    assert transport.calls == []


def test_withdraw_requires_fields(client, transport):
    with pytest.raises(ValidationError, match="crypto_address"):
        client.withdraw_crypto({"amount": "1", "currency": "BTC"})
    with pytest.raises(ValidationError):
        client.withdraw_crypto(None)
    assert transport.calls == []


def test_fills_report_requires_product_id(client, transport):
    with pytest.raises(ValidationError, match="product_id"):
        client.create_report({"type": "fills", "start_date": "t0", "end_date": "t1"})
    assert transport.calls == []


def test_account_report_requires_account_id(client, transport):
    with pytest.raises(ValidationError, match="account_id"):
        client.create_report({"type": "account", "start_date": "t0", "end_date": "t1"})


def test_report_requires_dates(client, transport):
    with pytest.raises(ValidationError, match="end_date"):
        client.create_report({"type": "fills", "start_date": "t0", "product_id": "X"})


@pytest.mark.asyncio
async def test_fills_report_with_product_id_is_sent(client, transport):
    transport.default = {"id": "rep-1", "status": "pending"}
    data = await client.create_report(
        {"type": "fills", "start_date": "t0", "end_date": "t1", "product_id": "BTC-USD"}
    )
    assert data == {"id": "rep-1", "status": "pending"}
    assert transport.calls[0]["path"] == "/reports"


# ---------------------------------------------------------------------------
# Callback calling convention
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_callback_receives_response_and_data(client, transport):
    transport.default = [{"id": "acc-1"}]
    done = asyncio.get_running_loop().create_future()

    result = client.get_accounts(callback=lambda *args: done.set_result(args))
    assert result is None

    err, response, data = await done
    assert err is None
    assert response.status == 200
    assert data == [{"id": "acc-1"}]


@pytest.mark.asyncio
async def test_callback_receives_transport_error_once():
    boom = TransportError("down", status=503)
    client, _ = make_client([boom])
    received = []

    client.get_orders(callback=lambda *args: received.append(args))
    await client.close()

    assert received == [(boom,)]


def test_missing_order_id_is_delivered_to_callback(client, transport):
    received = []

    assert client.cancel_order(callback=lambda *args: received.append(args)) is None
    assert client.get_order("", callback=lambda *args: received.append(args)) is None

    assert len(received) == 2
    assert all(len(args) == 1 and isinstance(args[0], ValidationError) for args in received)
    assert "cancel_all_orders" in str(received[0][0])
    assert "get_orders" in str(received[1][0])
    assert transport.calls == []


def test_callback_mode_still_raises_param_validation_errors(client, transport):
    received = []
    with pytest.raises(ValidationError):
        client.place_order({"side": "hold", "product_id": "X", "price": 1, "size": 1},
                           callback=lambda *args: received.append(args))
    assert received == []
    assert transport.calls == []
