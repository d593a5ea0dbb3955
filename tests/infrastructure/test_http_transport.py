"""HTTP Push Transport — request encoding, reply mapping, and retry policy.

Tests:
    - Register bodies carry sandbox flag and base64 secret; unregister bodies do not
    - {"ok": true, "result": bool} maps to the bool
    - 4xx error replies fail immediately with the server's code and description
    - 5xx, 429 and connection failures are retried, then surface as TransportError
    - send() returns ids immediately and delivers results through on_result
"""

import asyncio
import json

import httpx
import pytest

from tokensync.core.domain_types import PlatformKind
from tokensync.core.errors import ErrorContext, TransportError
from tokensync.core.remote_requests import (
    RegisterDeviceRequest, UnregisterDeviceRequest,
)
from tokensync.infrastructure.http_transport import (
    HttpPushTransport, encode_request,
)

REGISTER = RegisterDeviceRequest(
    PlatformKind.FIREBASE, "fcm", False, b"\x01\x02", (5,),
)
UNREGISTER = UnregisterDeviceRequest(PlatformKind.APPLE_PUSH, "apns", ())


def _transport(handler, max_retries=2) -> HttpPushTransport:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://push.test",
    )
    return HttpPushTransport(
        "http://push.test", max_retries=max_retries,
        base_delay_ms=0, max_delay_ms=0, client=client,
    )


def _ok(result=True):
    return httpx.Response(200, json={"ok": True, "result": result})


def test_encode_register():
    assert encode_request(REGISTER) == {
        "token_type": 2,
        "token": "fcm",
        "other_uids": [5],
        "app_sandbox": False,
        "secret": "AQI=",
    }


def test_encode_unregister_has_no_secret():
    assert encode_request(UNREGISTER) == {
        "token_type": 1, "token": "apns", "other_uids": [],
    }


async def test_post_returns_result_and_hits_method_path():
    seen = []

    def handler(request):
        seen.append((request.url.path, json.loads(request.content)))
        return _ok()

    transport = _transport(handler)
    assert await transport.post(REGISTER, ErrorContext()) is True
    assert seen[0][0] == "/account.registerDevice"
    assert seen[0][1]["token"] == "fcm"
    await transport.aclose()


async def test_false_result_is_returned_as_false():
    transport = _transport(lambda request: _ok(False))
    assert await transport.post(UNREGISTER, ErrorContext()) is False
    await transport.aclose()


async def test_client_error_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(
            400, json={"ok": False, "error_code": 400, "description": "TOKEN_INVALID"},
        )

    transport = _transport(handler)
    with pytest.raises(TransportError) as exc_info:
        await transport.post(REGISTER, ErrorContext())
    assert exc_info.value.error_code == 400
    assert "TOKEN_INVALID" in exc_info.value.message
    assert len(calls) == 1
    await transport.aclose()


async def test_server_error_retried_then_succeeds():
    responses = iter([httpx.Response(503), _ok()])
    transport = _transport(lambda request: next(responses))
    assert await transport.post(REGISTER, ErrorContext()) is True
    await transport.aclose()


async def test_server_error_exhausts_retries():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    transport = _transport(handler, max_retries=2)
    with pytest.raises(TransportError) as exc_info:
        await transport.post(REGISTER, ErrorContext())
    assert exc_info.value.error_code == 500
    assert exc_info.value.retryable
    assert len(calls) == 3
    await transport.aclose()


async def test_rate_limit_exhausts_with_retry_after():
    transport = _transport(
        lambda request: httpx.Response(429, headers={"Retry-After": "0"}),
        max_retries=1,
    )
    with pytest.raises(TransportError) as exc_info:
        await transport.post(REGISTER, ErrorContext())
    assert exc_info.value.error_code == 429
    assert exc_info.value.context.retry_after_ms == 0
    await transport.aclose()


async def test_connection_error_retried():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("refused", request=request)
        return _ok()

    transport = _transport(handler)
    assert await transport.post(REGISTER, ErrorContext()) is True
    assert len(attempts) == 2
    await transport.aclose()


async def test_malformed_reply():
    transport = _transport(lambda request: httpx.Response(200, text="not json"))
    with pytest.raises(TransportError, match="Malformed"):
        await transport.post(REGISTER, ErrorContext())
    await transport.aclose()


async def test_send_delivers_result_through_callback():
    transport = _transport(lambda request: _ok())
    delivered = asyncio.get_running_loop().create_future()

    request_id = transport.send(
        REGISTER, lambda rid, result: delivered.set_result((rid, result)),
    )

    assert request_id == 1
    assert not delivered.done()
    assert await delivered == (1, True)
    await transport.aclose()


async def test_send_delivers_transport_error():
    transport = _transport(
        lambda request: httpx.Response(400, json={"ok": False, "error_code": 400}),
    )
    delivered = asyncio.get_running_loop().create_future()

    transport.send(UNREGISTER, lambda rid, result: delivered.set_result(result))

    error = await delivered
    assert isinstance(error, TransportError)
    assert error.context.platform_kind == PlatformKind.APPLE_PUSH.value
    assert error.context.request_id == 1
    await transport.aclose()


async def test_non_numeric_error_code_falls_back_to_status():
    transport = _transport(
        lambda request: httpx.Response(400, json={"ok": False, "error_code": "BAD"}),
    )
    delivered = asyncio.get_running_loop().create_future()

    transport.send(REGISTER, lambda rid, result: delivered.set_result(result))

    error = await asyncio.wait_for(delivered, timeout=1)
    assert isinstance(error, TransportError)
    assert error.error_code == 400
    await transport.aclose()


async def test_undecodable_body_is_retried_then_delivered():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(
            200, headers={"content-encoding": "gzip"}, content=b"not gzip",
        )

    transport = _transport(handler, max_retries=1)
    delivered = asyncio.get_running_loop().create_future()

    transport.send(REGISTER, lambda rid, result: delivered.set_result(result))

    error = await asyncio.wait_for(delivered, timeout=1)
    assert isinstance(error, TransportError)
    assert error.error_code == 500
    assert "DecodingError" in error.message
    assert len(calls) == 2
    await transport.aclose()


async def test_unexpected_failure_still_reaches_callback(monkeypatch):
    transport = _transport(lambda request: _ok())

    async def broken_post(request, context):
        raise RuntimeError("boom")

    monkeypatch.setattr(transport, "post", broken_post)
    delivered = asyncio.get_running_loop().create_future()

    request_id = transport.send(
        UNREGISTER, lambda rid, result: delivered.set_result((rid, result)),
    )

    rid, error = await asyncio.wait_for(delivered, timeout=1)
    assert rid == request_id
    assert isinstance(error, TransportError)
    assert "boom" in error.message
    await transport.aclose()
