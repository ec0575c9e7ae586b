import anyio
import httpx
import pytest
from starlette.requests import Request
from pubgate.tokens import (
    TokenCache,
    TokenVerifier,
    VerificationResult,
    extract_token,
    with_auth,
)

ENDPOINT = "https://tokens.example.org/token"


class Clock(object):
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class Endpoint(object):
    def __init__(self, payload=None, status=200, content=None):
        self.payload = payload if payload is not None else {
            "me": "https://example.com/",
            "client_id": "https://client.example.net/",
            "scope": "create update",
        }
        self.status = status
        self.content = content
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.content is not None:
            return httpx.Response(self.status, content=self.content)
        return httpx.Response(self.status, json=self.payload)


def make_verifier(endpoint, clock=None, ttl=120):
    return TokenVerifier(
        ENDPOINT,
        ttl,
        cache=TokenCache(clock or Clock()),
        transport=httpx.MockTransport(endpoint),
    )


def request_with(headers: dict) -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        }
    )


def test_extract_token():
    assert extract_token(request_with({"Authorization": "Bearer abc"})) == "abc"
    assert extract_token(request_with({"Authorization": "bearer abc"})) == "abc"
    assert extract_token(request_with({"Authorization": "Bearer   abc  "})) == "abc"
    assert extract_token(request_with({"Authorization": "Basic abc"})) is None
    assert extract_token(request_with({})) is None


@pytest.mark.anyio
async def test_verify_sends_bearer_and_parses_result():
    endpoint = Endpoint()
    result = await make_verifier(endpoint).verify("tok")
    assert result == VerificationResult(
        me="https://example.com/",
        client_id="https://client.example.net/",
        scope="create update",
    )
    assert endpoint.calls[0].headers["authorization"] == "Bearer tok"
    assert endpoint.calls[0].method == "GET"


@pytest.mark.anyio
async def test_blank_token_never_calls_out():
    endpoint = Endpoint()
    verifier = make_verifier(endpoint)
    assert await verifier.verify("") is None
    assert await verifier.verify("   ") is None
    assert endpoint.calls == []


@pytest.mark.anyio
@pytest.mark.parametrize(
    "endpoint",
    [
        Endpoint(status=401, payload={"error": "invalid_token"}),
        Endpoint(payload={"me": "https://example.com/"}),
        Endpoint(payload={"scope": "create"}),
        Endpoint(payload={"me": "https://example.com/", "scope": "create", "active": False}),
        Endpoint(content=b"<html>not json</html>"),
    ],
)
async def test_verification_failures_return_none(endpoint):
    assert await make_verifier(endpoint).verify("tok") is None


@pytest.mark.anyio
async def test_network_errors_return_none():
    def broken(request):
        raise httpx.ConnectError("refused", request=request)

    assert await make_verifier(broken).verify("tok") is None


@pytest.mark.anyio
async def test_slow_endpoint_times_out():
    async def slow(request):
        await anyio.sleep(1)
        return httpx.Response(200, json={"me": "https://example.com/", "scope": "create"})

    verifier = make_verifier(slow)
    verifier.timeout = 0.05
    assert await verifier.verify("tok") is None


@pytest.mark.anyio
async def test_already_expired_token_is_rejected():
    clock = Clock()
    endpoint = Endpoint(payload={"me": "https://example.com/", "scope": "create", "exp": clock.now - 1})
    assert await make_verifier(endpoint, clock).verify("tok") is None


@pytest.mark.anyio
async def test_cache_hit_within_ttl_and_refresh_after():
    clock = Clock()
    endpoint = Endpoint()
    verifier = make_verifier(endpoint, clock, ttl=120)
    await verifier.verify("tok")
    clock.now += 60
    await verifier.verify("tok")
    assert len(endpoint.calls) == 1
    clock.now += 61
    await verifier.verify("tok")
    assert len(endpoint.calls) == 2
    verifier.cache.clear()


@pytest.mark.anyio
async def test_token_exp_beats_cache_ttl():
    clock = Clock()
    endpoint = Endpoint(
        payload={"me": "https://example.com/", "scope": "create", "exp": clock.now + 30}
    )
    verifier = make_verifier(endpoint, clock, ttl=120)
    assert await verifier.verify("tok") is not None
    clock.now += 31
    # cached entry is dropped; the fresh answer is expired too
    assert await verifier.verify("tok") is None
    assert len(endpoint.calls) == 2
    verifier.cache.clear()


@pytest.mark.anyio
async def test_cache_evicts_itself_after_ttl():
    cache = TokenCache()
    cache.set("tok", VerificationResult("https://example.com/", "", "create"), 0.01)
    assert len(cache) == 1
    await anyio.sleep(0.05)
    assert len(cache) == 0


def test_cache_clear_and_zero_ttl():
    cache = TokenCache()
    result = VerificationResult("https://example.com/", "", "create")
    cache.set("tok", result, 0)
    assert cache.get("tok") is None
    cache.set("tok", result, 60)
    assert cache.get("tok") == result
    cache.clear()
    assert cache.get("tok") is None


@pytest.mark.anyio
async def test_with_auth_uniform_failure():
    verifier = make_verifier(Endpoint(status=403, payload={}))
    missing = await with_auth(request_with({}), verifier)
    invalid = await with_auth(request_with({"Authorization": "Bearer nope"}), verifier)
    assert missing.authorized is False and missing.error == "invalid_token"
    assert invalid.authorized is False and invalid.error == "invalid_token"


@pytest.mark.anyio
async def test_with_auth_success():
    verifier = make_verifier(Endpoint())
    auth = await with_auth(request_with({"Authorization": "Bearer tok"}), verifier)
    assert auth.authorized
    assert auth.verification.scope == "create update"
    verifier.cache.clear()
