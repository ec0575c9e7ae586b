"""
Bearer token verification against an external IndieAuth token endpoint.

Successful introspections are kept in a TokenCache for a configured TTL. A
cached result is also dropped as soon as the token's own "exp" has passed.
"""
import time
import asyncio
import logging
import typing
from dataclasses import dataclass
import anyio
from httpx import AsyncClient, HTTPError, AsyncBaseTransport
from starlette.requests import HTTPConnection

logger = logging.getLogger(__name__)

VERIFY_TIMEOUT = 5.0


@dataclass(frozen=True)
class VerificationResult:
    me: str
    client_id: str
    scope: str
    exp: typing.Optional[int] = None

    def expired(self, now: float) -> bool:
        return self.exp is not None and self.exp < now


@dataclass(frozen=True)
class _CacheEntry:
    result: VerificationResult
    expiry: float


class TokenCache(object):
    def __init__(self, clock: typing.Callable[[], float] = time.time) -> None:
        self.clock = clock
        self._entries: typing.Dict[str, _CacheEntry] = {}
        self._timers: typing.Dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, token: str) -> typing.Optional[VerificationResult]:
        entry = self._entries.get(token)
        if entry is None:
            return None
        now = self.clock()
        if now > entry.expiry or entry.result.expired(now):
            self._drop(token)
            return None
        return entry.result

    def set(self, token: str, result: VerificationResult, ttl: float) -> None:
        if ttl <= 0:
            return
        entry = _CacheEntry(result, self.clock() + ttl)
        self._entries[token] = entry
        old = self._timers.pop(token, None)
        if old is not None:
            old.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timers[token] = loop.call_later(ttl, self._evict, token, entry)

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._entries.clear()

    def _evict(self, token: str, entry: _CacheEntry) -> None:
        if self._entries.get(token) is entry:
            del self._entries[token]
            self._timers.pop(token, None)

    def _drop(self, token: str) -> None:
        self._entries.pop(token, None)
        timer = self._timers.pop(token, None)
        if timer is not None:
            timer.cancel()


class TokenVerifier(object):
    def __init__(
        self,
        endpoint: str,
        ttl: float = 120,
        cache: typing.Optional[TokenCache] = None,
        transport: typing.Optional[AsyncBaseTransport] = None,
        timeout: float = VERIFY_TIMEOUT,
    ) -> None:
        self.endpoint = endpoint
        self.ttl = ttl
        self.cache = cache if cache is not None else TokenCache()
        self.transport = transport
        self.timeout = timeout

    async def verify(self, token: str) -> typing.Optional[VerificationResult]:
        if not token or not token.strip():
            return None
        cached = self.cache.get(token)
        if cached is not None:
            logger.debug("token cache hit for %s", _redact(token))
            return cached
        result = await self._introspect(token)
        if result is not None:
            self.cache.set(token, result, self.ttl)
        return result

    async def _introspect(self, token: str) -> typing.Optional[VerificationResult]:
        try:
            with anyio.fail_after(self.timeout):
                async with AsyncClient(transport=self.transport) as h:
                    resp = await h.get(
                        self.endpoint,
                        headers={
                            "Authorization": "Bearer " + token,
                            "Accept": "application/json",
                        },
                    )
            if not resp.is_success:
                logger.warning(
                    "token endpoint answered %d for %s", resp.status_code, _redact(token)
                )
                return None
            data = resp.json()
        except TimeoutError:
            logger.warning("token endpoint timed out after %.1fs", self.timeout)
            return None
        except HTTPError as err:
            logger.warning("token endpoint request failed: %s", err)
            return None
        except ValueError:
            logger.warning("token endpoint returned malformed JSON")
            return None
        if not isinstance(data, dict) or not data.get("me") or not data.get("scope"):
            return None
        if data.get("active") is False:
            return None
        exp = data.get("exp")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            exp = None
        result = VerificationResult(
            me=str(data["me"]),
            client_id=str(data.get("client_id") or ""),
            scope=str(data["scope"]),
            exp=exp,
        )
        if result.expired(self.cache.clock()):
            return None
        return result


def _redact(token: str) -> str:
    return token[:4] + "..." if len(token) > 8 else "..."


def extract_token(conn: HTTPConnection) -> typing.Optional[str]:
    header = conn.headers.get("authorization")
    if header is None or not header.lower().startswith("bearer "):
        return None
    return header[7:].strip()


@dataclass(frozen=True)
class AuthResult:
    authorized: bool
    verification: typing.Optional[VerificationResult] = None
    error: typing.Optional[str] = None


async def with_auth(
    conn: HTTPConnection,
    verifier: TokenVerifier,
    token: typing.Optional[str] = None,
) -> AuthResult:
    if token is None:
        token = extract_token(conn)
    if not token:
        return AuthResult(False, error="invalid_token")
    verification = await verifier.verify(token)
    if verification is None:
        return AuthResult(False, error="invalid_token")
    return AuthResult(True, verification=verification)
