import typing
import httpx
import pytest
from starlette.testclient import TestClient
from pubgate.app import create_app
from pubgate.config import Config, SyndicationTarget
from pubgate.errors import NotFound
from pubgate.mf2 import Entry
from pubgate.storage import MediaAdapter, PostMetadata, StorageAdapter
from pubgate.tokens import TokenCache, TokenVerifier
from pubgate.updates import apply_operations
from datetime import datetime, timezone

SITE = "https://example.com/"
TOKEN_ENDPOINT = "https://tokens.example.org/token"

# bearer token -> granted scope
TOKENS = {
    "create-token": "create",
    "update-token": "update",
    "delete-token": "delete",
    "media-token": "media",
    "all-token": "create update delete media",
}


@pytest.fixture
def anyio_backend():
    return "asyncio"


def introspection(request: httpx.Request) -> httpx.Response:
    token = request.headers.get("authorization", "")[len("Bearer "):]
    if token not in TOKENS:
        return httpx.Response(401, json={"error": "invalid_token"})
    return httpx.Response(
        200,
        json={"me": SITE, "client_id": "https://client.example.net/", "scope": TOKENS[token]},
    )


class RecordingStorage(StorageAdapter, MediaAdapter):
    def __init__(self) -> None:
        self.posts: typing.Dict[str, Entry] = {}
        self.deleted: typing.Set[str] = set()
        self.created: typing.List[Entry] = []
        self.operations: typing.List[list] = []
        self.files: typing.Dict[str, bytes] = {}

    async def create_post(self, entry: Entry) -> PostMetadata:
        self.created.append(entry)
        url = "{}posts/{}".format(SITE, len(self.created))
        self.posts[url] = entry
        return PostMetadata(url=url, published=datetime.now(timezone.utc))

    async def get_post(self, url, properties=None):
        if url not in self.posts or url in self.deleted:
            return None
        return self.posts[url]

    async def update_post(self, url, operations):
        if url not in self.posts or url in self.deleted:
            raise NotFound()
        self.operations.append(list(operations))
        entry = self.posts[url]
        entry.properties = apply_operations(entry.properties, operations)
        return PostMetadata(url=url, published=datetime.now(timezone.utc))

    async def delete_post(self, url):
        if url not in self.posts:
            raise NotFound()
        self.deleted.add(url)

    async def undelete_post(self, url):
        if url not in self.posts:
            raise NotFound()
        self.deleted.discard(url)

    async def save_file(self, file, filename):
        self.files[filename] = file.data
        return SITE + "media/" + filename

    async def delete_file(self, url):
        self.files.pop(url[len(SITE + "media/"):], None)


@pytest.fixture
def config() -> Config:
    return Config(
        me=SITE,
        authorization_endpoint="https://auth.example.org/auth",
        token_endpoint=TOKEN_ENDPOINT,
        syndication_targets=(SyndicationTarget("https://social.example/@me", "Social"),),
        max_upload_size=1024,
    )


@pytest.fixture
def storage() -> RecordingStorage:
    return RecordingStorage()


@pytest.fixture
def verifier(config) -> TokenVerifier:
    return TokenVerifier(
        config.token_endpoint,
        config.token_cache_ttl,
        cache=TokenCache(),
        transport=httpx.MockTransport(introspection),
    )


@pytest.fixture
def make_client(storage, verifier):
    def make(config: Config, **kwargs) -> TestClient:
        kwargs.setdefault("storage", storage)
        kwargs.setdefault("verifier", verifier)
        return TestClient(create_app(config=config, **kwargs))

    return make


@pytest.fixture
def client(make_client, config) -> TestClient:
    return make_client(config)


def bearer(token: str) -> dict:
    return {"Authorization": "Bearer " + token}
