import logging
import typing
from starlette.applications import Starlette
from starlette.datastructures import MutableHeaders
from starlette.middleware import Middleware
from starlette.requests import HTTPConnection
from starlette.responses import Response
from starlette.routing import Route
from starlette.types import ASGIApp, Receive, Scope, Send
from pubgate.config import Config
from pubgate.endpoints import Media, Micropub, discovery
from pubgate.errors import MicropubError
from pubgate.responses import error_response
from pubgate.storage import MediaAdapter, StorageAdapter, storage_from_env
from pubgate.tokens import TokenCache, TokenVerifier

logger = logging.getLogger(__name__)


# CloudFront -> API Gateway eats Host and Authorization :/
class ProxyHeadersMiddleware(object):
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            headers = MutableHeaders(scope=scope)
            xhost = headers.get("x-forwarded-host")
            xauth = headers.get("x-authorization")
            if xhost:
                headers["host"] = xhost
            if xauth and "authorization" not in headers:
                headers["authorization"] = xauth
        await self.app(scope, receive, send)


async def on_micropub_error(conn: HTTPConnection, exc: Exception) -> Response:
    assert isinstance(exc, MicropubError)
    if exc.status_code >= 500:
        logger.error("%s: %s", type(exc).__name__, exc.description)
    else:
        logger.info("rejected %s %s: %s", conn.scope.get("method"), conn.url.path, exc.body())
    return error_response(conn.app.state.config, conn, exc)


def create_app(
    config: typing.Optional[Config] = None,
    storage: typing.Optional[StorageAdapter] = None,
    media: typing.Optional[MediaAdapter] = None,
    verifier: typing.Optional[TokenVerifier] = None,
) -> Starlette:
    if config is None:
        config = Config.from_env()
    if storage is None:
        storage = storage_from_env(config.me)
    if media is None and isinstance(storage, MediaAdapter):
        media = storage
    if verifier is None:
        verifier = TokenVerifier(
            config.token_endpoint, config.token_cache_ttl, cache=TokenCache()
        )

    routes = [
        Route(config.micropub_endpoint, Micropub, name="micropub"),
        Route(config.media_endpoint, Media, name="media"),
    ]
    if config.discovery:
        routes.append(Route("/", discovery, name="discovery"))

    app = Starlette(
        debug=config.debug,
        routes=routes,
        middleware=[Middleware(ProxyHeadersMiddleware)],
        exception_handlers={MicropubError: on_micropub_error},
    )
    app.state.config = config
    app.state.storage = storage
    app.state.media = media
    app.state.verifier = verifier
    logger.info(
        "micropub at %s, media at %s, tokens checked with %s",
        config.micropub_endpoint,
        config.media_endpoint,
        config.token_endpoint,
    )
    return app
