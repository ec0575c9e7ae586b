import typing
from urllib.parse import urljoin
from starlette.requests import HTTPConnection, Request
from starlette.responses import JSONResponse, Response
from pubgate.config import Config
from pubgate.errors import InsufficientScope, InvalidToken, MicropubError

ALLOW_METHODS = "GET, POST, OPTIONS"
ALLOW_HEADERS = "Authorization, Content-Type"
PREFLIGHT_MAX_AGE = "86400"


def cors_origin(request_origin: typing.Optional[str], allowed: typing.Sequence[str]) -> str:
    if "*" in allowed:
        return "*"
    if request_origin and request_origin in allowed:
        return request_origin
    # non-browser clients and unknown origins
    return allowed[0] if allowed else "*"


def cors_headers(config: Config, conn: HTTPConnection) -> typing.Dict[str, str]:
    origin = cors_origin(conn.headers.get("origin"), config.allowed_origins)
    headers = {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": ALLOW_METHODS,
        "Access-Control-Allow-Headers": ALLOW_HEADERS,
    }
    if origin != "*":
        headers["Access-Control-Allow-Credentials"] = "true"
        headers["Vary"] = "Origin"
    return headers


def absolute(config: Config, path: str) -> str:
    return urljoin(config.me, path)


def discovery_links(config: Config) -> str:
    return ", ".join(
        '<{}>; rel="{}"'.format(url, rel)
        for url, rel in (
            (config.authorization_endpoint, "authorization_endpoint"),
            (config.token_endpoint, "token_endpoint"),
            (absolute(config, config.micropub_endpoint), "micropub"),
            (absolute(config, config.media_endpoint), "media-endpoint"),
        )
    )


def preflight(config: Config, request: Request) -> Response:
    headers = cors_headers(config, request)
    headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE
    if config.discovery:
        headers["Link"] = discovery_links(config)
    return Response(None, status_code=204, headers=headers)


def json_response(config: Config, request: Request, obj: typing.Any, status_code: int = 200) -> Response:
    return JSONResponse(obj, status_code=status_code, headers=cors_headers(config, request))


def created(config: Config, request: Request, location: str) -> Response:
    headers = cors_headers(config, request)
    headers["Location"] = location
    return Response(None, status_code=201, headers=headers)


def no_content(config: Config, request: Request) -> Response:
    return Response(None, status_code=204, headers=cors_headers(config, request))


def challenge(err: MicropubError) -> typing.Optional[str]:
    if isinstance(err, InvalidToken):
        return 'Bearer realm="micropub", error="invalid_token"'
    if isinstance(err, InsufficientScope):
        return 'Bearer realm="micropub", error="insufficient_scope", scope="{}"'.format(
            err.scope
        )
    return None


def error_response(config: Config, conn: HTTPConnection, err: MicropubError) -> Response:
    headers = cors_headers(config, conn)
    www_auth = challenge(err)
    if www_auth:
        headers["WWW-Authenticate"] = www_auth
    return JSONResponse(err.body(), status_code=err.status_code, headers=headers)
