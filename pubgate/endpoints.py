import logging
import functools
import typing
from urllib.parse import urlparse
from starlette.endpoints import HTTPEndpoint
from starlette.requests import Request
from starlette.responses import Response
from pubgate import scopes
from pubgate.config import Config
from pubgate.errors import (
    Forbidden,
    InsufficientScope,
    InvalidRequest,
    InvalidToken,
    MicropubError,
    NotFound,
    ServerError,
    UrlOwnership,
)
from pubgate.media import check_upload, safe_filename
from pubgate.mf2 import (
    DeleteRequest,
    Entry,
    UndeleteRequest,
    UpdateRequest,
    form_to_mf2,
    is_absolute_url,
    validate_action,
    validate_create,
)
from pubgate.parsers import BodyKind, ParsedBody, UploadedFile, parse_request
from pubgate.responses import (
    absolute,
    created,
    discovery_links,
    json_response,
    no_content,
    preflight,
)
from pubgate.tokens import VerificationResult, extract_token, with_auth
from pubgate.updates import derive_operations

logger = logging.getLogger(__name__)

QUERIES = ["config", "source", "syndicate-to"]
REQUIRED_PROPERTIES = ("content", "name", "photo")


def shielded(func: typing.Callable) -> typing.Callable:
    """Collapse anything outside the error taxonomy into a bare server_error."""

    @functools.wraps(func)
    async def wrapper(*args: typing.Any, **kwargs: typing.Any) -> Response:
        try:
            return await func(*args, **kwargs)
        except MicropubError:
            raise
        except Exception:
            logger.exception("unexpected failure in %s", func.__qualname__)
            raise ServerError()

    return wrapper


def _state(request: Request):
    return request.app.state


async def authenticate(
    request: Request, token: typing.Optional[str] = None
) -> VerificationResult:
    auth = await with_auth(request, _state(request).verifier, token)
    if not auth.authorized:
        if token is None and extract_token(request) is None:
            raise InvalidToken("Missing access token")
        raise InvalidToken()
    return auth.verification


def require_scope(config: Config, verification: VerificationResult, scope: str) -> None:
    if config.require_scope and not scopes.has_scope(verification.scope, scope):
        raise InsufficientScope(scope)


def origin(url: str) -> typing.Tuple[str, str, typing.Optional[int]]:
    parts = urlparse(url)
    port = parts.port or {"http": 80, "https": 443}.get(parts.scheme)
    return (parts.scheme.lower(), (parts.hostname or "").lower(), port)


def require_owned_url(config: Config, url: str) -> None:
    if not is_absolute_url(url):
        raise InvalidRequest("URL must be absolute")
    if origin(url) != origin(config.me):
        raise UrlOwnership("URL {} does not belong to this site".format(url))


class Micropub(HTTPEndpoint):
    async def options(self, request: Request) -> Response:
        return preflight(_state(request).config, request)

    @shielded
    async def get(self, request: Request) -> Response:
        config = _state(request).config
        await authenticate(request)
        q = request.query_params.get("q")
        if not q:
            raise InvalidRequest("Missing q parameter")
        if q == "config":
            return json_response(config, request, self.config_document(request))
        if q == "syndicate-to":
            return json_response(
                config,
                request,
                {"syndicate-to": [t.to_dict() for t in config.syndication_targets]},
            )
        if q == "source":
            return await self.source(request)
        raise InvalidRequest("Unsupported ?q value: {}".format(q))

    def config_document(self, request: Request) -> dict:
        state = _state(request)
        doc = {}
        if state.media is not None:
            doc["media-endpoint"] = absolute(state.config, state.config.media_endpoint)
        doc["syndicate-to"] = [t.to_dict() for t in state.config.syndication_targets]
        doc["q"] = list(QUERIES)
        return doc

    async def source(self, request: Request) -> Response:
        state = _state(request)
        url = request.query_params.get("url")
        if not url:
            raise InvalidRequest("Missing url parameter")
        if not is_absolute_url(url):
            raise InvalidRequest("URL must be absolute")
        properties = request.query_params.getlist("properties[]")
        if not properties:
            properties = request.query_params.getlist("properties")
        entry = await state.storage.get_post(url, properties or None)
        if entry is None:
            raise NotFound()
        if properties:
            entry = entry.only(properties)
        return json_response(state.config, request, entry.to_dict())

    # The token may be in the body, so authentication happens here
    @shielded
    async def post(self, request: Request) -> Response:
        config = _state(request).config
        body: typing.Optional[ParsedBody] = None
        token = None
        if "authorization" not in request.headers:
            try:
                body = await parse_request(request, config.max_upload_size)
            except MicropubError:
                raise InvalidToken("Missing access token")
            if body.kind is not BodyKind.JSON and isinstance(body.data, dict):
                token = body.data.pop("access_token", None)
            if isinstance(token, list):
                token = token[0]
            if not token:
                raise InvalidToken("Missing access token")
        verification = await authenticate(request, token)
        if body is None:
            body = await parse_request(request, config.max_upload_size)
        data = body.data
        if not isinstance(data, dict):
            raise InvalidRequest("Request body must be an object")
        data.pop("access_token", None)
        if data.get("action") is not None and data.get("action") != "create":
            return await self.action(request, verification, data)
        return await self.create(request, verification, data, body.files)

    async def create(
        self,
        request: Request,
        verification: VerificationResult,
        data: dict,
        files: typing.List[UploadedFile],
    ) -> Response:
        state = _state(request)
        require_scope(state.config, verification, scopes.CREATE)
        if "type" in data and "properties" in data:
            entry = validate_create(data)
        elif "h" in data:
            entry = form_to_mf2(data)
        else:
            raise InvalidRequest("Missing required fields (type and properties, or h)")
        if files:
            await self.attach_files(request, entry, files)
        if not entry.has_any(*REQUIRED_PROPERTIES):
            raise InvalidRequest("Post must have content, name, or photo")
        metadata = await state.storage.create_post(entry)
        if not is_absolute_url(metadata.url):
            logger.error("storage returned a relative URL %r", metadata.url)
            raise ServerError()
        logger.info("created %s for %s", metadata.url, verification.client_id or verification.me)
        return created(state.config, request, metadata.url)

    async def attach_files(
        self, request: Request, entry: Entry, files: typing.List[UploadedFile]
    ) -> None:
        state = _state(request)
        if state.media is None:
            logger.error("files posted to micropub but no media storage is configured")
            raise ServerError()
        for upload in files:
            check_upload(upload, state.config)
        for upload in files:
            prop = upload.field[:-2] if upload.field.endswith("[]") else upload.field
            url = await state.media.save_file(upload, safe_filename(upload))
            entry.properties.setdefault(prop or "photo", []).append(url)

    async def action(
        self, request: Request, verification: VerificationResult, data: dict
    ) -> Response:
        state = _state(request)
        config = state.config
        action = validate_action(data)
        if isinstance(action, UpdateRequest):
            require_scope(config, verification, scopes.UPDATE)
            if not config.enable_updates:
                raise Forbidden("Updates are disabled")
            require_owned_url(config, action.url)
            await state.storage.update_post(action.url, derive_operations(action))
            logger.info("updated %s", action.url)
        elif isinstance(action, DeleteRequest):
            require_scope(config, verification, scopes.DELETE)
            if not config.enable_deletes:
                raise Forbidden("Deletes are disabled")
            require_owned_url(config, action.url)
            await state.storage.delete_post(action.url)
            logger.info("deleted %s", action.url)
        elif isinstance(action, UndeleteRequest):
            # no separate undelete scope
            require_scope(config, verification, scopes.DELETE)
            if not config.enable_deletes:
                raise Forbidden("Undelete is disabled")
            require_owned_url(config, action.url)
            await state.storage.undelete_post(action.url)
            logger.info("undeleted %s", action.url)
        else:
            raise AssertionError(action)
        return no_content(config, request)


class Media(HTTPEndpoint):
    async def options(self, request: Request) -> Response:
        return preflight(_state(request).config, request)

    @shielded
    async def post(self, request: Request) -> Response:
        state = _state(request)
        config = state.config
        verification = await authenticate(request)
        # media scope strictly, create does not stand in for it
        require_scope(config, verification, scopes.MEDIA)
        body = await parse_request(request, config.max_upload_size)
        if body.kind is not BodyKind.MULTIPART:
            raise InvalidRequest("Media uploads must be multipart/form-data")
        upload = next((f for f in body.files if f.field == "file"), None)
        if upload is None:
            raise InvalidRequest("No file provided")
        check_upload(upload, config)
        if state.media is None:
            logger.error("media upload attempted but no media storage is configured")
            raise ServerError()
        url = await state.media.save_file(upload, safe_filename(upload))
        if not is_absolute_url(url):
            logger.error("media storage returned a relative URL %r", url)
            raise ServerError()
        return created(config, request, url)


async def discovery(request: Request) -> Response:
    return Response(
        None, status_code=200, headers={"Link": discovery_links(_state(request).config)}
    )
