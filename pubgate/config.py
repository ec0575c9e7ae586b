import os
import json
import typing
from dataclasses import dataclass
from urllib.parse import urlparse
from dotenv import load_dotenv

DEFAULT_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    # no image/svg+xml: it can carry scripts
)


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class SyndicationTarget:
    uid: str
    name: str

    def to_dict(self) -> dict:
        return {"uid": self.uid, "name": self.name}


@dataclass(frozen=True)
class Config:
    me: str
    authorization_endpoint: str
    token_endpoint: str
    token_cache_ttl: int = 120
    micropub_endpoint: str = "/micropub"
    media_endpoint: str = "/micropub/media"
    enable_updates: bool = True
    enable_deletes: bool = True
    syndication_targets: typing.Tuple[SyndicationTarget, ...] = ()
    require_scope: bool = True
    allowed_origins: typing.Tuple[str, ...] = ("*",)
    max_upload_size: int = 10 * 1024 * 1024
    allowed_mime_types: typing.Tuple[str, ...] = DEFAULT_MIME_TYPES
    discovery: bool = True
    debug: bool = False

    def __post_init__(self):
        for name in ("me", "authorization_endpoint", "token_endpoint"):
            value = getattr(self, name)
            parts = urlparse(value or "")
            if not parts.scheme or not parts.netloc:
                raise ConfigError("{} must be an absolute URL, got {!r}".format(name, value))
        if not 0 <= self.token_cache_ttl <= 3600:
            raise ConfigError("token_cache_ttl must be between 0 and 3600 seconds")
        if self.max_upload_size <= 0:
            raise ConfigError("max_upload_size must be positive")
        if not self.allowed_origins:
            raise ConfigError("allowed_origins must not be empty")

    @classmethod
    def from_env(cls, environ: typing.Optional[typing.Mapping[str, str]] = None) -> "Config":
        if environ is None:
            load_dotenv()
            environ = os.environ
        kwargs = {}
        for key, name in (
            ("MICROPUB_ENDPOINT", "micropub_endpoint"),
            ("MEDIA_ENDPOINT", "media_endpoint"),
        ):
            if key in environ:
                kwargs[name] = environ[key]
        for key, name in (
            ("TOKEN_CACHE_TTL", "token_cache_ttl"),
            ("MAX_UPLOAD_SIZE", "max_upload_size"),
        ):
            if key in environ:
                kwargs[name] = _int(key, environ[key])
        for key, name in (
            ("ENABLE_UPDATES", "enable_updates"),
            ("ENABLE_DELETES", "enable_deletes"),
            ("REQUIRE_SCOPE", "require_scope"),
            ("DISCOVERY", "discovery"),
            ("DEBUG", "debug"),
        ):
            if key in environ:
                kwargs[name] = _bool(environ[key])
        if "ALLOWED_ORIGINS" in environ:
            kwargs["allowed_origins"] = _words(environ["ALLOWED_ORIGINS"])
        if "ALLOWED_MIME_TYPES" in environ:
            kwargs["allowed_mime_types"] = _words(environ["ALLOWED_MIME_TYPES"])
        if "SYNDICATION_TARGETS" in environ:
            kwargs["syndication_targets"] = _targets(environ["SYNDICATION_TARGETS"])
        try:
            return cls(
                me=environ["SITE_URL"],
                authorization_endpoint=environ["AUTHORIZATION_ENDPOINT"],
                token_endpoint=environ["TOKEN_ENDPOINT"],
                **kwargs,
            )
        except KeyError as err:
            raise ConfigError("missing required setting {}".format(err.args[0]))


def _int(key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigError("{} must be an integer, got {!r}".format(key, value))


def _bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _words(value: str) -> typing.Tuple[str, ...]:
    return tuple(w for w in value.replace(",", " ").split() if w)


def _targets(value: str) -> typing.Tuple[SyndicationTarget, ...]:
    try:
        raw = json.loads(value)
        return tuple(SyndicationTarget(uid=t["uid"], name=t["name"]) for t in raw)
    except (ValueError, TypeError, KeyError):
        raise ConfigError("SYNDICATION_TARGETS must be a JSON list of {uid, name} objects")
