import typing
from dataclasses import dataclass, field
from urllib.parse import urlparse
from pubgate.errors import InvalidRequest

ACTIONS = ("update", "delete", "undelete")


@dataclass
class Entry:
    type: typing.List[str]
    properties: typing.Dict[str, typing.List[typing.Any]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": list(self.type),
            "properties": {k: list(v) for k, v in self.properties.items()},
        }

    def first(self, name: str, default=None):
        values = self.properties.get(name) or []
        return values[0] if values else default

    def has_any(self, *names: str) -> bool:
        return any(self.properties.get(n) for n in names)

    def only(self, names: typing.Iterable[str]) -> "Entry":
        keep = set(names)
        return Entry(
            list(self.type),
            {k: list(v) for k, v in self.properties.items() if k in keep},
        )


@dataclass
class UpdateRequest:
    url: str
    replace: typing.Dict[str, list] = field(default_factory=dict)
    add: typing.Dict[str, list] = field(default_factory=dict)
    delete: typing.Union[typing.List[str], typing.Dict[str, list]] = field(
        default_factory=list
    )
    action: str = "update"


@dataclass
class DeleteRequest:
    url: str
    action: str = "delete"


@dataclass
class UndeleteRequest:
    url: str
    action: str = "undelete"


ActionRequest = typing.Union[UpdateRequest, DeleteRequest, UndeleteRequest]


def is_absolute_url(url: typing.Any) -> bool:
    if not isinstance(url, str):
        return False
    try:
        parts = urlparse(url)
        # raises on a malformed port
        parts.port
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc)


def _property_map(raw: typing.Any, what: str) -> typing.Dict[str, list]:
    if not isinstance(raw, dict):
        raise InvalidRequest("{} must be an object".format(what))
    for k, v in raw.items():
        if not isinstance(k, str):
            raise InvalidRequest("{} keys must be strings".format(what))
        if not isinstance(v, list):
            raise InvalidRequest(
                "each property must be a list, check '{}'".format(k)
            )
    return {k: list(v) for k, v in raw.items()}


def validate_create(raw: typing.Any) -> Entry:
    if not isinstance(raw, dict):
        raise InvalidRequest("Invalid entry format")
    type_ = raw.get("type")
    if (
        not isinstance(type_, list)
        or len(type_) == 0
        or not all(isinstance(t, str) for t in type_)
    ):
        raise InvalidRequest("type must be a non-empty list of strings")
    return Entry(list(type_), _property_map(raw.get("properties"), "properties"))


def form_to_mf2(data: typing.Dict[str, typing.Any]) -> Entry:
    h = data.get("h") or "entry"
    if isinstance(h, list):
        h = h[0]
    props = {}
    for k, v in data.items():
        if k in ("h", "action"):
            continue
        props[k] = list(v) if isinstance(v, list) else [v]
    return Entry(["h-" + h], props)


def validate_action(raw: typing.Any) -> ActionRequest:
    if not isinstance(raw, dict):
        raise InvalidRequest("Invalid action format")
    action = raw.get("action")
    if action not in ACTIONS:
        raise InvalidRequest("Unsupported action: {}".format(action))
    url = raw.get("url")
    if not is_absolute_url(url):
        raise InvalidRequest("url must be an absolute URL")
    if action == "delete":
        return DeleteRequest(url)
    if action == "undelete":
        return UndeleteRequest(url)
    req = UpdateRequest(url)
    if raw.get("replace") is not None:
        req.replace = _property_map(raw["replace"], "replace")
    if raw.get("add") is not None:
        req.add = _property_map(raw["add"], "add")
    delete = raw.get("delete")
    if isinstance(delete, list):
        if not all(isinstance(k, str) for k in delete):
            raise InvalidRequest("delete must list property names")
        req.delete = list(delete)
    elif delete is not None:
        req.delete = _property_map(delete, "delete")
    return req
