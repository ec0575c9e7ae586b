import typing

CREATE = "create"
UPDATE = "update"
DELETE = "delete"
MEDIA = "media"


def parse_scopes(scope_string: str) -> typing.List[str]:
    return (scope_string or "").split()


def has_scope(scope_string: str, required: str) -> bool:
    return required in parse_scopes(scope_string)


def has_any_scope(scope_string: str, required: typing.Iterable[str]) -> bool:
    scopes = set(parse_scopes(scope_string))
    return any(r in scopes for r in required)


def has_all_scopes(scope_string: str, required: typing.Iterable[str]) -> bool:
    scopes = set(parse_scopes(scope_string))
    return all(r in scopes for r in required)
