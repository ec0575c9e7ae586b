"""
Micropub update semantics over an entry's property bag.

An update request becomes an ordered list of operations: every replace,
then every add, then every delete. Later operations see the effect of
earlier ones, so a request that replaces, adds to and deletes from the same
property ends with the delete applied last.
"""
import typing
from dataclasses import dataclass
from pubgate.errors import InvalidRequest
from pubgate.mf2 import UpdateRequest


@dataclass(frozen=True)
class Replace:
    property: str
    values: list


@dataclass(frozen=True)
class Add:
    property: str
    values: list


@dataclass(frozen=True)
class Delete:
    property: str
    values: typing.Optional[list] = None


UpdateOperation = typing.Union[Replace, Add, Delete]
Properties = typing.Dict[str, typing.List[typing.Any]]


def derive_operations(update: UpdateRequest) -> typing.List[UpdateOperation]:
    ops: typing.List[UpdateOperation] = []
    for k, v in (update.replace or {}).items():
        ops.append(Replace(k, v))
    for k, v in (update.add or {}).items():
        ops.append(Add(k, v))
    if isinstance(update.delete, dict):
        for k, v in update.delete.items():
            ops.append(Delete(k, v))
    else:
        for k in update.delete or []:
            ops.append(Delete(k))
    return ops


def deep_equal(a: typing.Any, b: typing.Any) -> bool:
    # plain == would treat True and 1 as the same JSON value
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, (dict, list, tuple)) or isinstance(b, (dict, list, tuple)):
        return False
    return a == b


def apply_operation(props: Properties, op: UpdateOperation) -> Properties:
    if isinstance(op, Delete):
        if op.values is None:
            props.pop(op.property, None)
            return props
        _check_values(op)
        if not op.values:
            # an empty value list deletes the whole property
            props.pop(op.property, None)
            return props
        kept = [
            v for v in props.get(op.property, [])
            if not any(deep_equal(v, d) for d in op.values)
        ]
        if kept:
            props[op.property] = kept
        else:
            props.pop(op.property, None)
        return props
    _check_values(op)
    if isinstance(op, Replace):
        props[op.property] = list(op.values)
    elif isinstance(op, Add):
        props[op.property] = list(props.get(op.property, [])) + list(op.values)
    else:
        raise InvalidRequest("Unknown update operation {!r}".format(op))
    return props


def apply_operations(
    properties: Properties, operations: typing.Iterable[UpdateOperation]
) -> Properties:
    props = {k: list(v) for k, v in properties.items()}
    for op in operations:
        props = apply_operation(props, op)
    return props


def _check_values(op: UpdateOperation) -> None:
    if not isinstance(op.values, list):
        raise InvalidRequest(
            "each property must be a list, check '{}'".format(op.property)
        )
