"""
Position references.

Callers identify positions by name, by numeric id, by a loaded ``Position``, or
by any (nested) collection of those. ``to_ref`` turns such raw input into one
of four reference variants so the repository and the membership checks can
dispatch on the variant instead of sniffing types at every call site:

    PositionName("Manager")
    PositionId(3)
    PositionEntity(position)
    PositionRefs((PositionName("Manager"), PositionId(3)))
"""
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any, Union

from pbac.core import config
from pbac.features.positions.models import Position


@dataclass(frozen=True)
class PositionName:
    name: str


@dataclass(frozen=True)
class PositionId:
    id: int


@dataclass(frozen=True)
class PositionEntity:
    position: Position


@dataclass(frozen=True)
class PositionRefs:
    refs: tuple["PositionRef", ...]
    # True for unordered collections of entities (sets, query results), matched by intersection
    collection: bool = False


PositionRef = Union[PositionName, PositionId, PositionEntity, PositionRefs]

_REF_TYPES = (PositionName, PositionId, PositionEntity, PositionRefs)


def is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.strip().isdigit()


def split_delimited(value: str, delimiter: str | None = None) -> list[str]:
    """Split an ``"a|b"`` list of names, dropping blanks."""
    delimiter = delimiter or config.POSITION_DELIMITER
    return [part.strip() for part in value.split(delimiter) if part.strip()]


def to_ref(value: Any, *, numeric_strings: bool = True, delimited: bool = False) -> PositionRef:
    """
    Build a reference from raw input.

    Args:
        value: name, id, Position, reference, or an iterable of any of these
        numeric_strings: read digit-only strings as ids (lookup semantics);
            when False they stay names (membership semantics)
        delimited: split strings containing the position delimiter into names
    """
    if isinstance(value, _REF_TYPES):
        return value
    if isinstance(value, Position):
        return PositionEntity(value)
    if isinstance(value, bool):
        raise TypeError(f"Cannot use {value!r} as a position reference")
    if isinstance(value, int):
        return PositionId(value)
    if isinstance(value, str):
        if delimited and config.POSITION_DELIMITER in value:
            return PositionRefs(tuple(PositionName(part) for part in split_delimited(value)))
        if numeric_strings and is_numeric(value):
            return PositionId(int(value))
        return PositionName(value)
    if isinstance(value, (list, tuple)):
        return PositionRefs(tuple(
            to_ref(item, numeric_strings=numeric_strings, delimited=delimited) for item in value
        ))
    if isinstance(value, Iterable):
        return PositionRefs(
            tuple(to_ref(item, numeric_strings=numeric_strings, delimited=delimited) for item in value),
            collection=True,
        )
    raise TypeError(f"Cannot use {type(value).__name__} as a position reference")


def flatten(values: Iterable[Any]) -> Iterator[Any]:
    """
    Yield the leaves of arbitrarily nested position input.

    Strings and positions are leaves; lists, tuples, sets, generators, query
    results and ``PositionRefs`` are descended into.
    """
    for value in values:
        if isinstance(value, PositionRefs):
            yield from flatten(value.refs)
        elif isinstance(value, (str, bytes, Position, PositionName, PositionId, PositionEntity)):
            yield value
        elif isinstance(value, Iterable):
            yield from flatten(value)
        else:
            yield value


def is_blank(value: Any) -> bool:
    """Blank input is skipped by assignment instead of failing the lookup."""
    if isinstance(value, PositionName):
        return not value.name
    if isinstance(value, PositionId):
        return not value.id
    return not value
