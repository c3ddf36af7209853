"""
Records: in-memory representation of a single row.

A ``RecordSchema`` describes one mapped table's row shape (declared
properties, casts, UUID identity). A ``Record`` holds the values of one row:
declared properties in a fixed, ordered slot mapping and everything else in an
ordered extras mapping. Casts are applied when a property is read; raw stored
values are never changed by a read.

Usage:
    users = RecordSchema(
        name="user",
        properties=("name", "age", "active"),
        casts={"age": CastKind.INT, "active": CastKind.BOOL},
    )
    user = users.new({"name": "phil", "age": "42"})
    user.age  # -> 42
"""

from __future__ import annotations

import json
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field, model_validator

from handlr.exceptions import CastError, UnknownPropertyError

RecordId = Union[int, str, None]

_TRUE_STRINGS = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "f", "no", "n", "off", ""})


class CastKind(str, Enum):
    """Primitive types a declared property can be cast to on read."""

    INT = "int"
    BOOL = "bool"
    FLOAT = "float"
    STRING = "string"


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float, Decimal)):
        return int(value)
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    return int(str(value).strip())


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        if value in (0, 1):
            return bool(value)
        raise ValueError(value)
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(value)


def _to_float(value: Any) -> float:
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    return float(value)


def _to_string(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8")
    return str(value)


_CASTERS: Dict[CastKind, Callable[[Any], Any]] = {
    CastKind.INT: _to_int,
    CastKind.BOOL: _to_bool,
    CastKind.FLOAT: _to_float,
    CastKind.STRING: _to_string,
}


def cast_value(prop: str, kind: CastKind, value: Any) -> Any:
    """
    Apply a cast to a raw value. ``None`` is never cast.

    Raises
    ------
    CastError
        If the raw value cannot be converted.
    """
    if value is None:
        return None
    try:
        return _CASTERS[kind](value)
    except (TypeError, ValueError, OverflowError, UnicodeDecodeError) as exc:
        raise CastError(prop, kind.value, value) from exc


class RecordSchema(BaseModel):
    """
    Configuration for one mapped row shape.

    Attributes
    ----------
    name : str
        Human-friendly name used in error messages and logs.
    properties : tuple[str, ...]
        Declared properties, in serialization order. ``id`` is implicit.
    casts : dict[str, CastKind]
        Casts applied on read, keyed by declared property name.
    uses_uuid : bool
        Whether ``id`` is a textual UUID generated at construction.
    uuid_columns : tuple[str, ...]
        Additional UUID-typed columns stored in binary form.
    """

    name: str
    properties: Tuple[str, ...] = Field(default_factory=tuple)
    casts: Dict[str, CastKind] = Field(default_factory=dict)
    uses_uuid: bool = True
    uuid_columns: Tuple[str, ...] = Field(default_factory=tuple)

    model_config = {
        "frozen": True,
        "arbitrary_types_allowed": False,
    }

    @model_validator(mode="after")
    def _check_declarations(self) -> "RecordSchema":
        if "id" in self.properties:
            raise ValueError("'id' is implicit and must not be listed in properties")
        if len(set(self.properties)) != len(self.properties):
            raise ValueError(f"Duplicate property names in schema '{self.name}'")
        if "id" in self.uuid_columns:
            raise ValueError("'id' is covered by uses_uuid and must not be listed in uuid_columns")
        shadowed = [name for name in self.properties if name in _RECORD_MEMBERS]
        if shadowed:
            raise ValueError(f"Properties clash with Record attributes: {', '.join(shadowed)}")
        undeclared = [name for name in self.casts if name not in self.properties]
        if undeclared:
            raise ValueError(f"Casts declared for unknown properties: {', '.join(undeclared)}")
        return self

    def new(self, data: Optional[Mapping[str, Any]] = None) -> "Record":
        """Build a record of this schema from a plain mapping."""
        return Record(self, data)


_SLOTS = ("_schema", "_id", "_declared", "_extras")


class Record:
    """
    One row of a mapped table.

    Declared properties are read through their cast; extras are returned
    verbatim. Properties are reachable as ``record.get(name)``,
    ``record[name]`` or ``record.name``. Declared properties may not reuse a
    Record attribute name (``schema``, ``get``, ``to_array``, ...); an extra
    with such a name is only reachable through ``get``, ``set`` or indexing.
    """

    __slots__ = _SLOTS

    def __init__(self, schema: RecordSchema, data: Optional[Mapping[str, Any]] = None) -> None:
        object.__setattr__(self, "_schema", schema)
        object.__setattr__(self, "_id", None)
        object.__setattr__(self, "_declared", dict.fromkeys(schema.properties))
        object.__setattr__(self, "_extras", {})

        data = dict(data or {})
        given_id = data.pop("id", None)
        if given_id is not None and given_id != "":
            self._id = given_id
        elif schema.uses_uuid:
            self._id = str(uuid.uuid4())

        for key, value in data.items():
            self.set(key, value)

    # -- identity ------------------------------------------------------------

    @property
    def schema(self) -> RecordSchema:
        return self._schema

    @property
    def id(self) -> RecordId:
        return self._id

    @id.setter
    def id(self, value: RecordId) -> None:
        object.__setattr__(self, "_id", value)

    def uses_uuid(self) -> bool:
        return self._schema.uses_uuid

    def uuid_columns(self) -> Tuple[str, ...]:
        return self._schema.uuid_columns

    # -- property access -----------------------------------------------------

    def get(self, name: str) -> Any:
        """
        Read a property.

        Raises
        ------
        UnknownPropertyError
            If the property is neither declared nor stored as an extra.
        CastError
            If a declared cast cannot convert the stored value.
        """
        if name == "id":
            return self._id
        if name in self._declared:
            kind = self._schema.casts.get(name)
            raw = self._declared[name]
            return raw if kind is None else cast_value(name, kind, raw)
        if name in self._extras:
            return self._extras[name]
        raise UnknownPropertyError(self._schema.name, name)

    def set(self, name: str, value: Any) -> None:
        """Write a property. Unknown names are kept as extras."""
        if name == "id":
            self.id = value
        elif name in self._declared:
            self._declared[name] = value
        else:
            self._extras[name] = value

    def raw(self, name: str) -> Any:
        """Read a property without applying its cast."""
        if name in self._declared:
            return self._declared[name]
        if name in self._extras:
            return self._extras[name]
        return self.get(name)

    def __getitem__(self, name: str) -> Any:
        return self.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __delitem__(self, name: str) -> None:
        if name == "id":
            self.id = None
        elif name in self._declared:
            self._declared[name] = None
        elif name in self._extras:
            del self._extras[name]
        else:
            raise UnknownPropertyError(self._schema.name, name)

    def __contains__(self, name: object) -> bool:
        if name == "id":
            return self._id is not None
        if name in self._declared:
            return self._declared[name] is not None
        return name in self._extras

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails, i.e. for row properties.
        if name in _SLOTS or name.startswith("__"):
            raise AttributeError(name)
        return self.get(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _SLOTS or name == "id":
            object.__setattr__(self, name, value)
        elif name in _RECORD_MEMBERS:
            raise AttributeError(f"'{name}' is a Record attribute; use record[{name!r}] = value")
        else:
            self.set(name, value)

    # -- serialization -------------------------------------------------------

    def to_array(self) -> Dict[str, Any]:
        """Return ``id``, declared properties, then extras, as raw values."""
        data: Dict[str, Any] = {"id": self._id}
        data.update(self._declared)
        data.update(self._extras)
        return data

    def json_serialize(self) -> Dict[str, Any]:
        return self.to_array()

    def to_json(self, **kwargs: Any) -> str:
        kwargs.setdefault("default", str)
        return json.dumps(self.json_serialize(), **kwargs)

    def __iter__(self) -> Iterator[str]:
        return iter(self.to_array())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return self._schema == other._schema and self.to_array() == other.to_array()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"<Record {self._schema.name} id={self._id!r}>"


_RECORD_MEMBERS = frozenset(name for name in dir(Record) if not name.startswith("_")) - {"id"}


__all__ = ["CastKind", "Record", "RecordId", "RecordSchema", "cast_value"]
