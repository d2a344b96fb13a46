"""Database values, data actions and the merge rules between records."""

from __future__ import annotations

import copy
import dataclasses
import functools
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import msgpack

_KINDS = ("String", "Number", "Boolean", "Object", "Array", "None")
_I128_MIN = -(1 << 127)
_I128_MAX = (1 << 127) - 1


class SchemaError(Exception):
    """Raised when data does not fit the value schema."""


@functools.total_ordering
@dataclass(eq=True)
class DbValue:
    """A tagged database value.

    ``kind`` is one of String, Number, Boolean, Object, Array or None.
    Objects hold a ``dict[str, DbValue]``, arrays a ``list[DbValue]``.
    """

    kind: str
    value: Any = None

    def __post_init__(self) -> None:
        if self.kind not in _KINDS:
            raise SchemaError(f"unknown value kind {self.kind!r}")

    __hash__ = None  # type: ignore[assignment]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, DbValue):
            return NotImplemented
        return self.pack() < other.pack()

    def to_python(self) -> Any:
        """Return the plain Python equivalent of this value."""
        if self.kind == "Object":
            return {k: v.to_python() for k, v in self.value.items()}
        if self.kind == "Array":
            return [v.to_python() for v in self.value]
        if self.kind == "None":
            return None
        return self.value

    @classmethod
    def from_python(cls, value: Any) -> "DbValue":
        """Build a value from plain Python data; floats are truncated."""
        if value is None:
            return cls("None")
        if isinstance(value, bool):
            return cls("Boolean", value)
        if isinstance(value, int):
            return cls("Number", value)
        if isinstance(value, float):
            return cls("Number", int(value))
        if isinstance(value, str):
            return cls("String", value)
        if isinstance(value, (list, tuple)):
            return cls("Array", [cls.from_python(v) for v in value])
        if isinstance(value, dict):
            return cls("Object", {str(k): cls.from_python(v) for k, v in value.items()})
        raise SchemaError(f"unsupported value type {type(value).__name__}")

    def to_json(self) -> str:
        """Serialise as compact JSON text."""
        return json.dumps(self.to_python(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_json(cls, data: str) -> "DbValue":
        """Parse JSON text into a value."""
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError as exc:
            raise SchemaError(f"Invalid schema provided: {exc}") from exc
        return cls.from_python(parsed)

    def to_wire(self) -> Any:
        """Return the structure that is packed onto the wire."""
        if self.kind == "None":
            return "None"
        if self.kind == "Number":
            if not _I128_MIN <= self.value <= _I128_MAX:
                raise SchemaError("number out of 128-bit range")
            return {"Number": self.value.to_bytes(16, "big", signed=True)}
        if self.kind == "Object":
            return {"Object": {k: v.to_wire() for k, v in self.value.items()}}
        if self.kind == "Array":
            return {"Array": [v.to_wire() for v in self.value]}
        return {self.kind: self.value}

    @classmethod
    def from_wire(cls, data: Any) -> "DbValue":
        """Rebuild a value from its wire structure."""
        if data == "None":
            return cls("None")
        if not isinstance(data, dict) or len(data) != 1:
            raise SchemaError("malformed value")
        ((kind, payload),) = data.items()
        if kind == "String" and isinstance(payload, str):
            return cls(kind, payload)
        if kind == "Boolean" and isinstance(payload, bool):
            return cls(kind, payload)
        if kind == "Number":
            if isinstance(payload, (bytes, bytearray)) and len(payload) == 16:
                return cls(kind, int.from_bytes(payload, "big", signed=True))
            if isinstance(payload, int) and not isinstance(payload, bool):
                return cls(kind, payload)
        if kind == "Object" and isinstance(payload, dict):
            return cls(kind, {str(k): cls.from_wire(v) for k, v in payload.items()})
        if kind == "Array" and isinstance(payload, (list, tuple)):
            return cls(kind, [cls.from_wire(v) for v in payload])
        raise SchemaError(f"malformed {kind} value")

    def pack(self) -> bytes:
        """Encode as msgpack bytes; values are ordered by these bytes."""
        return msgpack.packb(self.to_wire(), use_bin_type=True)


@dataclass
class DataAction:
    """An insert of ``incoming_data`` under ``key``."""

    key: str
    incoming_data: DbValue
    params: dict[str, DbValue] = field(default_factory=dict)

    def to_wire(self) -> Any:
        return {
            "Insert": [
                self.key,
                self.incoming_data.to_wire(),
                {k: v.to_wire() for k, v in self.params.items()},
            ]
        }

    @classmethod
    def from_wire(cls, data: Any) -> "DataAction":
        if not isinstance(data, dict) or set(data) != {"Insert"}:
            raise SchemaError("malformed data action")
        body = data["Insert"]
        if isinstance(body, dict):
            try:
                body = [body["key"], body["incoming_data"], body["params"]]
            except KeyError as exc:
                raise SchemaError(f"missing field {exc}") from exc
        if not isinstance(body, (list, tuple)) or len(body) != 3:
            raise SchemaError("malformed insert action")
        key, incoming, params = body
        if not isinstance(key, str) or not isinstance(params, dict):
            raise SchemaError("malformed insert action")
        return cls(
            key,
            DbValue.from_wire(incoming),
            {str(k): DbValue.from_wire(v) for k, v in params.items()},
        )


class MergePriority(Enum):
    """Which side wins when two non-object values meet in a merge."""

    TARGET = "target"
    FROM = "from"
    CONTENT = "content"


def serialize_schema(data: Any) -> DbValue:
    """Turn a dataclass or plain data into a value."""
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        data = dataclasses.asdict(data)
    return DbValue.from_python(data)


def into_schema(value: DbValue, factory: Callable[..., Any]) -> Any:
    """Build ``factory`` from a value: objects are passed as keyword arguments."""
    python = value.to_python()
    try:
        if isinstance(python, dict):
            return factory(**python)
        return factory(python)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"Invalid schema provided: {exc}") from exc


def dumb_merge(
    target: dict[str, DbValue], source: dict[str, DbValue], priority: MergePriority
) -> None:
    """Merge ``source`` into ``target`` in place, recursing into objects."""
    for key, from_value in source.items():
        target_value = target.get(key)
        if target_value is None:
            target[key] = copy.deepcopy(from_value)
        elif from_value.kind == "Object" and target_value.kind == "Object":
            dumb_merge(target_value.value, from_value.value, priority)
        elif priority is MergePriority.FROM:
            target[key] = copy.deepcopy(from_value)
        elif priority is MergePriority.CONTENT and from_value > target_value:
            target[key] = copy.deepcopy(from_value)


def merge(
    target: dict[str, DbValue],
    source: dict[str, DbValue],
    target_state: dict[str, int],
    source_state: dict[str, int],
) -> None:
    """Merge ``source`` into ``target`` in place, guided by per-key state counters."""
    for key, from_value in source.items():
        t_state = target_state.get(key, 0)
        f_state = source_state.get(key, 0)
        target_value = target.get(key)
        if target_value is None:
            target[key] = copy.deepcopy(from_value)
            continue
        both_objects = target_value.kind == "Object" and from_value.kind == "Object"
        if t_state == f_state:
            if both_objects:
                dumb_merge(target_value.value, from_value.value, MergePriority.CONTENT)
            elif from_value > target_value:
                target[key] = copy.deepcopy(from_value)
        elif t_state < f_state:
            if both_objects:
                dumb_merge(target_value.value, from_value.value, MergePriority.FROM)
            else:
                target[key] = copy.deepcopy(from_value)