"""Peer protocol messages and the signed envelopes that carry them."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Any, Union

import msgpack

from .crypto import CryptoError, KeyPair, PublicKey
from .schema import DbValue, SchemaError


class ProtocolError(Exception):
    """Raised when a message cannot be verified, encoded or decoded."""


def _pack(obj: Any) -> bytes:
    return msgpack.packb(obj, use_bin_type=True)


def _unpack(data: bytes) -> Any:
    try:
        return msgpack.unpackb(
            bytes(data), raw=False, use_list=False, strict_map_key=False
        )
    except (ValueError, TypeError, msgpack.exceptions.UnpackException) as exc:
        raise ProtocolError(f"Schema error {exc}") from exc


def _bytes(value: Any) -> bytes:
    try:
        if isinstance(value, (bytes, bytearray, list, tuple)):
            return bytes(value)
    except (TypeError, ValueError) as exc:
        raise ProtocolError("malformed byte string") from exc
    raise ProtocolError("malformed byte string")


def _str(value: Any) -> str:
    if not isinstance(value, str):
        raise ProtocolError("expected a string")
    return value


def _seq(value: Any) -> tuple:
    if not isinstance(value, (list, tuple)):
        raise ProtocolError("expected a list")
    return tuple(value)


def _map(value: Any) -> dict:
    if not isinstance(value, dict):
        raise ProtocolError("expected a map")
    return value


def _uint(value: Any, bits: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProtocolError("expected an integer")
    if not 0 <= value < (1 << bits):
        raise ProtocolError(f"integer out of {bits}-bit range")
    return value


def _fields(data: Any, count: int) -> tuple:
    if isinstance(data, dict):
        data = tuple(data.values())
    data = _seq(data)
    if len(data) != count:
        raise ProtocolError("malformed message body")
    return data


_ENCODE = {
    "bytes": list,
    "str": _str,
    "strs": list,
    "u16": lambda v: _uint(v, 16),
    "u64": lambda v: _uint(v, 64),
    "value": lambda v: v.to_wire(),
    "params": lambda m: {k: v.to_wire() for k, v in m.items()},
    "location": lambda v: v._body(),
    "select": lambda s: [list(path) for path in s],
    "peers": lambda m: {tuple(k): [list(p) for p in v] for k, v in m.items()},
}

_DECODE = {
    "bytes": _bytes,
    "str": _str,
    "strs": lambda v: [_str(s) for s in _seq(v)],
    "u16": lambda v: _uint(v, 16),
    "u64": lambda v: _uint(v, 64),
    "value": DbValue.from_wire,
    "params": lambda m: {_str(k): DbValue.from_wire(v) for k, v in _map(m).items()},
    "location": lambda v: Location._from_body(v),
    "select": lambda s: [_DECODE["strs"](path) for path in _seq(s)],
    "peers": lambda m: {
        _bytes(k): [_bytes(p) for p in _seq(v)] for k, v in _map(m).items()
    },
}


class _Record:
    """Positional wire encoding driven by the kinds of a dataclass's fields."""

    _kinds: tuple[str, ...] = ()

    def _body(self) -> list:
        return [
            _ENCODE[kind](getattr(self, f.name))
            for f, kind in zip(fields(self), self._kinds)
        ]

    @classmethod
    def _from_body(cls, body: Any):
        values = _fields(body, len(cls._kinds))
        return cls(*(_DECODE[kind](v) for kind, v in zip(cls._kinds, values)))


@dataclass
class Location(_Record):
    """Where a record lives."""

    namespace: str
    contract_space: str
    contract: bytes
    key: str
    _kinds = ("str", "str", "bytes", "str")


@dataclass
class Hello(_Record):
    public_key: bytes
    _kinds = ("bytes",)


@dataclass
class WhoAreYou(_Record):
    data: bytes
    public_key: bytes
    _kinds = ("bytes", "bytes")


@dataclass
class ItsMe(_Record):
    signature: bytes
    data: bytes
    _kinds = ("bytes", "bytes")


@dataclass
class Welcome(_Record):
    dht_ip: str
    dht_port: int
    signature: bytes
    _kinds = ("str", "u16", "bytes")


@dataclass
class Insert(_Record):
    location: Location
    incoming_data: DbValue
    metadata: dict[str, DbValue]
    state: int
    _kinds = ("location", "value", "params", "u64")


@dataclass
class Get(_Record):
    location: Location
    select: list[list[str]]
    _kinds = ("location", "select")


@dataclass
class DeployContract(_Record):
    contract_payload: bytes
    namespace: str
    params: dict[str, DbValue]
    tags: list[str]
    _kinds = ("bytes", "str", "params", "strs")


@dataclass
class SearchTags(_Record):
    namespace: str
    query: list[str]
    _kinds = ("str", "strs")


@dataclass
class Gossip(_Record):
    peers: dict[bytes, list[bytes]]
    _kinds = ("peers",)


Message = Union[
    Hello, WhoAreYou, ItsMe, Welcome, Insert, Get, DeployContract, SearchTags, Gossip
]

_VARIANTS: dict[str, type] = {
    cls.__name__: cls
    for cls in (
        Hello, WhoAreYou, ItsMe, Welcome, Insert, Get, DeployContract, SearchTags, Gossip
    )
}


def message_to_wire(message: Message) -> Any:
    """Return the structure that is packed for ``message``."""
    name = type(message).__name__
    if _VARIANTS.get(name) is not type(message):
        raise ProtocolError(f"not a protocol message: {name}")
    try:
        return {name: message._body()}
    except SchemaError as exc:
        raise ProtocolError(f"Schema error {exc}") from exc


def message_from_wire(data: Any) -> Message:
    """Rebuild a message from its wire structure."""
    if not isinstance(data, dict) or len(data) != 1:
        raise ProtocolError("malformed message")
    ((name, body),) = data.items()
    cls = _VARIANTS.get(name)
    if cls is None:
        raise ProtocolError(f"unknown message {name!r}")
    try:
        return cls._from_body(body)
    except SchemaError as exc:
        raise ProtocolError(f"Schema error {exc}") from exc


def sign_message(message: Message, key: KeyPair, publisher: str) -> "TransportMessage":
    """Wrap a single message in a signed envelope."""
    return TransportMessage.sign([message], key, publisher)


@dataclass
class MessageSignature:
    data: bytes
    signed_by: bytes


@dataclass
class TransportMessage:
    """A signed batch of messages as it travels between peers."""

    data: bytes
    signature: MessageSignature
    publisher: str
    received_by: list[bytes] = field(default_factory=list)
    id: bytes = b""

    @classmethod
    def sign(
        cls, messages: list[Message], key: KeyPair, publisher: str
    ) -> "TransportMessage":
        payload = _pack([message_to_wire(m) for m in messages])
        return cls(
            data=payload,
            signature=MessageSignature(key.sign(payload), key.export_public()),
            publisher=publisher,
            id=os.urandom(64),
        )

    def open(self) -> list[Message]:
        """Verify the signature and decode the messages."""
        try:
            public = PublicKey.from_bytes(self.signature.signed_by)
        except CryptoError as exc:
            raise ProtocolError(f"Cryptography error {exc}") from exc
        if not public.verify(self.data, self.signature.data):
            raise ProtocolError("Cryptography error Invalid key")
        return [message_from_wire(m) for m in _seq(_unpack(self.data))]

    def pack(self) -> bytes:
        return _pack(
            [
                list(self.data),
                [list(self.signature.data), list(self.signature.signed_by)],
                self.publisher,
                [list(r) for r in self.received_by],
                list(self.id),
            ]
        )

    @classmethod
    def unpack(cls, data: bytes) -> "TransportMessage":
        payload, signature, publisher, received_by, msg_id = _fields(_unpack(data), 5)
        sig_data, signed_by = _fields(signature, 2)
        return cls(
            data=_bytes(payload),
            signature=MessageSignature(_bytes(sig_data), _bytes(signed_by)),
            publisher=_str(publisher),
            received_by=[_bytes(r) for r in _seq(received_by)],
            id=_bytes(msg_id),
        )