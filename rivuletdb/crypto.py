"""Ed25519 key pairs made of a signing half and an encrypting half."""

from __future__ import annotations

import base64
import binascii

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)


class CryptoError(Exception):
    """Raised for malformed or invalid keys."""


def b64_encode(data: bytes) -> str:
    """Standard padded base64."""
    return base64.b64encode(bytes(data)).decode("ascii")


def b64_decode(data: str) -> bytes:
    """Decode standard padded base64."""
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CryptoError("Invalid key") from exc


def _raw_public(key: Ed25519PublicKey) -> bytes:
    return key.public_bytes(Encoding.Raw, PublicFormat.Raw)


def _verify(key: Ed25519PublicKey, data: bytes, signature: bytes) -> bool:
    if len(signature) != 64:
        return False
    try:
        key.verify(bytes(signature), bytes(data))
    except (InvalidSignature, ValueError):
        return False
    return True


class PublicKey:
    """The public halves of a key pair: verifying key then encrypting key."""

    def __init__(self, verifying_key: Ed25519PublicKey, encrypting_key: Ed25519PublicKey):
        self._verifying = verifying_key
        self._encrypting = encrypting_key

    @classmethod
    def from_bytes(cls, data: bytes) -> "PublicKey":
        if len(data) != 64:
            raise CryptoError("Invalid key")
        try:
            return cls(
                Ed25519PublicKey.from_public_bytes(bytes(data[:32])),
                Ed25519PublicKey.from_public_bytes(bytes(data[32:])),
            )
        except ValueError as exc:
            raise CryptoError("Invalid key") from exc

    @classmethod
    def import_armored(cls, data: str) -> "PublicKey":
        return cls.from_bytes(b64_decode(data))

    def armor(self) -> str:
        return b64_encode(self.export())

    def export(self) -> bytes:
        return _raw_public(self._verifying) + _raw_public(self._encrypting)

    def verify(self, data: bytes, signature: bytes) -> bool:
        return _verify(self._verifying, data, signature)


class KeyPair:
    """A signing key and an encrypting key."""

    def __init__(self, signing: Ed25519PrivateKey, encrypting: Ed25519PrivateKey):
        self._signing = signing
        self._encrypting = encrypting

    @classmethod
    def generate(cls) -> "KeyPair":
        return cls(Ed25519PrivateKey.generate(), Ed25519PrivateKey.generate())

    @classmethod
    def from_bytes(cls, data: bytes) -> "KeyPair":
        if len(data) != 64:
            raise CryptoError("Invalid key")
        try:
            return cls(
                Ed25519PrivateKey.from_private_bytes(bytes(data[:32])),
                Ed25519PrivateKey.from_private_bytes(bytes(data[32:])),
            )
        except ValueError as exc:
            raise CryptoError("Invalid key") from exc

    @classmethod
    def import_armored(cls, data: str) -> "KeyPair":
        return cls.from_bytes(b64_decode(data))

    def public(self) -> PublicKey:
        return PublicKey(self._signing.public_key(), self._encrypting.public_key())

    def armor_private(self) -> str:
        return b64_encode(self.export_private())

    def armor_public(self) -> str:
        return b64_encode(self.export_public())

    def export_private(self) -> bytes:
        def raw(k: Ed25519PrivateKey) -> bytes:
            return k.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())

        return raw(self._signing) + raw(self._encrypting)

    def export_public(self) -> bytes:
        return self.public().export()

    def sign(self, data: bytes) -> bytes:
        return self._signing.sign(bytes(data))

    def verify(self, data: bytes, signature: bytes) -> bool:
        return _verify(self._signing.public_key(), data, signature)