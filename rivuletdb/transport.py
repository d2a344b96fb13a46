"""Interfaces for moving raw frames between peers."""

from __future__ import annotations

from abc import ABC, abstractmethod


class TransportError(Exception):
    """Raised when a transport fails to move data."""


class ConnectionClosed(TransportError):
    """Raised when a closed connection is used."""

    def __init__(self, message: str = "Connection closed"):
        super().__init__(message)


class TransportPeer(ABC):
    """One end of a connection carrying whole frames."""

    @abstractmethod
    async def bye(self) -> None:
        """Close the connection."""

    @abstractmethod
    async def send(self, msg: bytes) -> None:
        """Send one frame."""

    @abstractmethod
    async def recv(self) -> bytes:
        """Receive one frame."""


class Server(ABC):
    """Accepts incoming peers."""

    @abstractmethod
    async def accept(self) -> TransportPeer | None:
        """Wait for the next peer; ``None`` when nothing was accepted."""


class Client(ABC):
    """Opens connections to remote peers."""

    @abstractmethod
    async def connect(self, addr: str) -> TransportPeer:
        """Connect to ``addr``."""