"""Length-delimited frames over an asyncio stream."""

from __future__ import annotations

import asyncio
import struct

from .transport import ConnectionClosed, TransportError, TransportPeer

_HEADER = struct.Struct(">I")
MAX_FRAME_LENGTH = 8 * 1024 * 1024


class TcpPeer(TransportPeer):
    """A peer that sends frames prefixed by a 4-byte big-endian length."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        max_frame_length: int = MAX_FRAME_LENGTH,
    ):
        self._reader = reader
        self._writer = writer
        self._max_frame_length = max_frame_length
        self._read_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._closed = False

    async def is_open(self) -> bool:
        return not self._closed

    async def must_be_open(self) -> None:
        if not await self.is_open():
            raise ConnectionClosed()

    async def bye(self) -> None:
        await self.must_be_open()
        async with self._write_lock:
            self._closed = True
            try:
                self._writer.close()
                await self._writer.wait_closed()
            except OSError as exc:
                raise TransportError(str(exc)) from exc

    async def send(self, msg: bytes) -> None:
        await self.must_be_open()
        if len(msg) > self._max_frame_length:
            raise TransportError("frame size too big")
        async with self._write_lock:
            try:
                self._writer.write(_HEADER.pack(len(msg)) + bytes(msg))
                await self._writer.drain()
            except OSError as exc:
                raise TransportError(str(exc)) from exc

    async def recv(self) -> bytes:
        await self.must_be_open()
        async with self._read_lock:
            header = await self._read_exactly(_HEADER.size, "stream ended")
            (length,) = _HEADER.unpack(header)
            if length > self._max_frame_length:
                raise TransportError("frame size too big")
            return await self._read_exactly(length, "truncated frame")

    async def _read_exactly(self, count: int, eof_message: str) -> bytes:
        try:
            return await self._reader.readexactly(count)
        except asyncio.IncompleteReadError as exc:
            raise TransportError(eof_message) from exc
        except OSError as exc:
            raise TransportError(str(exc)) from exc