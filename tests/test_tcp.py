import asyncio
import socket

import pytest

from rivuletdb.tcp import TcpPeer
from rivuletdb.transport import ConnectionClosed, TransportError


async def _streams():
    left, right = socket.socketpair()
    left_streams = await asyncio.open_connection(sock=left)
    right_streams = await asyncio.open_connection(sock=right)
    return left_streams, right_streams


async def _peers(**kwargs):
    (ra, wa), (rb, wb) = await _streams()
    return TcpPeer(ra, wa, **kwargs), TcpPeer(rb, wb, **kwargs)


async def _close(*peers):
    for peer in peers:
        if await peer.is_open():
            await peer.bye()


@pytest.mark.asyncio
async def test_send_and_recv_round_trip():
    a, b = await _peers()
    await a.send(b"hello")
    await a.send(b"")
    await a.send(b"world")
    assert await b.recv() == b"hello"
    assert await b.recv() == b""
    assert await b.recv() == b"world"
    await _close(a, b)


@pytest.mark.asyncio
async def test_frame_wire_format():
    (ra, wa), (rb, wb) = await _streams()
    peer = TcpPeer(ra, wa)
    await peer.send(b"abc")
    assert await rb.readexactly(7) == b"\x00\x00\x00\x03abc"
    wb.write(b"\x00\x00\x00\x02hi")
    await wb.drain()
    assert await peer.recv() == b"hi"
    await peer.bye()
    wb.close()


@pytest.mark.asyncio
async def test_bye_closes_peer():
    a, b = await _peers()
    assert await a.is_open() is True
    await a.bye()
    assert await a.is_open() is False
    with pytest.raises(ConnectionClosed):
        await a.send(b"x")
    with pytest.raises(ConnectionClosed):
        await a.recv()
    with pytest.raises(ConnectionClosed):
        await a.bye()
    await _close(b)


@pytest.mark.asyncio
async def test_recv_after_remote_closes():
    a, b = await _peers()
    await a.bye()
    with pytest.raises(TransportError):
        await b.recv()
    await _close(b)


@pytest.mark.asyncio
async def test_oversized_frame_rejected_on_send():
    a, b = await _peers(max_frame_length=4)
    with pytest.raises(TransportError):
        await a.send(b"too long")
    await _close(a, b)


@pytest.mark.asyncio
async def test_oversized_frame_rejected_on_recv():
    (ra, wa), (rb, wb) = await _streams()
    peer = TcpPeer(ra, wa, max_frame_length=4)
    wb.write(b"\x00\x00\x00\x10")
    await wb.drain()
    with pytest.raises(TransportError):
        await peer.recv()
    await peer.bye()
    wb.close()


@pytest.mark.asyncio
async def test_truncated_frame():
    (ra, wa), (rb, wb) = await _streams()
    peer = TcpPeer(ra, wa)
    wb.write(b"\x00\x00\x00\x05ab")
    await wb.drain()
    wb.close()
    with pytest.raises(TransportError):
        await peer.recv()
    await peer.bye()