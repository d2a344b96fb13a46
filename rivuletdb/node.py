"""A network node: peers, message intake, contracts and broadcast."""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
from collections.abc import MutableMapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, NamedTuple

from .contract import Contract, ContractCompiler, ContractError
from .crypto import b64_encode
from .protocol import Message, ProtocolError, TransportMessage
from .transport import Server, TransportError, TransportPeer

log = logging.getLogger(__name__)


class NodeError(Exception):
    """Raised when a peer or message cannot be handled."""


class PeerInitStage(Enum):
    NONE = "none"
    HELLO = "hello"
    WHO_ARE_YOU = "who_are_you"
    ITS_ME = "its_me"
    WELCOME = "welcome"


class Peer:
    """A connected peer and the task that reads from it."""

    def __init__(self, transport: TransportPeer):
        self.transport = transport
        self.stage = PeerInitStage.NONE
        self.read_task: asyncio.Task | None = None

    async def next(self) -> TransportMessage:
        """Receive and decode the next envelope."""
        try:
            raw = await self.transport.recv()
        except TransportError as exc:
            raise NodeError(f"Transport error {exc}") from exc
        try:
            return TransportMessage.unpack(raw)
        except ProtocolError as exc:
            raise NodeError(f"Schema error {exc}") from exc

    async def send(self, msg: TransportMessage) -> None:
        """Encode and send an envelope."""
        try:
            payload = msg.pack()
        except ProtocolError as exc:
            raise NodeError(f"Schema error {exc}") from exc
        try:
            await self.transport.send(payload)
        except TransportError as exc:
            raise NodeError(f"Transport error {exc}") from exc


@dataclass
class NodeConfig:
    max_received_by: int


@dataclass
class _IncomingMessage:
    peer: Peer
    message: TransportMessage


@dataclass
class _MessageContext:
    message: Message
    peer: Peer
    transport: TransportMessage


class _BroadcastTally(NamedTuple):
    ok: int
    network: int
    runtime: int


class Node:
    """Owns the peer set, the incoming queues and the contract cache.

    ``contract_store`` maps contract ids to bytecode. ``on_message`` is
    called (and awaited if it returns an awaitable) for every verified
    message, with an object carrying ``message``, ``peer`` and ``transport``.
    """

    def __init__(
        self,
        identity: bytes,
        server: Server,
        contract_compiler: ContractCompiler,
        config: NodeConfig,
        contract_store: MutableMapping[bytes, bytes] | None = None,
        on_message: Callable[[Any], Any] | None = None,
    ):
        self.identity = bytes(identity)
        self.peers: list[Peer] = []
        self.config = config
        self._server = server
        self._compiler = contract_compiler
        self._contract_store = {} if contract_store is None else contract_store
        self._contracts: dict[bytes, Contract] = {}
        self._on_message = on_message
        self._messages: asyncio.Queue[_IncomingMessage] = asyncio.Queue()
        self._incoming_peers: asyncio.Queue[TransportPeer] = asyncio.Queue()

    def get_contract(self, contract_id: bytes) -> Contract | None:
        """Return the compiled contract, compiling and caching it on first use."""
        key = bytes(contract_id)
        cached = self._contracts.get(key)
        if cached is not None:
            return cached
        bytecode = self._contract_store.get(key)
        if bytecode is None:
            return None
        try:
            contract = self._compiler.create_contract(bytecode)
        except ContractError as exc:
            log.debug("Failed to compile contract %s: %s", b64_encode(key), exc)
            return None
        self._contracts[key] = contract
        return contract

    async def receive_peers(self) -> None:
        """Accept peers from the server until it fails."""
        while True:
            try:
                transport = await self._server.accept()
            except TransportError as exc:
                log.debug("Server stopped accepting peers: %s", exc)
                return
            if transport is None:
                log.debug("Server returned None, no peer accepted")
                continue
            await self._incoming_peers.put(transport)

    async def process(self) -> None:
        """Process incoming messages forever."""
        while True:
            try:
                await self.process_next()
            except NodeError as exc:
                log.debug("Failed to process incoming message: %s", exc)
            await asyncio.sleep(0)

    async def process_next(self) -> None:
        """Register waiting peers, then handle the next incoming envelope."""
        while True:
            try:
                transport = self._incoming_peers.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self.add_peer(transport)

        await asyncio.sleep(0)

        incoming = await self._messages.get()
        try:
            messages = incoming.message.open()
        except ProtocolError as exc:
            raise NodeError(f"Protocol error {exc}") from exc

        for message in messages:
            ctx = _MessageContext(message, incoming.peer, incoming.message)
            try:
                await self._process_message(ctx)
            except NodeError as exc:
                log.debug("Failed to process message: %s", exc)

    async def _process_message(self, ctx: _MessageContext) -> None:
        if self._on_message is None:
            return
        result = self._on_message(ctx)
        if inspect.isawaitable(result):
            await result

    async def add_peer(self, transport: TransportPeer) -> Peer:
        """Register a peer and start reading from it."""
        peer = Peer(transport)
        peer.read_task = asyncio.create_task(self._read_loop(peer))
        self.peers.append(peer)
        return peer

    async def _read_loop(self, peer: Peer) -> None:
        while True:
            try:
                message = await peer.next()
            except NodeError:
                return
            await self._messages.put(_IncomingMessage(peer, message))
            await asyncio.sleep(0)

    def _stamp(self, msg: TransportMessage) -> TransportMessage:
        received_by = list(msg.received_by)
        if self.identity not in received_by:
            received_by.append(self.identity)
        while len(received_by) > self.config.max_received_by:
            received_by.pop(0)
        return dataclasses.replace(msg, received_by=received_by)

    async def broadcast(self, msg: TransportMessage) -> _BroadcastTally:
        """Send ``msg`` to every peer, stamped with this node's identity."""
        peers = list(self.peers)
        results = await asyncio.gather(
            *(peer.send(self._stamp(msg)) for peer in peers), return_exceptions=True
        )
        ok = sum(1 for r in results if not isinstance(r, BaseException))
        network = sum(1 for r in results if isinstance(r, NodeError))
        runtime = len(results) - ok - network
        if network + runtime:
            log.debug(
                "Failed to broadcast message ID %s to %d peers (%d runtime, %d network). Success: %d",
                b64_encode(msg.id),
                len(peers),
                runtime,
                network,
                ok,
            )
        return _BroadcastTally(ok, network, runtime)