import asyncio
import dataclasses

import pytest

from rivuletdb.accept import AcceptContract, AcceptContractCompiler
from rivuletdb.contract import CompilationError, ContractCompiler
from rivuletdb.crypto import KeyPair
from rivuletdb.node import Node, NodeConfig, NodeError, Peer, PeerInitStage
from rivuletdb.protocol import Hello, SearchTags, TransportMessage, sign_message
from rivuletdb.transport import Server, TransportError, TransportPeer


class FakeTransport(TransportPeer):
    def __init__(self, fail=None):
        self.inbox = asyncio.Queue()
        self.sent = []
        self.fail = fail
        self.closed = False

    async def bye(self):
        self.closed = True

    async def send(self, msg):
        if self.fail is not None:
            raise self.fail
        self.sent.append(msg)

    async def recv(self):
        item = await self.inbox.get()
        if item is None:
            raise TransportError("closed")
        return item


class FakeServer(Server):
    def __init__(self, items):
        self.items = list(items)

    async def accept(self):
        if not self.items:
            raise TransportError("done")
        return self.items.pop(0)


class CountingCompiler(ContractCompiler):
    def __init__(self):
        self.calls = 0

    def create_contract(self, bytecode):
        self.calls += 1
        return AcceptContract()


class FailingCompiler(ContractCompiler):
    def create_contract(self, bytecode):
        raise CompilationError("bad bytecode")


def _node(compiler=None, store=None, server=None, max_received_by=3, on_message=None):
    return Node(
        b"me",
        server or FakeServer([]),
        compiler or AcceptContractCompiler(),
        NodeConfig(max_received_by=max_received_by),
        contract_store=store,
        on_message=on_message,
    )


async def _shutdown(*transports):
    for transport in transports:
        await transport.inbox.put(None)
    await asyncio.sleep(0)


def test_get_contract_unknown_id():
    assert _node().get_contract(b"missing") is None


def test_get_contract_compiles_once_and_caches():
    compiler = CountingCompiler()
    node = _node(compiler=compiler, store={b"id": b"code"})
    first = node.get_contract(b"id")
    second = node.get_contract(b"id")
    assert first is second
    assert compiler.calls == 1


def test_get_contract_compile_failure():
    node = _node(compiler=FailingCompiler(), store={b"id": b"code"})
    assert node.get_contract(b"id") is None


@pytest.mark.asyncio
async def test_peer_next_and_send_round_trip():
    transport = FakeTransport()
    peer = Peer(transport)
    assert peer.stage is PeerInitStage.NONE
    envelope = sign_message(Hello(b"key"), KeyPair.generate(), "p")
    await peer.send(envelope)
    await transport.inbox.put(transport.sent[0])
    assert await peer.next() == envelope


@pytest.mark.asyncio
async def test_peer_next_transport_failure():
    transport = FakeTransport()
    await transport.inbox.put(None)
    with pytest.raises(NodeError):
        await Peer(transport).next()


@pytest.mark.asyncio
async def test_peer_next_bad_payload():
    transport = FakeTransport()
    await transport.inbox.put(b"\xc1")
    with pytest.raises(NodeError):
        await Peer(transport).next()


@pytest.mark.asyncio
async def test_process_next_delivers_messages():
    seen = []
    node = _node(on_message=seen.append)
    transport = FakeTransport()
    peer = await node.add_peer(transport)
    messages = [Hello(b"key"), SearchTags("ns", ["t"])]
    envelope = TransportMessage.sign(messages, KeyPair.generate(), "p")
    await transport.inbox.put(envelope.pack())
    await node.process_next()
    assert [ctx.message for ctx in seen] == messages
    assert all(ctx.peer is peer for ctx in seen)
    assert seen[0].transport == envelope
    await _shutdown(transport)


@pytest.mark.asyncio
async def test_process_next_rejects_bad_signature():
    node = _node()
    transport = FakeTransport()
    await node.add_peer(transport)
    envelope = sign_message(Hello(b"key"), KeyPair.generate(), "p")
    tampered = dataclasses.replace(envelope, data=envelope.data + b"\x00")
    await transport.inbox.put(tampered.pack())
    with pytest.raises(NodeError):
        await node.process_next()
    await _shutdown(transport)


@pytest.mark.asyncio
async def test_receive_peers_then_process_registers_them():
    first, second = FakeTransport(), FakeTransport()
    seen = []
    node = _node(server=FakeServer([first, None, second]), on_message=seen.append)
    await node.receive_peers()
    assert node.peers == []
    envelope = sign_message(Hello(b"key"), KeyPair.generate(), "p")
    await second.inbox.put(envelope.pack())
    await node.process_next()
    assert [p.transport for p in node.peers] == [first, second]
    assert seen[0].peer.transport is second
    await _shutdown(first, second)


@pytest.mark.asyncio
async def test_broadcast_stamps_and_counts():
    node = _node(max_received_by=3)
    good_a, good_b = FakeTransport(), FakeTransport()
    network = FakeTransport(fail=TransportError("down"))
    runtime = FakeTransport(fail=RuntimeError("boom"))
    for transport in (good_a, good_b, network, runtime):
        await node.add_peer(transport)
    envelope = sign_message(Hello(b"key"), KeyPair.generate(), "p")
    envelope.received_by = [b"a", b"b", b"c"]

    tally = await node.broadcast(envelope)

    assert (tally.ok, tally.network, tally.runtime) == (2, 1, 1)
    delivered = TransportMessage.unpack(good_a.sent[0])
    assert delivered.received_by == [b"b", b"c", b"me"]
    assert delivered.id == envelope.id
    assert good_b.sent == good_a.sent
    assert envelope.received_by == [b"a", b"b", b"c"]
    await _shutdown(good_a, good_b, network, runtime)


@pytest.mark.asyncio
async def test_broadcast_does_not_duplicate_identity():
    node = _node(max_received_by=5)
    transport = FakeTransport()
    await node.add_peer(transport)
    envelope = sign_message(Hello(b"key"), KeyPair.generate(), "p")
    envelope.received_by = [b"me", b"x"]
    await node.broadcast(envelope)
    assert TransportMessage.unpack(transport.sent[0]).received_by == [b"me", b"x"]
    await _shutdown(transport)