# rivuletdb

rivuletdb provides the building blocks of a peer-to-peer document database.

- **`rivuletdb.schema`**: `DbValue` is a tagged value. Its `kind` is one of
  `String`, `Number`, `Boolean`, `Object`, `Array` or `None`. A value converts
  to and from JSON (`to_json`, `from_json`), plain Python data (`to_python`,
  `from_python`, where floats are truncated to integers) and its msgpack wire
  form (`to_wire`, `from_wire`, `pack`). Numbers must fit in a signed 128-bit
  integer. Values are ordered by their packed bytes. `DataAction` is an insert
  of a value under a key. `serialize_schema` and `into_schema` move data
  between dataclasses and values. `dumb_merge` and `merge` combine documents
  in place, and failures raise `SchemaError`.
- **`rivuletdb.crypto`**: `KeyPair` and `PublicKey`. Each is made of two
  Ed25519 keys, a signing key and an encrypting key, and exports to 64 bytes.
  They support base64 armoring (`b64_encode`, `b64_decode`), signing and
  verification. Bad keys raise `CryptoError`.
- **`rivuletdb.contract`**: `ContractContext`, the abstract `Contract` and
  `ContractCompiler`, and the errors `ContractError`, `ContractRuntimeError`,
  `CompilationError`, `ContractNotImplemented`, `InvalidResponse` and
  `ContractFailed`.
- **`rivuletdb.accept`**: `AcceptContract` returns the incoming action as its
  only result. `AcceptContractCompiler` ignores bytecode.
  `resolve_contract_runtime` picks a compiler by `ContractCompilerType`.
- **`rivuletdb.protocol`**: the peer messages `Hello`, `WhoAreYou`, `ItsMe`,
  `Welcome`, `Insert`, `Get`, `DeployContract`, `SearchTags` and `Gossip`, plus
  `Location`. It also has the signed `TransportMessage` envelope with `sign`,
  `open`, `pack` and `unpack`, and `sign_message`, `message_to_wire` and
  `message_from_wire`. Failures raise `ProtocolError`.
- **`rivuletdb.transport`**: the abstract async `TransportPeer`, `Server` and
  `Client`, and the errors `TransportError` and `ConnectionClosed`.
- **`rivuletdb.tcp`**: `TcpPeer` wraps an asyncio reader and writer pair. Each
  frame is prefixed by a 4-byte big-endian length, and frames are limited to
  8 MiB by default.
- **`rivuletdb.node`**: `Node` accepts peers from a `Server`, reads envelopes
  from them, verifies and decodes them, and hands each message to an
  `on_message` callback. It also broadcasts envelopes to all peers and
  compiles and caches contracts from a bytecode mapping.

## Installation

```
pip install rivuletdb
```

## Values and merging

```python
from rivuletdb.schema import DbValue, MergePriority, dumb_merge, merge

value = DbValue.from_json('{"name": "ada", "age": 36}')
print(value.to_json())

target = {"a": DbValue.from_python(1)}
source = {"a": DbValue.from_python(2)}
merge(target, source, {"a": 1}, {"a": 2})   # the source's state is newer, so it wins
print(target["a"].to_python())              # 2

dumb_merge(target, {"b": DbValue.from_python(True)}, MergePriority.FROM)
```

`merge` handles each key as follows:

- If only the source has the key, it is copied in.
- If the key's state counters are equal, the greater value wins. Two objects
  are merged key by key, and the greater value wins inside them as well.
- If the source's state is higher, the source value replaces the target value.
  Two objects are merged with the source winning.
- If the target's state is higher, the target is left alone.

## Keys and signed messages

```python
from rivuletdb.crypto import KeyPair, PublicKey
from rivuletdb.protocol import Hello, TransportMessage

key = KeyPair.generate()
signature = key.sign(b"hello")
assert PublicKey.import_armored(key.armor_public()).verify(b"hello", signature)

envelope = TransportMessage.sign([Hello(public_key=key.export_public())], key, "publisher")
messages = TransportMessage.unpack(envelope.pack()).open()  # checks the signature
```

## Contracts

```python
from rivuletdb.accept import ContractCompilerType, resolve_contract_runtime
from rivuletdb.contract import ContractContext
from rivuletdb.schema import DataAction, DbValue

ctx = ContractContext(
    action=DataAction("key", DbValue.from_python(45)),
    namespace="test",
    contract_space="contract",
    signed_by=b"\x01\x02\x03",
)
compiler = resolve_contract_runtime(ContractCompilerType.ACCEPT)
actions = compiler.create_contract(b"").execute(ctx)  # [ctx.action]
```

## Transport and nodes

```python
import asyncio
from rivuletdb.tcp import TcpPeer

async def talk(host, port):
    reader, writer = await asyncio.open_connection(host, port)
    peer = TcpPeer(reader, writer)
    await peer.send(b"frame")
    reply = await peer.recv()
    await peer.bye()
    return reply
```

A `Node` is built from an identity, a `Server`, a `ContractCompiler` and a
`NodeConfig(max_received_by=...)`. It can also take a `contract_store`
mapping of contract ids to bytecode and an `on_message` callback. Run
`receive_peers()` and `process()` as tasks. `broadcast(msg)` adds the node's
identity to `received_by`, keeps only the last `max_received_by` entries, and
returns a tally of `ok`, `network` and `runtime` results.

## What the package does not do

- It has no command-line program and no ready-made server or client. The
  `Server` and `Client` interfaces must be implemented by the caller.
  `TcpPeer` only wraps a stream that is already open.
- It has no persistent storage. Contract bytecode comes from whatever mapping
  is passed to `Node`, and records are not stored at all.
- The only contract runtime is the accept-everything one. Bytecode is never
  executed.
- `Node` does not carry out the handshake or act on `Insert`, `Get`, `Gossip`
  and the other messages itself. That is left to the `on_message` callback.
- Key pairs sign and verify, but do not encrypt.

## Running the tests

```
pip install -e ".[test]"
pytest
```