import pytest

from rivuletdb.accept import (
    AcceptContract,
    AcceptContractCompiler,
    ContractCompilerType,
    resolve_contract_runtime,
)
from rivuletdb.contract import ContractContext
from rivuletdb.schema import DataAction, DbValue


def _context() -> ContractContext:
    return ContractContext(
        action=DataAction("vadim", DbValue("Number", 45)),
        namespace="test",
        contract_space="contract",
        signed_by=bytes([1, 2, 3]),
    )


def test_accept_contract_returns_incoming_action():
    ctx = _context()
    assert AcceptContract().execute(ctx) == [ctx.action]


def test_accept_contract_is_repeatable():
    contract = AcceptContract()
    ctx = _context()
    results = [contract.execute(ctx) for _ in range(3)]
    assert results == [[ctx.action]] * 3


def test_compiler_ignores_bytecode():
    contract = AcceptContractCompiler().create_contract(b"\x00garbage")
    ctx = _context()
    assert contract.execute(ctx) == [ctx.action]


def test_resolve_accept_runtime():
    compiler = resolve_contract_runtime(ContractCompilerType.ACCEPT)
    ctx = _context()
    assert compiler.create_contract(b"\x01\x02").execute(ctx) == [ctx.action]


def test_resolve_accepts_enum_value():
    compiler = resolve_contract_runtime("accept")
    ctx = _context()
    assert compiler.create_contract(b"").execute(ctx) == [ctx.action]


def test_resolve_unknown_runtime():
    with pytest.raises(ValueError):
        resolve_contract_runtime("unknown")