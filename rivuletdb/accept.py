"""A contract runtime that accepts every action unchanged."""

from __future__ import annotations

from enum import Enum

from .contract import Contract, ContractCompiler, ContractContext
from .schema import DataAction


class AcceptContract(Contract):
    """A contract that returns the incoming action as its only result."""

    def execute(self, ctx: ContractContext) -> list[DataAction]:
        return [ctx.action]


class AcceptContractCompiler(ContractCompiler):
    """Ignores the bytecode and always yields an :class:`AcceptContract`."""

    def create_contract(self, bytecode: bytes) -> Contract:
        return AcceptContract()


class ContractCompilerType(Enum):
    """The contract runtimes that can be resolved."""

    ACCEPT = "accept"


def resolve_contract_runtime(kind: ContractCompilerType | str) -> ContractCompiler:
    """Return the compiler for ``kind``; unknown kinds raise ``ValueError``."""
    kind = ContractCompilerType(kind)
    if kind is ContractCompilerType.ACCEPT:
        return AcceptContractCompiler()
    raise ValueError(f"unsupported contract runtime {kind!r}")