"""Contract execution context, errors and the contract interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from .schema import DataAction, DbValue, SchemaError


@dataclass
class ContractContext:
    """What a contract is given when it runs."""

    action: DataAction
    namespace: str
    contract_space: str
    signed_by: bytes
    contract_params: dict[str, DbValue] = field(default_factory=dict)

    def to_wire(self) -> Any:
        return [
            self.action.to_wire(),
            self.namespace,
            self.contract_space,
            list(self.signed_by),
            {k: v.to_wire() for k, v in self.contract_params.items()},
        ]

    @classmethod
    def from_wire(cls, data: Any) -> "ContractContext":
        try:
            action, namespace, space, signed_by, params = data
            return cls(
                DataAction.from_wire(action),
                str(namespace),
                str(space),
                bytes(signed_by),
                {str(k): DbValue.from_wire(v) for k, v in params.items()},
            )
        except (TypeError, ValueError, AttributeError) as exc:
            raise SchemaError("malformed contract context") from exc


class ContractError(Exception):
    """Base of all contract failures."""


class ContractRuntimeError(ContractError):
    def __init__(self, cause: object):
        super().__init__(f"Runtime error {cause}")
        self.cause = cause


class CompilationError(ContractError):
    def __init__(self, message: str):
        super().__init__(f"Compilation error {message}")
        self.detail = message


class ContractNotImplemented(ContractError):
    def __init__(self) -> None:
        super().__init__("Contract not implemented")


class InvalidResponse(ContractError):
    def __init__(self) -> None:
        super().__init__("Invalid response")


class ContractFailed(ContractError):
    def __init__(self, code: int):
        super().__init__(f"Contract failed. Code: {code}")
        self.code = code


class Contract(ABC):
    """A runnable contract."""

    @abstractmethod
    def execute(self, ctx: ContractContext) -> list[DataAction]:
        """Run against ``ctx`` and return the actions to apply."""


class ContractCompiler(ABC):
    """Builds contracts from bytecode."""

    @abstractmethod
    def create_contract(self, bytecode: bytes) -> Contract:
        """Compile ``bytecode`` into a contract."""