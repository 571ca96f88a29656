from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from soakload.artifacts import ClassArtifact


@dataclass(frozen=True, slots=True)
class Call:
    target: str
    selector: str
    payload: tuple[Any, ...] = field(default_factory=tuple)


class Gateway(Protocol):
    """Signs, encodes and transmits operations for one network.

    Every method suspends until the endpoint accepts or rejects. None of them retry;
    per-call timeouts are the gateway's business.
    """

    async def declare_class(self, signer: Any, artifact: ClassArtifact, *, nonce: int, max_fee: int) -> str: ...

    async def deploy_contract(
        self,
        signer: Any,
        class_id: str,
        constructor_args: Sequence[Any],
        salt: int,
        *,
        nonce: int,
        max_fee: int,
    ) -> str: ...

    async def execute(self, signer: Any, calls: Sequence[Call], *, nonce: int, max_fee: int) -> str: ...

    async def account_nonce(self, address: str) -> int: ...
