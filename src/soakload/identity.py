import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import soakload.constants as C
from soakload.artifacts import ClassArtifact
from soakload.config import WorkloadConfig
from soakload.errors import SubmissionFailed
from soakload.gateway import Call, Gateway
from soakload.nonce import NonceLedger

log = logging.getLogger("soakload.identity")


class IdentityHandle:
    """One signer, its address and its nonce ledger.

    Every operation reserves a nonce, hands it to the gateway together with the fee
    ceiling and awaits the result. On failure the nonce is compensated exactly once and
    ``SubmissionFailed`` is raised from the original error. Nothing is ever re-submitted:
    the endpoint would refuse a duplicate nonce, so compensation only keeps the next
    operation from leaving a hole that would stall every later one.
    """

    def __init__(
        self,
        gateway: Gateway,
        signer: Any,
        address: str,
        initial_nonce: int,
        config: WorkloadConfig,
    ):
        self.gateway = gateway
        self.signer = signer
        self.address = address
        self.config = config
        self.nonce = NonceLedger(initial_nonce)

    def __repr__(self) -> str:
        return f"IdentityHandle({self.address}, nonce={self.nonce.current()})"

    async def _submit(self, operation: C.Operation, send: Callable[[int], Awaitable[str]]) -> str:
        nonce = self.nonce.reserve()
        try:
            return await send(nonce)
        except Exception as e:
            self._compensate(nonce)
            raise SubmissionFailed(self.address, operation, nonce) from e

    def _compensate(self, nonce: int) -> None:
        if self.config.nonce_compensation == C.Compensation.EXACT:
            self.nonce.release(nonce)
        else:
            self.nonce.rollback()
        log.debug("Compensated nonce %s for %s -> %s", nonce, self.address, self.nonce.current())

    async def declare_class(self, artifact: ClassArtifact) -> str:
        return await self._submit(
            C.Operation.DECLARE_CLASS,
            lambda n: self.gateway.declare_class(self.signer, artifact, nonce=n, max_fee=self.config.max_fee),
        )

    async def deploy_contract(self, class_id: str, constructor_args: Sequence[Any], salt: int = 0) -> str:
        return await self._submit(
            C.Operation.DEPLOY_CONTRACT,
            lambda n: self.gateway.deploy_contract(
                self.signer, class_id, constructor_args, salt, nonce=n, max_fee=self.config.max_fee
            ),
        )

    async def execute(self, calls: Sequence[Call]) -> str:
        return await self._submit(
            C.Operation.EXECUTE,
            lambda n: self.gateway.execute(self.signer, calls, nonce=n, max_fee=self.config.max_fee),
        )

    async def transfer(self, asset: str, amount: int, recipient: str) -> str:
        call = Call(target=asset, selector=C.Selector.TRANSFER, payload=(recipient, amount))
        return await self._submit(
            C.Operation.TRANSFER,
            lambda n: self.gateway.execute(self.signer, [call], nonce=n, max_fee=self.config.max_fee),
        )

    async def resync(self) -> int:
        """Overwrite the local counter with the network's authoritative next nonce."""
        authoritative = await self.gateway.account_nonce(self.address)
        old = self.nonce.current()
        self.nonce.set(authoritative)
        if old != authoritative:
            log.info(f"Resynced {self.address} nonce {old} -> {authoritative}")
        return authoritative
