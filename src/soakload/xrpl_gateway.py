import asyncio
import hashlib
import logging
from collections.abc import Sequence
from typing import Any

import httpx
from xrpl.asyncio.clients import AsyncJsonRpcClient
from xrpl.core.addresscodec import decode_classic_address
from xrpl.core.binarycodec import encode, encode_for_signing
from xrpl.core.keypairs import sign
from xrpl.models import SubmitOnly, Transaction
from xrpl.models.amounts import MPTAmount
from xrpl.models.requests import AccountInfo, ServerState
from xrpl.models.transactions import (
    AccountSet,
    Memo,
    MPTokenIssuanceCreate,
    MPTokenIssuanceCreateFlag,
    Payment,
)
from xrpl.utils import encode_mptoken_metadata
from xrpl.wallet import Wallet

import soakload.constants as C
from soakload.artifacts import ClassArtifact
from soakload.errors import SubmissionRejected, TransportError
from soakload.gateway import Call

log = logging.getLogger("soakload.xrpl")


def _sha512half(b: bytes) -> bytes:
    return hashlib.sha512(b).digest()[:32]


def _txid_from_signed_blob_hex(signed_blob_hex: str) -> str:
    # XRPL txid = SHA512Half(0x54584E00 || signed_bytes)
    return _sha512half(bytes.fromhex("54584E00") + bytes.fromhex(signed_blob_hex)).hex().upper()


def _hex(s: str) -> str:
    return s.encode().hex().upper()


def mpt_issuance_id(sequence: int, issuer: str) -> str:
    """MPTokenIssuanceID = 32-bit big-endian sequence || 160-bit AccountID of the issuer."""
    return f"{sequence:08X}{decode_classic_address(issuer).hex().upper()}"


def ticker(symbol: Any) -> str:
    """XLS-89 ticker: up to six upper-case letters or digits."""
    t = "".join(ch for ch in str(symbol).upper() if ch.isascii() and ch.isalnum())[:6]
    return t or "T"


def is_accepted(engine_result: str | None) -> bool:
    """True when the result consumed the sequence number on the ledger.

    tec* claims the fee and consumes the sequence even though the transaction did
    nothing else, so from the nonce's point of view it was accepted.
    """
    if not isinstance(engine_result, str):
        return False
    return engine_result in C.ACCEPTED_RESULTS or engine_result.startswith(C.CLAIMED_FEE_PREFIX)


class XrplGateway:
    """Gateway over rippled JSON-RPC.

    Every operation is a single signed transaction whose Sequence is the reserved nonce
    and whose Fee is the fee ceiling. ``submit`` only answers for the open ledger;
    finality is out of scope here.
    """

    def __init__(
        self,
        client: AsyncJsonRpcClient,
        *,
        chain_id: int = 0,
        horizon: int | None = C.HORIZON,
        rpc_timeout: float = C.RPC_TIMEOUT,
        submit_timeout: float = C.SUBMIT_TIMEOUT,
    ):
        self.client = client
        self.chain_id = chain_id
        self.horizon = horizon
        self.rpc_timeout = rpc_timeout
        self.submit_timeout = submit_timeout

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "XrplGateway":
        return cls(AsyncJsonRpcClient(url), **kwargs)

    async def _rpc(self, req, *, t: float | None = None):
        try:
            return await asyncio.wait_for(self.client.request(req), timeout=t or self.rpc_timeout)
        except TimeoutError as e:
            raise TransportError(f"{req.method} timed out after {t or self.rpc_timeout}s") from e
        except (httpx.HTTPError, OSError) as e:
            raise TransportError(f"{req.method} failed: {e.__class__.__name__}: {e}") from e

    async def _last_ledger_sequence(self) -> int | None:
        if self.horizon is None:
            return None
        ss = await self._rpc(ServerState())
        try:
            return ss.result["state"]["validated_ledger"]["seq"] + self.horizon
        except KeyError as e:
            raise TransportError(f"server_state has no validated ledger: {ss.result}") from e

    async def _sign_and_submit(self, txn: Transaction, wallet: Wallet, *, nonce: int, max_fee: int) -> str:
        tx = txn.to_xrpl()
        if tx.get("Flags") == 0:
            del tx["Flags"]

        tx["Sequence"] = nonce
        tx["Fee"] = str(max_fee)
        tx["SigningPubKey"] = wallet.public_key
        if self.chain_id > C.NETWORK_ID_THRESHOLD:
            tx["NetworkID"] = self.chain_id
        lls = await self._last_ledger_sequence()
        if lls is not None:
            tx["LastLedgerSequence"] = lls

        tx["TxnSignature"] = sign(encode_for_signing(tx), wallet.private_key)
        signed_blob_hex = encode(tx)
        local_txid = _txid_from_signed_blob_hex(signed_blob_hex)

        log.debug("submit %s from %s seq=%s tx=%s", tx["TransactionType"], wallet.address, nonce, local_txid)
        resp = await self._rpc(SubmitOnly(tx_blob=signed_blob_hex), t=self.submit_timeout)
        res = resp.result
        if not resp.is_successful():
            raise SubmissionRejected(res.get("error", "error"), res.get("error_message"))

        er = res.get("engine_result")
        if not is_accepted(er):
            raise SubmissionRejected(er or "unknown", f"{er}: {res.get('engine_result_message', '')}".rstrip(": "))
        if er.startswith(C.CLAIMED_FEE_PREFIX):
            log.warning(f"{er} (fee claimed): {tx['TransactionType']} from {wallet.address} seq={nonce}")

        srv_txid = res.get("tx_json", {}).get("hash")
        return srv_txid if isinstance(srv_txid, str) and srv_txid else local_txid

    async def declare_class(self, signer: Wallet, artifact: ClassArtifact, *, nonce: int, max_fee: int) -> str:
        """Record the class fingerprint on-ledger in an AccountSet memo."""
        txn = AccountSet(
            account=signer.address,
            memos=[Memo(memo_type=_hex("class"), memo_data=artifact.class_hash, memo_format=_hex(artifact.name))],
        )
        await self._sign_and_submit(txn, signer, nonce=nonce, max_fee=max_fee)
        return artifact.class_hash

    async def deploy_contract(
        self,
        signer: Wallet,
        class_id: str,
        constructor_args: Sequence[Any],
        salt: int,
        *,
        nonce: int,
        max_fee: int,
    ) -> str:
        """Issue an MPT whose shape comes from the token constructor arguments.

        Arguments are ``(name, symbol, decimals, initial_supply, *extra)``. The issuance id
        is derived locally from the sequence and issuer, before the network answers.
        """
        if len(constructor_args) < 4:
            raise SubmissionRejected("temMALFORMED", "token constructor needs name, symbol, decimals, initial_supply")
        name, symbol, decimals, initial_supply, *extra = constructor_args
        metadata = {
            "ticker": ticker(symbol),
            "name": str(name),
            "icon": C.TOKEN_ICON,
            "asset_class": C.TOKEN_ASSET_CLASS,
            "issuer_name": signer.address,
            "additional_info": {"class": class_id, "salt": salt, "args": [str(a) for a in extra]},
        }
        txn = MPTokenIssuanceCreate(
            account=signer.address,
            asset_scale=int(decimals),
            maximum_amount=str(int(initial_supply)),
            mptoken_metadata=encode_mptoken_metadata(metadata),
            flags=MPTokenIssuanceCreateFlag.TF_MPT_CAN_TRANSFER,
        )
        await self._sign_and_submit(txn, signer, nonce=nonce, max_fee=max_fee)
        return mpt_issuance_id(nonce, signer.address)

    async def execute(self, signer: Wallet, calls: Sequence[Call], *, nonce: int, max_fee: int) -> str:
        # One sequence per transaction on this ledger, so one call per operation
        if len(calls) != 1:
            raise SubmissionRejected("temMALFORMED", f"expected exactly one call, got {len(calls)}")
        (call,) = calls
        if call.selector != C.Selector.TRANSFER:
            raise SubmissionRejected("temMALFORMED", f"unsupported selector {call.selector!r}")

        recipient, amount = call.payload[:2]
        if call.target == C.NATIVE_ASSET:
            xrpl_amount: str | MPTAmount = str(int(amount))
        else:
            xrpl_amount = MPTAmount(mpt_issuance_id=call.target, value=str(int(amount)))
        txn = Payment(account=signer.address, destination=recipient, amount=xrpl_amount)
        return await self._sign_and_submit(txn, signer, nonce=nonce, max_fee=max_fee)

    async def account_nonce(self, address: str) -> int:
        ai = await self._rpc(AccountInfo(account=address, ledger_index="current", strict=True))
        if not ai.is_successful():
            raise SubmissionRejected(ai.result.get("error", "error"), f"account_info {address}: {ai.result}")
        return int(ai.result["account_data"]["Sequence"])
