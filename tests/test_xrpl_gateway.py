import asyncio

import httpx
import pytest
from xrpl import CryptoAlgorithm
from xrpl.core.binarycodec import decode
from xrpl.models.requests import AccountInfo, ServerState, SubmitOnly
from xrpl.models.response import Response, ResponseStatus
from xrpl.utils import decode_mptoken_metadata, validate_mptoken_metadata
from xrpl.wallet import Wallet

import soakload.constants as C
from soakload.artifacts import ClassArtifact
from soakload.errors import SubmissionRejected, TransportError
from soakload.gateway import Call
from soakload.xrpl_gateway import XrplGateway, is_accepted, mpt_issuance_id, ticker

GENESIS_ACCOUNT_ID = "B5F762798A53D543A014CAF8B297CFF8F2F937E8"


class FakeClient:
    """Answers the handful of JSON-RPC requests the gateway makes."""

    def __init__(self, *, engine_result="tesSUCCESS", server_hash=None, validated=100, delay=0.0, raise_exc=None):
        self.engine_result = engine_result
        self.server_hash = server_hash
        self.validated = validated
        self.delay = delay
        self.raise_exc = raise_exc
        self.submitted: list[dict] = []
        self.sequences: dict[str, int] = {}

    async def request(self, req):
        if self.raise_exc is not None:
            raise self.raise_exc
        if isinstance(req, ServerState):
            return Response(status=ResponseStatus.SUCCESS, result={"state": {"validated_ledger": {"seq": self.validated}}})
        if isinstance(req, AccountInfo):
            if req.account not in self.sequences:
                return Response(status=ResponseStatus.ERROR, result={"error": "actNotFound"})
            return Response(status=ResponseStatus.SUCCESS, result={"account_data": {"Sequence": self.sequences[req.account]}})
        if isinstance(req, SubmitOnly):
            if self.delay:
                await asyncio.sleep(self.delay)
            self.submitted.append(decode(req.tx_blob))
            result = {"engine_result": self.engine_result, "engine_result_message": "fake"}
            if self.server_hash:
                result["tx_json"] = {"hash": self.server_hash}
            return Response(status=ResponseStatus.SUCCESS, result=result)
        raise AssertionError(f"unexpected request {req!r}")


@pytest.fixture
def wallet():
    return Wallet.from_seed(C.GENESIS["seed"], algorithm=CryptoAlgorithm.SECP256K1)


@pytest.fixture
def destination():
    return Wallet.create().address


def transfer(destination, amount=1, target=C.NATIVE_ASSET):
    return [Call(target=target, selector=C.Selector.TRANSFER, payload=(destination, amount))]


@pytest.mark.asyncio
async def test_payment_carries_nonce_fee_and_horizon(wallet, destination):
    client = FakeClient(server_hash="ABCD")
    gw = XrplGateway(client, horizon=15)

    tx_id = await gw.execute(wallet, transfer(destination, 5), nonce=12, max_fee=1000)

    assert tx_id == "ABCD"
    (tx,) = client.submitted
    assert tx["TransactionType"] == "Payment"
    assert tx["Account"] == wallet.address
    assert tx["Destination"] == destination
    assert tx["Amount"] == "5"
    assert tx["Sequence"] == 12
    assert tx["Fee"] == "1000"
    assert tx["LastLedgerSequence"] == 115
    assert tx["SigningPubKey"] == wallet.public_key
    assert "TxnSignature" in tx
    assert "NetworkID" not in tx


@pytest.mark.asyncio
async def test_local_hash_when_server_omits_it(wallet, destination):
    gw = XrplGateway(FakeClient(), horizon=None)
    tx_id = await gw.execute(wallet, transfer(destination), nonce=1, max_fee=10)
    assert len(tx_id) == 64
    assert tx_id == tx_id.upper()


@pytest.mark.asyncio
async def test_network_id_only_above_threshold(wallet, destination):
    client = FakeClient()
    await XrplGateway(client, chain_id=1024, horizon=None).execute(wallet, transfer(destination), nonce=1, max_fee=10)
    await XrplGateway(client, chain_id=21337, horizon=None).execute(wallet, transfer(destination), nonce=2, max_fee=10)

    assert "NetworkID" not in client.submitted[0]
    assert client.submitted[1]["NetworkID"] == 21337


@pytest.mark.asyncio
async def test_mpt_transfer_amount(wallet, destination):
    client = FakeClient()
    token = mpt_issuance_id(7, wallet.address)
    await XrplGateway(client, horizon=None).execute(wallet, transfer(destination, 9, target=token), nonce=3, max_fee=10)

    amount = client.submitted[0]["Amount"]
    assert amount["mpt_issuance_id"] == token
    assert amount["value"] == "9"


@pytest.mark.asyncio
@pytest.mark.parametrize("engine_result", ["tefPAST_SEQ", "terPRE_SEQ", "telINSUF_FEE_P", "temBAD_FEE"])
async def test_rejections_raise(wallet, destination, engine_result):
    gw = XrplGateway(FakeClient(engine_result=engine_result), horizon=None)
    with pytest.raises(SubmissionRejected) as excinfo:
        await gw.execute(wallet, transfer(destination), nonce=1, max_fee=10)
    assert excinfo.value.engine_result == engine_result


@pytest.mark.asyncio
async def test_claimed_fee_counts_as_accepted(wallet, destination):
    gw = XrplGateway(FakeClient(engine_result="tecUNFUNDED_PAYMENT"), horizon=None)
    assert await gw.execute(wallet, transfer(destination), nonce=1, max_fee=10)


@pytest.mark.asyncio
async def test_submit_timeout_is_transport_error(wallet, destination):
    gw = XrplGateway(FakeClient(delay=0.5), horizon=None, submit_timeout=0.05)
    with pytest.raises(TransportError):
        await gw.execute(wallet, transfer(destination), nonce=1, max_fee=10)


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error(wallet, destination):
    gw = XrplGateway(FakeClient(raise_exc=httpx.ConnectError("refused")))
    with pytest.raises(TransportError):
        await gw.execute(wallet, transfer(destination), nonce=1, max_fee=10)


@pytest.mark.asyncio
async def test_only_single_transfer_calls(wallet, destination):
    gw = XrplGateway(FakeClient(), horizon=None)
    with pytest.raises(SubmissionRejected):
        await gw.execute(wallet, transfer(destination) * 2, nonce=1, max_fee=10)
    with pytest.raises(SubmissionRejected):
        await gw.execute(wallet, [Call(C.NATIVE_ASSET, "approve", (destination, 1))], nonce=1, max_fee=10)


@pytest.mark.asyncio
async def test_declare_class_records_fingerprint(wallet):
    client = FakeClient()
    artifact = ClassArtifact.from_document("ERC20", {"abi": [{"name": "transfer"}]})

    class_id = await XrplGateway(client, horizon=None).declare_class(wallet, artifact, nonce=4, max_fee=10)

    assert class_id == artifact.class_hash
    (tx,) = client.submitted
    assert tx["TransactionType"] == "AccountSet"
    assert tx["Sequence"] == 4
    assert tx["Memos"][0]["Memo"]["MemoData"] == artifact.class_hash


@pytest.mark.asyncio
async def test_deploy_contract_returns_issuance_id(wallet):
    client = FakeClient()
    gw = XrplGateway(client, horizon=None)

    token = await gw.deploy_contract(wallet, "C0FFEE", ("Test", "T", 6, 1000, 1000, wallet.address), 0, nonce=5, max_fee=10)

    assert token == "00000005" + GENESIS_ACCOUNT_ID
    (tx,) = client.submitted
    assert tx["TransactionType"] == "MPTokenIssuanceCreate"
    assert tx["AssetScale"] == 6
    assert tx["Sequence"] == 5

    assert validate_mptoken_metadata(tx["MPTokenMetadata"]) == []
    metadata = decode_mptoken_metadata(tx["MPTokenMetadata"])
    assert metadata["ticker"] == "T"
    assert metadata["name"] == "Test"
    assert metadata["issuer_name"] == wallet.address
    assert metadata["additional_info"] == {"class": "C0FFEE", "salt": 0, "args": ["1000", wallet.address]}


@pytest.mark.asyncio
async def test_deploy_contract_needs_token_shape(wallet):
    with pytest.raises(SubmissionRejected):
        await XrplGateway(FakeClient(), horizon=None).deploy_contract(wallet, "C0FFEE", ("Test",), 0, nonce=1, max_fee=10)


@pytest.mark.asyncio
async def test_account_nonce(wallet):
    client = FakeClient()
    client.sequences[wallet.address] = 31
    gw = XrplGateway(client)

    assert await gw.account_nonce(wallet.address) == 31
    with pytest.raises(SubmissionRejected) as excinfo:
        await gw.account_nonce(Wallet.create().address)
    assert excinfo.value.engine_result == "actNotFound"


def test_mpt_issuance_id_layout():
    assert mpt_issuance_id(1, C.GENESIS["address"]) == "00000001" + GENESIS_ACCOUNT_ID


@pytest.mark.parametrize(
    "engine_result, accepted",
    [
        ("tesSUCCESS", True),
        ("terQUEUED", True),
        ("tecNO_DST", True),
        ("terPRE_SEQ", False),
        ("tefPAST_SEQ", False),
        ("telCAN_NOT_QUEUE", False),
        (None, False),
    ],
)
def test_is_accepted(engine_result, accepted):
    assert is_accepted(engine_result) is accepted


@pytest.mark.parametrize(
    "symbol, expected",
    [("T", "T"), ("usd", "USD"), ("wETH-2", "WETH2"), ("LONGTICKER", "LONGTI"), ("$$", "T")],
)
def test_ticker(symbol, expected):
    assert ticker(symbol) == expected
