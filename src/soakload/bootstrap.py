"""Provision the population a run needs.

Order matters on a sequenced ledger: wait for the network, declare classes, deploy
the token, derive and fund the identities, let the ledger settle, then read every
new identity's authoritative nonce. All steps here are fatal on failure.
"""
import asyncio
import hashlib
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
from xrpl import CryptoAlgorithm
from xrpl.asyncio.clients import AsyncWebsocketClient
from xrpl.core.keypairs import generate_seed
from xrpl.models import StreamParameter, Subscribe
from xrpl.wallet import Wallet

import soakload.constants as C
from soakload.artifacts import load_artifact
from soakload.config import WorkloadConfig, endpoints
from soakload.errors import SubmissionRejected, TransportError
from soakload.gateway import Gateway
from soakload.identity import IdentityHandle
from soakload.xrpl_gateway import XrplGateway

log = logging.getLogger("soakload.bootstrap")

PROBE_TIMEOUT = 3.0
NOT_FOUND = "actNotFound"


@dataclass
class Population:
    funder: IdentityHandle
    identities: list[IdentityHandle]
    class_ids: list[str] = field(default_factory=list)
    token_id: str | None = None


async def wait_for_rpc(
    url: str,
    *,
    attempts: int = 30,
    delay: float = 2.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Poll ``server_info`` until the node answers. Returns the attempt that got through.

    Raises ``TransportError`` chained to the last HTTP error once ``attempts`` are spent.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")
    payload = {"method": "server_info", "params": [{}]}
    async with httpx.AsyncClient(timeout=PROBE_TIMEOUT, transport=transport) as http:
        attempt = 0
        while True:
            attempt += 1
            try:
                r = await http.post(url, json=payload)
                r.raise_for_status()
                log.info(f"RPC {url} answering after {attempt} attempt(s)")
                return attempt
            except httpx.HTTPError as e:
                if attempt >= attempts:
                    raise TransportError(f"{url} did not answer after {attempts} attempts") from e
                log.info("RPC not ready (%s/%s): %s, retrying in %ss", attempt, attempts, e.__class__.__name__, delay)
                await asyncio.sleep(delay)


async def wait_for_ledgers(url: str, count: int, *, connect: Callable[[str], Any] = AsyncWebsocketClient) -> int:
    """Block until ``count`` ledgers close on the ledger stream. Returns how many were seen."""
    if count <= 0:
        return 0
    closed = 0
    async with connect(url) as ws:
        await ws.send(Subscribe(streams=[StreamParameter.LEDGER]))
        async for msg in ws:
            if msg.get("type") != "ledgerClosed":
                continue
            closed += 1
            log.info("Ledger %s closed (%s/%s)", msg.get("ledger_index"), closed, count)
            if closed >= count:
                break
    return closed


def derive_wallet(master_seed: str, index: int) -> Wallet:
    """Deterministic wallet for ``index``; the same (seed, index) always gives the same address."""
    entropy = hashlib.sha512(f"{master_seed}:{index}".encode()).hexdigest()[:32]
    seed = generate_seed(entropy=entropy, algorithm=CryptoAlgorithm.SECP256K1)
    return Wallet.from_seed(seed, algorithm=CryptoAlgorithm.SECP256K1)


def token_constructor_args(name: str, symbol: str, decimals: int, initial_supply: int, recipient: str) -> tuple:
    # name, symbol, decimals, initial_supply, max_supply, recipient
    return (name, symbol, decimals, initial_supply, initial_supply, recipient)


async def declare_classes(funder: IdentityHandle, paths: Sequence[str]) -> list[str]:
    class_ids = []
    for path in paths:
        artifact = load_artifact(path)
        class_id = await funder.declare_class(artifact)
        log.info(f"{artifact.name} class hash: {class_id}")
        class_ids.append(class_id)
    return class_ids


async def deploy_token(funder: IdentityHandle, class_id: str, token_cfg: dict[str, Any], salt: int = 0) -> str:
    args = token_constructor_args(
        token_cfg.get("name", "Test"),
        token_cfg.get("symbol", "T"),
        int(token_cfg.get("decimals", 6)),
        int(token_cfg.get("initial_supply", 100_000_000)),
        funder.address,
    )
    token_id = await funder.deploy_contract(class_id, args, salt)
    log.info(f"Token deployed: {token_id}")
    return token_id


async def fund_identities(funder: IdentityHandle, identities: Sequence[IdentityHandle], amount: int) -> list[IdentityHandle]:
    """Fund every identity not yet active on the ledger. Returns the ones that were funded."""
    funded = []
    for identity in identities:
        try:
            await identity.resync()
            log.debug("%s already active, skipping funding", identity.address)
            continue
        except SubmissionRejected as e:
            if e.engine_result != NOT_FOUND:
                raise
        await funder.transfer(C.NATIVE_ASSET, amount, identity.address)
        log.debug(f"🏛️ Transferred {amount} drops to {identity.address}")
        funded.append(identity)
    log.info("Funded %s/%s identities from %s", len(funded), len(identities), funder.address)
    return funded


async def resync_all(identities: Sequence[IdentityHandle], concurrency: int = 100) -> None:
    for start in range(0, len(identities), concurrency):
        async with asyncio.TaskGroup() as tg:
            for identity in identities[start:start + concurrency]:
                tg.create_task(identity.resync())


async def settle(ws_url: str | None, ledgers: int) -> None:
    if ws_url is None:
        return
    log.info("Waiting for %s ledgers to close...", ledgers)
    await wait_for_ledgers(ws_url, ledgers)


async def provision(
    gateway: Gateway,
    config: WorkloadConfig,
    cfg: dict,
    *,
    accounts: int,
    ws_url: str | None = None,
    concurrency: int = 100,
) -> Population:
    if accounts < 1:
        raise ValueError(f"need at least one account, got {accounts}")

    fw = cfg["funding_account"]
    funder_wallet = Wallet.from_seed(fw["seed"], algorithm=CryptoAlgorithm.SECP256K1)
    if fw.get("address") and fw["address"] != funder_wallet.address:
        log.warning("Configured funding address %s does not match seed (%s)", fw["address"], funder_wallet.address)
    funder = IdentityHandle(gateway, funder_wallet, funder_wallet.address, 0, config)
    await funder.resync()

    settle_ledgers = int(cfg.get("timeout", {}).get("settle_ledgers", 2))
    token_cfg = cfg.get("token", {})
    population = Population(funder=funder, identities=[])

    population.class_ids = await declare_classes(funder, token_cfg.get("artifacts", []))
    if population.class_ids:
        await settle(ws_url, settle_ledgers)
        # The token is deployed from the last declared class
        population.token_id = await deploy_token(funder, population.class_ids[-1], token_cfg)

    for i in range(accounts):
        w = derive_wallet(fw["seed"], i + 1)
        population.identities.append(IdentityHandle(gateway, w, w.address, 0, config))
    log.info("Derived %s identities", accounts)

    amount = int(cfg.get("workload", {}).get("funding_amount", C.DEFAULT_FUNDING_AMOUNT))
    funded = await fund_identities(funder, population.identities, amount)

    if funded:
        await settle(ws_url, settle_ledgers)
        await resync_all(funded, concurrency)
    return population


async def bootstrap_population(cfg: dict, config: WorkloadConfig, *, gateway: Gateway | None = None) -> Population:
    """Wait for the network to come up, then provision it.

    With a ready ``gateway`` the caller owns the network: the readiness checks and
    ledger waits are skipped and provisioning runs straight against it.
    """
    wl = cfg["workload"]
    ws: str | None = None
    if gateway is None:
        rpc, ws = endpoints(cfg)
        to = cfg["timeout"]
        async with asyncio.timeout(to["startup"]):
            log.info("Probing RPC endpoint...")
            await wait_for_rpc(rpc)
            log.info("RPC OK. Waiting for network to be ready (seeing ledger progress)")
            await wait_for_ledgers(ws, int(to["initial_ledgers"]))
        gateway = XrplGateway.from_url(
            rpc,
            chain_id=config.chain_id,
            horizon=wl.get("horizon", C.HORIZON),
            rpc_timeout=to.get("rpc", C.RPC_TIMEOUT),
            submit_timeout=to.get("submit", C.SUBMIT_TIMEOUT),
        )
    return await provision(
        gateway, config, cfg, accounts=int(wl["accounts"]), ws_url=ws, concurrency=int(wl["concurrency"])
    )
