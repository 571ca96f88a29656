from typing import Final
from enum import StrEnum

genesis_account: Final = {
    "address": "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh",
    "seed": "snoPBrXtMeMyMHUVTgbuqAfg1SUTb",
}

GENESIS = genesis_account

# Native asset marker for transfer calls; anything else is an MPT issuance id
NATIVE_ASSET: Final = "XRP"


class Selector(StrEnum):
    TRANSFER = "transfer"


class Operation(StrEnum):
    DECLARE_CLASS   = "declare_class"
    DEPLOY_CONTRACT = "deploy_contract"
    EXECUTE         = "execute"
    TRANSFER        = "transfer"


class Compensation(StrEnum):
    DECREMENT = "decrement"
    EXACT     = "exact"


# Engine results that consume the sequence on the ledger
ACCEPTED_RESULTS: Final = frozenset({"tesSUCCESS", "terQUEUED"})
CLAIMED_FEE_PREFIX: Final = "tec"

# Networks with an id above this must carry NetworkID in every transaction
NETWORK_ID_THRESHOLD: Final = 1024

# XLS-89 metadata for the issued test token
TOKEN_ICON: Final = "xrpl.org/favicon.ico"
TOKEN_ASSET_CLASS: Final = "other"

DEFAULT_MAX_FEE = 1_000  # drops
DEFAULT_FUNDING_AMOUNT = int(100 * 1e6)
DEFAULT_TRANSFER_AMOUNT = 1
HORIZON = 15  # Transactions expire if not validated within 15 ledgers (~45-60 seconds)
RPC_TIMEOUT = 2.0
SUBMIT_TIMEOUT = 20

__all__ = [
    "ACCEPTED_RESULTS",
    "CLAIMED_FEE_PREFIX",
    "DEFAULT_FUNDING_AMOUNT",
    "DEFAULT_MAX_FEE",
    "DEFAULT_TRANSFER_AMOUNT",
    "GENESIS",
    "HORIZON",
    "NATIVE_ASSET",
    "NETWORK_ID_THRESHOLD",
    "RPC_TIMEOUT",
    "SUBMIT_TIMEOUT",
    "TOKEN_ASSET_CLASS",
    "TOKEN_ICON",

    ######
    "Compensation",
    "Operation",
    "Selector",
]
