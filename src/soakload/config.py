import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

import soakload.constants as C
from soakload.errors import ConfigError

pkg_root = Path(__file__).parent
config_file = pkg_root / "config.toml"

SECTIONS = ("rippled", "funding_account", "workload", "token", "timeout")


@dataclass(frozen=True, slots=True)
class WorkloadConfig:
    """Settings every identity handle and orchestrator is constructed with."""

    chain_id: int = 0
    max_fee: int = C.DEFAULT_MAX_FEE
    nonce_compensation: C.Compensation = C.Compensation.DECREMENT

    def __post_init__(self):
        if self.max_fee <= 0:
            raise ConfigError(f"max_fee must be positive, got {self.max_fee}")
        if self.chain_id < 0:
            raise ConfigError(f"chain_id must not be negative, got {self.chain_id}")
        try:
            object.__setattr__(self, "nonce_compensation", C.Compensation(self.nonce_compensation))
        except ValueError:
            raise ConfigError(f"unknown nonce_compensation {self.nonce_compensation!r}") from None

    @classmethod
    def from_cfg(cls, cfg: dict) -> "WorkloadConfig":
        wl = cfg.get("workload", {})
        return cls(
            chain_id=int(wl.get("chain_id", 0)),
            max_fee=int(wl.get("max_fee", C.DEFAULT_MAX_FEE)),
            nonce_compensation=wl.get("nonce_compensation", C.Compensation.DECREMENT),
        )


def _read(path: str | Path) -> dict:
    try:
        return tomllib.loads(Path(path).read_text())
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"cannot load config {path}: {e}") from e


def _merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config(path: str | Path | None = None) -> dict:
    """Read the packaged config.toml and lay the user's file over it, section by section.

    The user's file is ``path``, else SOAKLOAD_CONFIG. Keys it leaves out keep their
    packaged values, so a file holding a single section is a complete config.
    """
    cfg = _read(config_file)
    path = path or os.getenv("SOAKLOAD_CONFIG")
    if path:
        user = _read(path)
        cfg = _merge(cfg, user)
        # A seed without an address names another funder, don't keep genesis' address
        if "seed" in user.get("funding_account", {}) and "address" not in user["funding_account"]:
            cfg["funding_account"].pop("address", None)

    for section in SECTIONS:
        if not isinstance(cfg.get(section), dict):
            raise ConfigError(f"[{section}] must be a table, got {cfg.get(section)!r}")
    cfg["funding_account"].setdefault("seed", C.GENESIS["seed"])
    return cfg


def endpoints(cfg: dict) -> tuple[str, str]:
    """Resolve the (rpc, ws) URLs from config, honouring the docker host and env overrides."""
    rippled = cfg["rippled"]
    host = rippled["docker"] if Path("/.dockerenv").is_file() else rippled["local"]
    host = os.getenv("RIPPLED_IP", host)
    rpc = os.getenv("RPC_URL", f"http://{host}:{rippled['rpc_port']}")
    ws = os.getenv("WS_URL", f"ws://{host}:{rippled['ws_port']}")
    return rpc, ws
