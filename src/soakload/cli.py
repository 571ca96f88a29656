import argparse
import asyncio
import logging
from pathlib import Path

import uvicorn

from soakload.app import create_app
from soakload.bootstrap import bootstrap_population
from soakload.config import WorkloadConfig, load_config
from soakload.gateway import Gateway
from soakload.logging_config import setup_logging
from soakload.orchestrator import BatchOrchestrator, RunResult, format_summary

log = logging.getLogger("soakload.cli")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="soakload", description="Concurrent transfer soak test.")
    parser.add_argument("--config", type=Path, help="Path to a config.toml (default: packaged config).")
    parser.add_argument("--log-level", help="Override LOG_LEVEL.")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Provision identities and run the transfer schedule.")
    run.add_argument("-n", "--accounts", type=int, help="Number of identities to provision.")
    run.add_argument("-c", "--concurrency", type=int, help="Transfers in flight per slice.")
    run.add_argument("-i", "--iterations", type=int, help="Rounds over the whole population.")
    run.add_argument("--amount", type=int, help="Drops sent per transfer.")

    serve = sub.add_parser("serve", help="Provision identities and serve the control API.")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    return parser.parse_args(argv)


def overrides(a) -> dict:
    o: dict = {}
    for key in ("accounts", "concurrency", "iterations"):
        value = getattr(a, key, None)
        if value is not None:
            o[key] = value
    if getattr(a, "amount", None) is not None:
        o["transfer_amount"] = a.amount
    return o


async def run_once(cfg: dict, *, gateway: Gateway | None = None) -> RunResult:
    config = WorkloadConfig.from_cfg(cfg)
    population = await bootstrap_population(cfg, config, gateway=gateway)
    wl = cfg["workload"]
    orchestrator = BatchOrchestrator(config, amount=int(wl["transfer_amount"]))
    return await orchestrator.run(population.identities, int(wl["concurrency"]), int(wl["iterations"]))


def main(argv=None, *, gateway: Gateway | None = None):
    """Entry point. ``gateway`` replaces the XRPL gateway built from the config endpoints."""
    args = parse_args(argv)
    setup_logging(args.log_level)
    cfg = load_config(args.config)
    cfg["workload"].update(overrides(args))

    if args.command == "serve":
        uvicorn.run(create_app(cfg), host=args.host, port=args.port, lifespan="on")
        return

    result = asyncio.run(run_once(cfg, gateway=gateway))
    print(format_summary(result))
