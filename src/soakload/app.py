import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from time import perf_counter

from fastapi import APIRouter, FastAPI, HTTPException, Request
from pydantic import BaseModel, PositiveInt

import soakload.constants as C
from soakload.bootstrap import Population, bootstrap_population
from soakload.config import WorkloadConfig, load_config
from soakload.orchestrator import BatchOrchestrator, RunResult

log = logging.getLogger("soakload.app")


class StartReq(BaseModel):
    concurrency: PositiveInt | None = None
    iterations: PositiveInt | None = None
    amount: PositiveInt | None = None


class WorkloadState:
    def __init__(self, population: Population, config: WorkloadConfig, defaults: dict):
        self.population = population
        self.config = config
        self.defaults = defaults
        self.orchestrator: BatchOrchestrator | None = None
        self.task: asyncio.Task | None = None
        self.last_result: RunResult | None = None
        self.started_at: float | None = None
        self.error: str | None = None

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()


def create_app(cfg: dict | None = None, *, population: Population | None = None) -> FastAPI:
    """Build the control API. Without a ready ``population`` the network is provisioned on startup."""
    cfg = cfg or load_config()
    config = WorkloadConfig.from_cfg(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pop = population
        if pop is None:
            pop = await bootstrap_population(cfg, config)
        app.state.workload = WorkloadState(pop, config, cfg["workload"])
        log.info(f"Population ready: {len(pop.identities)} identities. Ready to accept requests!")
        try:
            yield
        finally:
            state: WorkloadState = app.state.workload
            if state.running:
                # Runs are never cancelled mid-slice, wait for the schedule to drain
                log.info("Waiting for the running workload to drain...")
                await state.task
            log.info("Shutdown complete")

    app = FastAPI(
        title="soakload",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Workload", "description": "Start and observe transfer runs"},
            {"name": "State", "description": "Provisioned identities"},
        ],
    )

    r_state = APIRouter(prefix="/state", tags=["State"])
    r_workload = APIRouter(prefix="/workload", tags=["Workload"])

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @r_state.get("/identities")
    def state_identities(request: Request):
        state: WorkloadState = request.app.state.workload
        return [{"address": i.address, "nonce": i.nonce.current()} for i in state.population.identities]

    @r_workload.post("/start")
    async def start_workload(req: StartReq, request: Request):
        """Start a transfer run over the provisioned population."""
        state: WorkloadState = request.app.state.workload
        if state.running:
            raise HTTPException(status_code=400, detail="Workload already running")

        concurrency = req.concurrency or state.defaults["concurrency"]
        iterations = req.iterations or state.defaults["iterations"]
        amount = req.amount or state.defaults.get("transfer_amount", C.DEFAULT_TRANSFER_AMOUNT)
        state.orchestrator = BatchOrchestrator(state.config, amount=amount)
        state.started_at = perf_counter()

        async def _run():
            state.last_result = await state.orchestrator.run(state.population.identities, concurrency, iterations)

        def _done(t: asyncio.Task):
            if not t.cancelled() and t.exception() is not None:
                state.error = repr(t.exception())
                log.error("Workload crashed", exc_info=t.exception())

        log.info("Starting workload: concurrency=%s iterations=%s amount=%s", concurrency, iterations, amount)
        state.error = None
        state.task = asyncio.create_task(_run(), name="workload")
        state.task.add_done_callback(_done)
        return {"status": "started", "concurrency": concurrency, "iterations": iterations, "amount": amount}

    @r_workload.get("/status")
    async def workload_status(request: Request):
        state: WorkloadState = request.app.state.workload
        progress = asdict(state.orchestrator.progress) if state.orchestrator else None
        return {
            "running": state.running,
            "progress": progress,
            "result": state.last_result.to_dict() if state.last_result else None,
            "error": state.error,
            "uptime_seconds": perf_counter() - state.started_at if state.started_at else 0,
        }

    app.include_router(r_state)
    app.include_router(r_workload)
    return app
