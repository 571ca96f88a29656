import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, field
from time import perf_counter

import soakload.constants as C
from soakload.config import WorkloadConfig
from soakload.errors import SubmissionFailed
from soakload.identity import IdentityHandle
from soakload.jobs import TransferJob, generate_jobs

log = logging.getLogger("soakload.orchestrator")


def _rate(count: int, elapsed: float) -> float:
    return count / elapsed if elapsed > 0 else 0.0


@dataclass(slots=True)
class RunResult:
    success_count: int = 0
    failure_count: int = 0
    elapsed: float = 0.0  # seconds

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    @property
    def tps(self) -> float:
        return _rate(self.total, self.elapsed)

    def to_dict(self) -> dict:
        return {**asdict(self), "total": self.total, "tps": round(self.tps, 2)}


@dataclass(frozen=True, slots=True)
class SliceReport:
    index: int
    size: int
    success: int
    failure: int
    elapsed: float

    @property
    def tps(self) -> float:
        return _rate(self.size, self.elapsed)


@dataclass(slots=True)
class JobOutcome:
    job: TransferJob
    tx_id: str | None = None
    error: SubmissionFailed | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class RunProgress:
    slices_total: int = 0
    slices_done: int = 0
    success: int = 0
    failure: int = 0
    last_slice_tps: float = 0.0
    started_at: float | None = field(default=None)


SliceObserver = Callable[[SliceReport], None]


class BatchOrchestrator:
    """Drives a transfer schedule through identity handles one slice at a time.

    A slice holds at most ``concurrency`` jobs which all run concurrently; the next
    slice starts only when every job of the current one has resolved. Failed jobs are
    counted and logged, never fatal, and the whole schedule is always drained.
    """

    def __init__(
        self,
        config: WorkloadConfig,
        *,
        asset: str = C.NATIVE_ASSET,
        amount: int = C.DEFAULT_TRANSFER_AMOUNT,
        on_slice: SliceObserver | None = None,
    ):
        self.config = config
        self.asset = asset
        self.amount = amount
        self.on_slice = on_slice
        self.progress = RunProgress()

    async def run(self, identities: Sequence[IdentityHandle], concurrency: int, iterations: int) -> RunResult:
        jobs = generate_jobs(len(identities), iterations)
        log.info(
            "Starting transfers with %s accounts, %s iterations (chain_id=%s max_fee=%s)",
            len(identities), iterations, self.config.chain_id, self.config.max_fee,
        )
        return await self.run_jobs(jobs, identities, concurrency)

    async def run_jobs(
        self,
        jobs: Sequence[TransferJob],
        identities: Sequence[IdentityHandle],
        concurrency: int,
    ) -> RunResult:
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        total = len(jobs)
        n_slices = (total + concurrency - 1) // concurrency
        result = RunResult()
        self.progress = RunProgress(slices_total=n_slices, started_at=perf_counter())
        log.info("Prepared %s total transfers in %s slices of up to %s", total, n_slices, concurrency)

        start = perf_counter()
        for index in range(n_slices):
            batch = jobs[index * concurrency:(index + 1) * concurrency]
            log.debug("Processing slice %s/%s (%s transfers)...", index + 1, n_slices, len(batch))

            report = await self._run_slice(index, batch, identities)
            result.success_count += report.success
            result.failure_count += report.failure

            self.progress.slices_done += 1
            self.progress.success = result.success_count
            self.progress.failure = result.failure_count
            self.progress.last_slice_tps = report.tps
            log.info(
                "Slice %s/%s: %s/%s successful (%.1f TPS)",
                index + 1, n_slices, report.success, report.size, report.tps,
            )
            if self.on_slice is not None:
                self.on_slice(report)

        result.elapsed = perf_counter() - start
        log.info(
            "Transfers completed: %s/%s successful in %.2fs (%.1f TPS)",
            result.success_count, result.total, result.elapsed, result.tps,
        )
        return result

    async def _run_slice(
        self,
        index: int,
        batch: Sequence[TransferJob],
        identities: Sequence[IdentityHandle],
    ) -> SliceReport:
        slice_start = perf_counter()
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(self._run_job(job, identities)) for job in batch]
        elapsed = perf_counter() - slice_start

        success = sum(1 for t in tasks if t.result().ok)
        return SliceReport(index=index, size=len(batch), success=success, failure=len(batch) - success, elapsed=elapsed)

    async def _run_job(self, job: TransferJob, identities: Sequence[IdentityHandle]) -> JobOutcome:
        sender = identities[job.sender]
        recipient = identities[job.recipient]
        try:
            tx_id = await sender.transfer(self.asset, self.amount, recipient.address)
        except SubmissionFailed as e:
            log.warning("❌ Iter %s | %s->%s: %s", job.iteration + 1, job.sender, job.recipient, e)
            return JobOutcome(job, error=e)
        log.debug("✅ Iter %s | %s->%s: tx %s", job.iteration + 1, job.sender, job.recipient, tx_id)
        return JobOutcome(job, tx_id=tx_id)


async def run(
    identities: Sequence[IdentityHandle],
    concurrency: int,
    iterations: int,
    *,
    config: WorkloadConfig,
    asset: str = C.NATIVE_ASSET,
    amount: int = C.DEFAULT_TRANSFER_AMOUNT,
) -> RunResult:
    """Run the balanced transfer schedule over ``identities`` and return the aggregate."""
    orchestrator = BatchOrchestrator(config, asset=asset, amount=amount)
    return await orchestrator.run(identities, concurrency, iterations)


def format_summary(result: RunResult) -> str:
    return (
        f"Transfers completed: {result.success_count}/{result.total} successful "
        f"({result.failure_count} failed) in {result.elapsed:.2f}s ({result.tps:.1f} TPS)"
    )
