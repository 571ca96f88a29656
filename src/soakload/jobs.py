from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TransferJob:
    sender: int
    recipient: int
    iteration: int


def generate_jobs(n: int, iterations: int) -> tuple[TransferJob, ...]:
    """Build the transfer schedule for ``n`` identities over ``iterations`` rounds.

    Each round every identity sends once, to the identity half the population away.
    For even ``n`` nobody sends to themselves and every identity receives exactly once
    per round.
    """
    if n <= 0:
        raise ValueError(f"need at least one identity, got {n}")
    if iterations < 0:
        raise ValueError(f"iterations must not be negative, got {iterations}")

    offset = n // 2
    return tuple(
        TransferJob(sender=s, recipient=(s + offset) % n, iteration=it)
        for it in range(iterations)
        for s in range(n)
    )
