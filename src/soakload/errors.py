"""Exception taxonomy for the workload.

Gateways raise ``SubmissionRejected`` or ``TransportError``. The identity handle
compensates its nonce and re-raises as ``SubmissionFailed`` chained to the cause,
which is the only failure the orchestrator counts instead of propagating.
"""


class WorkloadError(Exception):
    """Base class for every error raised by soakload."""


class ConfigError(WorkloadError):
    """Configuration value missing or out of range."""


class ArtifactError(WorkloadError):
    """Class artifact could not be read or is malformed."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class SubmissionRejected(WorkloadError):
    """The remote endpoint declined the operation."""

    def __init__(self, engine_result: str, message: str | None = None):
        self.engine_result = engine_result
        super().__init__(message or f"rejected: {engine_result}")


class TransportError(WorkloadError):
    """The remote endpoint could not be reached or did not answer in time."""


class SubmissionFailed(WorkloadError):
    """An identity's operation failed after its nonce was compensated.

    The original cause is always available as ``__cause__``.
    """

    def __init__(self, address: str, operation: str, nonce: int):
        self.address = address
        self.operation = operation
        self.nonce = nonce
        super().__init__(f"{operation} from {address} nonce={nonce} failed")

    def __str__(self) -> str:
        base = super().__str__()
        if self.__cause__ is not None:
            return f"{base}: {self.__cause__}"
        return base
