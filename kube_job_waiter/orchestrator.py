from abc import ABC, abstractmethod

from kube_job_waiter.models import ContainerDiagnostic, JobSnapshot


class StreamHandle(ABC):
    """A running log stream. Only its owner may cancel it."""

    @property
    @abstractmethod
    def active(self) -> bool:
        """True until the stream ends or is cancelled."""

    @abstractmethod
    async def cancel(self) -> None:
        """Stop the stream. Calling it again is a no-op."""


class OrchestratorClient(ABC):
    """The three queries the waiter makes against the orchestrator."""

    @abstractmethod
    async def get_job_info(self, job_name: str) -> JobSnapshot:
        """Raises JobNotFoundError if the job does not exist."""

    @abstractmethod
    async def probe_container(self, job_name: str) -> ContainerDiagnostic:
        """Reads the last line of the job's primary container output."""

    @abstractmethod
    async def stream_logs(self, job_name: str) -> StreamHandle:
        """Starts following the logs of the job's primary container."""

    async def close(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
