import asyncio
from typing import Any, Callable, Optional

from loguru import logger
from kube_job_waiter.classifier import classify, classify_container
from kube_job_waiter.errors import (
    JobWaitTimeoutError,
    MissingJobNameError,
    OrchestratorError,
)
from kube_job_waiter.models import (
    ContainerState,
    JobStatus,
    WaitConfig,
    WaitOutcome,
    WaitResult,
)
from kube_job_waiter.orchestrator import OrchestratorClient, StreamHandle


class PollSession:
    """State of one wait. Leaving the context always stops the log stream."""

    def __init__(self, client: OrchestratorClient, job_name: str, follow_logs: bool):
        self.client = client
        self.job_name = job_name
        self.follow_logs = follow_logs
        self.container_state: Optional[ContainerState] = None
        self.last_status: Optional[JobStatus] = None
        self.log_stream: Optional[StreamHandle] = None
        self.ticks = 0
        self.logger = logger

    @property
    def logging_active(self) -> bool:
        return self.log_stream is not None

    async def start_logging(self) -> None:
        if self.log_stream is not None:
            return
        self.logger.debug(f"Following logs of job/{self.job_name}")
        self.log_stream = await self.client.stream_logs(self.job_name)

    async def stop_logging(self) -> None:
        stream, self.log_stream = self.log_stream, None
        if stream is not None:
            self.logger.debug(f"Stopping log stream of job/{self.job_name}")
            await stream.cancel()

    async def __aenter__(self) -> "PollSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop_logging()


class JobWaiter:
    def __init__(
        self,
        client: OrchestratorClient,
        config: Optional[WaitConfig] = None,
        on_status_change: Optional[Callable[[JobStatus], Any]] = None,
    ):
        self.client = client
        self.config = config or WaitConfig()
        self.logger = logger
        self.on_status_change = on_status_change

    async def _handle_status_change(self, session: PollSession, status: JobStatus) -> None:
        """Invoke the status change callback if the status has changed"""
        if session.last_status != status:
            self.logger.debug(f"job/{session.job_name} status changed to {status.value}")
            if self.on_status_change is not None:
                await self.on_status_change(status)
        session.last_status = status

    async def _probe_container(self, session: PollSession) -> ContainerState:
        diagnostic = await self.client.probe_container(session.job_name)
        state = classify_container(diagnostic)
        if state == ContainerState.unknown:
            self.logger.debug(
                f"Unrecognized container state for job/{session.job_name}: {diagnostic.output.strip()}"
            )
        return state

    async def _tick(self, session: PollSession) -> Optional[WaitOutcome]:
        """Runs one poll. Returns the outcome once the wait is over."""
        session.ticks += 1
        snapshot = await self.client.get_job_info(session.job_name)
        status = classify(snapshot)
        await self._handle_status_change(session, status)

        if status.is_terminal:
            return WaitOutcome.from_job_status(status)

        if status != JobStatus.running:
            return None

        if session.container_state != ContainerState.running:
            session.container_state = await self._probe_container(session)

        if session.container_state == ContainerState.err_image_pull:
            return WaitOutcome.err_image_pull

        if session.container_state == ContainerState.running and session.follow_logs:
            try:
                await session.start_logging()
            except OrchestratorError as e:
                # retried on the next Running tick
                self.logger.warning(f"Cannot follow logs of job/{session.job_name}: {e}")

        return None

    async def _poll(self, session: PollSession) -> WaitOutcome:
        loop = asyncio.get_event_loop()
        deadline = None
        if self.config.timeout is not None:
            deadline = loop.time() + self.config.timeout

        while deadline is None or loop.time() < deadline:
            outcome = await self._tick(session)
            if outcome is not None:
                return outcome
            self.logger.debug(
                f"job/{session.job_name} still {session.last_status.value}, "
                f"waiting {self.config.poll_interval:.2f}s before next poll"
            )
            await asyncio.sleep(self.config.poll_interval)

        raise JobWaitTimeoutError(session.job_name, self.config.timeout)

    async def run_to_completion(
        self, job_name: Optional[str], follow_logs: Optional[bool] = None
    ) -> WaitResult:
        """Poll the job until it completes, fails, or its image cannot be pulled"""
        if not job_name:
            raise MissingJobNameError()

        if follow_logs is None:
            follow_logs = self.config.follow_logs

        start_time = asyncio.get_event_loop().time()

        try:
            async with PollSession(self.client, job_name, follow_logs) as session:
                outcome = await self._poll(session)
        except OrchestratorError as e:
            self.logger.error(f"Error polling job/{job_name}: {e}")
            raise
        except JobWaitTimeoutError as e:
            self.logger.error(str(e))
            raise

        elapsed_time = asyncio.get_event_loop().time() - start_time
        self.logger.info(
            f"job/{job_name} resolved to {outcome.value} after {session.ticks} polls"
        )
        return WaitResult(
            job_name=job_name,
            outcome=outcome,
            elapsed_time=elapsed_time,
            ticks=session.ticks,
        )
