import asyncio
import json
import signal
from typing import List, Optional, Tuple

from loguru import logger
from kube_job_waiter.errors import JobNotFoundError, OrchestratorError
from kube_job_waiter.models import ContainerDiagnostic, JobSnapshot
from kube_job_waiter.orchestrator import OrchestratorClient, StreamHandle


class ProcessStreamHandle(StreamHandle):
    """A `kubectl logs -f` subprocess writing to our stdout"""

    def __init__(self, process: asyncio.subprocess.Process):
        self.process = process

    @property
    def active(self) -> bool:
        return self.process.returncode is None

    async def cancel(self) -> None:
        if self.process.returncode is None:
            try:
                self.process.send_signal(signal.SIGKILL)
            except ProcessLookupError:
                pass
        await self.process.wait()


class KubectlClient(OrchestratorClient):
    def __init__(
        self,
        kubectl_path: str = "kubectl",
        namespace: Optional[str] = None,
        context: Optional[str] = None,
    ):
        self.kubectl_path = kubectl_path
        self.namespace = namespace
        self.context = context
        self.logger = logger

    def _command(self, *args: str) -> List[str]:
        command = [self.kubectl_path]
        if self.context:
            command += ["--context", self.context]
        if self.namespace:
            command += ["--namespace", self.namespace]
        return command + list(args)

    async def _run(self, *args: str) -> Tuple[int, str, str]:
        command = self._command(*args)
        self.logger.trace(f"Running {' '.join(command)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise OrchestratorError(f"Cannot run {self.kubectl_path}: {e}") from e
        stdout, stderr = await process.communicate()
        return process.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")

    async def get_job_info(self, job_name: str) -> JobSnapshot:
        returncode, stdout, stderr = await self._run("get", f"jobs/{job_name}", "-o", "json")
        if returncode != 0:
            if "NotFound" in stderr or "not found" in stderr:
                raise JobNotFoundError(job_name, stderr.strip())
            raise OrchestratorError(
                f"kubectl get jobs/{job_name} exited with {returncode}: {stderr.strip()}"
            )
        try:
            manifest = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise OrchestratorError(f"Malformed job manifest for job/{job_name}: {e}") from e
        return JobSnapshot.from_manifest(manifest)

    async def probe_container(self, job_name: str) -> ContainerDiagnostic:
        # cheapest way to learn whether the container has started
        returncode, stdout, stderr = await self._run("logs", "--tail=1", f"job/{job_name}")
        if returncode == 0:
            return ContainerDiagnostic(ok=True, output=stdout)
        return ContainerDiagnostic(ok=False, output=stderr)

    async def stream_logs(self, job_name: str) -> StreamHandle:
        command = self._command("logs", "-f", f"job/{job_name}")
        try:
            # stdout and stderr are inherited from this process
            process = await asyncio.create_subprocess_exec(*command)
        except OSError as e:
            raise OrchestratorError(f"Cannot run {self.kubectl_path}: {e}") from e
        return ProcessStreamHandle(process)
