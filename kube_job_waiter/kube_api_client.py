import asyncio
import sys
from typing import Any, Callable, Optional

import aiohttp
from loguru import logger
from kube_job_waiter.errors import JobNotFoundError, OrchestratorError
from kube_job_waiter.models import ContainerDiagnostic, JobSnapshot
from kube_job_waiter.orchestrator import OrchestratorClient, StreamHandle


def _write_stdout(line: str) -> None:
    sys.stdout.write(line)
    sys.stdout.flush()


class TaskStreamHandle(StreamHandle):
    """A background task copying a followed log response into a sink"""

    def __init__(self, task: asyncio.Task):
        self.task = task

    @property
    def active(self) -> bool:
        return not self.task.done()

    async def cancel(self) -> None:
        if not self.task.done():
            self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass


class KubeApiClient(OrchestratorClient):
    """Talks to the Kubernetes REST API, for instance through `kubectl proxy`"""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8001",
        namespace: str = "default",
        token: Optional[str] = None,
        verify_ssl: bool = True,
        log_sink: Optional[Callable[[str], Any]] = None,
        request_timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.namespace = namespace
        self.token = token
        self.verify_ssl = verify_ssl
        self.log_sink = log_sink or _write_stdout
        self.request_timeout = request_timeout
        self.logger = logger
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                connector=aiohttp.TCPConnector(ssl=self.verify_ssl),
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _job_url(self, job_name: str) -> str:
        return f"{self.base_url}/apis/batch/v1/namespaces/{self.namespace}/jobs/{job_name}"

    def _pods_url(self) -> str:
        return f"{self.base_url}/api/v1/namespaces/{self.namespace}/pods"

    @staticmethod
    async def _error_message(response: aiohttp.ClientResponse) -> str:
        """Extracts the message of a Kubernetes Status body, or the raw text"""
        text = await response.text()
        try:
            data = await response.json(content_type=None)
        except ValueError:
            return text
        if isinstance(data, dict) and data.get("message"):
            return data["message"]
        return text

    async def get_job_info(self, job_name: str) -> JobSnapshot:
        url = self._job_url(job_name)
        try:
            async with self._get_session().get(url) as response:
                if response.status == 404:
                    raise JobNotFoundError(job_name, await self._error_message(response))
                if response.status >= 400:
                    message = await self._error_message(response)
                    self.logger.error(f"HTTP error {response.status} at {url}: {message}")
                    raise OrchestratorError(f"HTTP error {response.status} at {url}: {message}")
                manifest = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise OrchestratorError(f"Cannot reach {url}: {e}") from e
        return JobSnapshot.from_manifest(manifest)

    async def _primary_pod(self, job_name: str) -> Optional[str]:
        """Name of the newest pod created for the job"""
        params = {"labelSelector": f"job-name={job_name}"}
        async with self._get_session().get(self._pods_url(), params=params) as response:
            response.raise_for_status()
            data = await response.json()

        pods = data.get("items") or []
        if not pods:
            return None
        newest = max(pods, key=lambda pod: pod["metadata"].get("creationTimestamp") or "")
        return newest["metadata"]["name"]

    async def probe_container(self, job_name: str) -> ContainerDiagnostic:
        try:
            pod_name = await self._primary_pod(job_name)
            if pod_name is None:
                return ContainerDiagnostic(ok=False, output=f"no pods found for job/{job_name}")

            url = f"{self._pods_url()}/{pod_name}/log"
            async with self._get_session().get(url, params={"tailLines": "1"}) as response:
                if response.status >= 400:
                    return ContainerDiagnostic(ok=False, output=await self._error_message(response))
                return ContainerDiagnostic(ok=True, output=await response.text())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            output = str(e) or f"{type(e).__name__} after {self.request_timeout}s"
            return ContainerDiagnostic(ok=False, output=output)

    async def _copy_logs(self, url: str) -> None:
        async with self._get_session().get(
            url,
            params={"follow": "true"},
            timeout=aiohttp.ClientTimeout(total=None, sock_read=None),
        ) as response:
            response.raise_for_status()
            async for line in response.content:
                self.log_sink(line.decode(errors="replace"))

    async def _follow(self, job_name: str, url: str) -> None:
        try:
            await self._copy_logs(url)
        except aiohttp.ClientError as e:
            self.logger.warning(f"Log stream of job/{job_name} ended: {e}")

    async def stream_logs(self, job_name: str) -> StreamHandle:
        try:
            pod_name = await self._primary_pod(job_name)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise OrchestratorError(f"Cannot list pods of job/{job_name}: {e}") from e
        if pod_name is None:
            raise OrchestratorError(f"No pods found for job/{job_name}")

        url = f"{self._pods_url()}/{pod_name}/log"
        return TaskStreamHandle(asyncio.create_task(self._follow(job_name, url)))
