import asyncio
from datetime import datetime

from aiohttp import web
from loguru import logger


def _status_error(code: int, message: str) -> web.Response:
    return web.json_response(
        {"kind": "Status", "status": "Failure", "message": message, "code": code},
        status=code,
    )


class FakeKubeApi:
    """Serves one job through the slice of the Kubernetes API the waiter reads.

    The job starts on the first request, keeps its container in
    ContainerCreating for `creating_time` seconds, then runs until
    `completion_time` and ends with `outcome` (`complete`, `fail` or
    `deadline`). With `image_pull_error` the container never starts. Log
    tail reads answer after `log_delay` seconds.
    """

    def __init__(
        self,
        job_name: str = "hello",
        namespace: str = "default",
        completion_time: float = 2.0,
        creating_time: float = 0.0,
        outcome: str = "complete",
        image_pull_error: bool = False,
        backoff_limit: int = 6,
        log_delay: float = 0.0,
    ):
        self.job_name = job_name
        self.namespace = namespace
        self.pod_name = f"{job_name}-x7k2p"
        self.completion_time = completion_time
        self.creating_time = creating_time
        self.outcome = outcome
        self.image_pull_error = image_pull_error
        self.backoff_limit = backoff_limit
        self.log_delay = log_delay
        self.start_time = None
        self.follow_requests = 0
        self.open_streams = 0
        self.app = web.Application()
        self.app.router.add_get(
            "/apis/batch/v1/namespaces/{namespace}/jobs/{name}", self.handle_job
        )
        self.app.router.add_get("/api/v1/namespaces/{namespace}/pods", self.handle_pods)
        self.app.router.add_get(
            "/api/v1/namespaces/{namespace}/pods/{pod}/log", self.handle_log
        )
        self.runner = None
        self.logger = logger

    def _elapsed(self) -> float:
        if self.start_time is None:
            self.start_time = datetime.now()
        return (datetime.now() - self.start_time).total_seconds()

    def _finished(self) -> bool:
        return not self.image_pull_error and self._elapsed() >= self.completion_time

    def _job_status(self) -> dict:
        if not self._finished():
            return {"active": 1, "startTime": "2026-01-01T00:00:00Z"}
        if self.outcome == "fail":
            return {
                "failed": self.backoff_limit,
                "conditions": [
                    {"type": "Failed", "status": "True", "reason": "BackoffLimitExceeded"}
                ],
            }
        if self.outcome == "deadline":
            return {
                "failed": 1,
                "conditions": [
                    {"type": "Failed", "status": "True", "reason": "DeadlineExceeded"}
                ],
            }
        return {
            "succeeded": 1,
            "conditions": [{"type": "Complete", "status": "True"}],
        }

    def _container_waiting_reason(self):
        if self.image_pull_error:
            return "image can't be pulled"
        if self._elapsed() < self.creating_time:
            return "ContainerCreating"
        return None

    async def handle_job(self, request):
        name = request.match_info["name"]
        if name != self.job_name or request.match_info["namespace"] != self.namespace:
            return _status_error(404, f'jobs.batch "{name}" not found')

        status = self._job_status()
        self.logger.info(f"Returning job status {status}")
        return web.json_response(
            {
                "apiVersion": "batch/v1",
                "kind": "Job",
                "metadata": {"name": self.job_name, "namespace": self.namespace},
                "spec": {"completions": 1, "parallelism": 1, "backoffLimit": self.backoff_limit},
                "status": status,
            }
        )

    async def handle_pods(self, request):
        items = []
        if request.query.get("labelSelector") == f"job-name={self.job_name}":
            items.append(
                {
                    "metadata": {
                        "name": self.pod_name,
                        "creationTimestamp": "2026-01-01T00:00:00Z",
                        "labels": {"job-name": self.job_name},
                    }
                }
            )
        return web.json_response({"kind": "PodList", "items": items})

    async def handle_log(self, request):
        pod = request.match_info["pod"]
        if pod != self.pod_name:
            return _status_error(404, f'pods "{pod}" not found')

        reason = self._container_waiting_reason()
        if reason is not None:
            return _status_error(
                400,
                f'container "main" in pod "{pod}" is waiting to start: {reason}',
            )

        if request.query.get("follow") != "true":
            await asyncio.sleep(self.log_delay)
            return web.Response(text="working\n")

        self.follow_requests += 1
        self.open_streams += 1
        response = web.StreamResponse()
        response.content_type = "text/plain"
        await response.prepare(request)
        try:
            line = 0
            while not self._finished():
                line += 1
                await response.write(f"line {line}\n".encode())
                await asyncio.sleep(0.1)
        finally:
            self.open_streams -= 1
        return response

    async def start(self, port: int = 8001):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Fake Kubernetes API started on port {port}")
        return site

    async def stop(self):
        if self.runner is not None:
            await self.runner.cleanup()
