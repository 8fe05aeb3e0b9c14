import asyncio

from fake_kube_api import FakeKubeApi
from kube_job_waiter.job_waiter import JobWaiter
from kube_job_waiter.kube_api_client import KubeApiClient
from kube_job_waiter.models import WaitConfig


async def status_changed(status):
    print(f"Status changed to: {status.value}")


async def main():
    PORT = 8001
    server = FakeKubeApi(job_name="hello", completion_time=5.0, creating_time=2.0)
    await server.start(port=PORT)
    print(f"Fake Kubernetes API started on http://localhost:{PORT}")

    config = WaitConfig(poll_interval=1.0, follow_logs=True, timeout=60.0)

    async with KubeApiClient(f"http://localhost:{PORT}") as client:
        waiter = JobWaiter(client, config, on_status_change=status_changed)
        try:
            result = await waiter.run_to_completion("hello")
            print(f"job/{result.job_name} status: {result.outcome.value}")
            print(f"Total time: {result.elapsed_time:.6f}s over {result.ticks} polls")
        except TimeoutError as e:
            print(f"Waiting timed out: {e}")
        except Exception as e:
            print(f"Error occurred: {e}")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
