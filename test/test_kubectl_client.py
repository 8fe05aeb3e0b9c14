import os
import stat
import sys
import textwrap

import pytest
from kube_job_waiter.classifier import classify, classify_container
from kube_job_waiter.errors import JobNotFoundError, OrchestratorError
from kube_job_waiter.kubectl_client import KubectlClient
from kube_job_waiter.models import ContainerState, JobStatus

FAKE_KUBECTL = """\
#!{python}
import json
import os
import sys
import time

args = sys.argv[1:]
with open(os.environ["FAKE_KUBECTL_CALLS"], "a") as calls:
    calls.write(" ".join(args) + "\\n")

mode = os.environ.get("FAKE_KUBECTL_MODE", "running")

if "get" in args:
    if mode == "missing":
        sys.stderr.write('Error from server (NotFound): jobs.batch "hello" not found\\n')
        sys.exit(1)
    if mode == "unreachable":
        sys.stderr.write("Unable to connect to the server: dial tcp: i/o timeout\\n")
        sys.exit(1)
    manifest = {{
        "kind": "Job",
        "spec": {{"completions": 1, "backoffLimit": 4}},
        "status": {{"active": 1}},
    }}
    print(json.dumps(manifest))
    sys.exit(0)

if "-f" in args:
    time.sleep(60)
    sys.exit(0)

if mode == "image":
    sys.stderr.write(
        'Error from server (BadRequest): container "main" in pod "hello-x7k2p" '
        "is waiting to start: image can't be pulled\\n"
    )
    sys.exit(1)
if mode == "creating":
    sys.stderr.write(
        'Error from server (BadRequest): container "main" in pod "hello-x7k2p" '
        "is waiting to start: ContainerCreating\\n"
    )
    sys.exit(1)
print("hello")
"""


@pytest.fixture
def kubectl(tmp_path, monkeypatch):
    """Write an executable stand-in for kubectl and return its path."""
    path = tmp_path / "kubectl"
    path.write_text(textwrap.dedent(FAKE_KUBECTL.format(python=sys.executable)))
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    monkeypatch.setenv("FAKE_KUBECTL_CALLS", str(tmp_path / "calls.txt"))
    return str(path)


def recorded_calls():
    with open(os.environ["FAKE_KUBECTL_CALLS"]) as calls:
        return calls.read().splitlines()


@pytest.mark.asyncio
async def test_get_job_info(kubectl):
    client = KubectlClient(kubectl, namespace="batch", context="staging")
    snapshot = await client.get_job_info("hello")

    assert snapshot.active == 1
    assert snapshot.backoff_limit == 4
    assert classify(snapshot) == JobStatus.running
    assert recorded_calls() == [
        "--context staging --namespace batch get jobs/hello -o json"
    ]


@pytest.mark.asyncio
async def test_get_missing_job(kubectl, monkeypatch):
    monkeypatch.setenv("FAKE_KUBECTL_MODE", "missing")

    with pytest.raises(JobNotFoundError):
        await KubectlClient(kubectl).get_job_info("hello")


@pytest.mark.asyncio
async def test_get_job_with_unreachable_cluster(kubectl, monkeypatch):
    monkeypatch.setenv("FAKE_KUBECTL_MODE", "unreachable")

    with pytest.raises(OrchestratorError) as excinfo:
        await KubectlClient(kubectl).get_job_info("hello")
    assert not isinstance(excinfo.value, JobNotFoundError)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "mode, state",
    [
        ("running", ContainerState.running),
        ("creating", ContainerState.creating),
        ("image", ContainerState.err_image_pull),
    ],
)
async def test_probe_container(kubectl, monkeypatch, mode, state):
    monkeypatch.setenv("FAKE_KUBECTL_MODE", mode)

    diagnostic = await KubectlClient(kubectl).probe_container("hello")

    assert classify_container(diagnostic) == state
    assert recorded_calls() == ["logs --tail=1 job/hello"]


@pytest.mark.asyncio
async def test_stream_logs_can_be_cancelled_twice(kubectl):
    handle = await KubectlClient(kubectl).stream_logs("hello")
    assert handle.active

    await handle.cancel()
    assert not handle.active
    await handle.cancel()
    assert not handle.active


@pytest.mark.asyncio
async def test_missing_kubectl(tmp_path):
    client = KubectlClient(str(tmp_path / "no-such-kubectl"))

    with pytest.raises(OrchestratorError):
        await client.get_job_info("hello")
