import pytest
from kube_job_waiter import cli
from kube_job_waiter.errors import JobNotFoundError
from kube_job_waiter.kube_api_client import KubeApiClient
from kube_job_waiter.kubectl_client import KubectlClient
from kube_job_waiter.models import WaitOutcome, WaitResult
from kube_job_waiter.settings import WaiterSettings, load_settings, SettingsLoadError


@pytest.fixture
def waited(monkeypatch):
    """Replace the actual wait with a recorder that resolves to `waited.outcome`."""

    class Recorder:
        outcome = WaitOutcome.completed
        error = None
        settings = None

    async def fake_wait_for_job(settings, job_name):
        Recorder.settings = settings
        if Recorder.error is not None:
            raise Recorder.error
        return WaitResult(job_name=job_name, outcome=Recorder.outcome, elapsed_time=0.1, ticks=1)

    monkeypatch.setattr(cli, "wait_for_job", fake_wait_for_job)
    return Recorder


def test_missing_job_name(waited, capsys):
    assert cli.main([]) == 1

    assert "job release name not specified" in capsys.readouterr().err
    assert waited.settings is None


@pytest.mark.parametrize(
    "outcome, exit_code",
    [
        (WaitOutcome.completed, 0),
        (WaitOutcome.failed, 1),
        (WaitOutcome.deadline_exceeded, 1),
        (WaitOutcome.err_image_pull, 1),
        (WaitOutcome.running, 1),
    ],
)
def test_exit_code_follows_outcome(waited, capsys, outcome, exit_code):
    waited.outcome = outcome

    assert cli.main(["hello"]) == exit_code
    assert capsys.readouterr().out.strip() == f"job/hello status: {outcome.value}"


def test_job_not_found(waited, capsys):
    waited.error = JobNotFoundError("hello")

    assert cli.main(["hello"]) == 1
    assert "status:" not in capsys.readouterr().out


def test_options_override_settings(waited):
    cli.main(
        [
            "hello",
            "--namespace",
            "batch",
            "--backend",
            "api",
            "--api-url",
            "http://localhost:9000",
            "--poll-interval",
            "0.5",
            "--timeout",
            "30",
            "--no-logs",
        ]
    )

    settings = waited.settings
    assert settings.namespace == "batch"
    assert settings.backend == "api"
    assert settings.api_url == "http://localhost:9000"
    assert settings.wait_config().poll_interval == 0.5
    assert settings.wait_config().timeout == 30.0
    assert settings.follow_logs is False


def test_logs_followed_by_default(waited):
    cli.main(["hello"])
    assert waited.settings.follow_logs is True


def test_invalid_poll_interval(waited, capsys):
    assert cli.main(["hello", "--poll-interval", "0"]) == 1
    assert "Invalid settings" in capsys.readouterr().err
    assert waited.settings is None


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("KUBE_JOB_WAITER_NAMESPACE", "batch")
    monkeypatch.setenv("KUBE_JOB_WAITER_POLL_INTERVAL", "2.5")

    settings = load_settings()

    assert settings.namespace == "batch"
    assert settings.poll_interval == 2.5


def test_invalid_backend():
    with pytest.raises(SettingsLoadError):
        load_settings(backend="docker")


def test_build_client_for_each_backend():
    kubectl = WaiterSettings(namespace="batch", context="staging").build_client()
    api = WaiterSettings(backend="api", api_url="http://localhost:9000/").build_client()

    assert isinstance(kubectl, KubectlClient)
    assert (kubectl.namespace, kubectl.context) == ("batch", "staging")
    assert isinstance(api, KubeApiClient)
    assert api.base_url == "http://localhost:9000"
    assert api.namespace == "default"
