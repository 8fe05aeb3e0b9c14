from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from kube_job_waiter.kube_api_client import KubeApiClient
from kube_job_waiter.kubectl_client import KubectlClient
from kube_job_waiter.models import WaitConfig
from kube_job_waiter.orchestrator import OrchestratorClient


class SettingsLoadError(RuntimeError):
    """Raised when settings cannot be loaded or validated."""


class WaiterSettings(BaseSettings):
    """Runtime settings, read from `KUBE_JOB_WAITER_*` variables and `.env`.

    Attributes:
        backend: `kubectl` runs the kubectl binary, `api` talks HTTP to the API server.
        kubectl_path: kubectl executable.
        namespace: Namespace of the job; kubectl uses its current one when unset.
        context: kubeconfig context for kubectl.
        api_url: API server URL, `kubectl proxy` by default.
        api_token: Bearer token for the API server.
        verify_ssl: Verify the API server certificate.
        api_request_timeout: Seconds before a single API request is abandoned.
        poll_interval: Seconds between two polls.
        timeout: Give up after this many seconds; unset waits forever.
        follow_logs: Stream the job's output while it runs.
        log_level: Level of the stderr log sink.
    """

    model_config = SettingsConfigDict(
        env_prefix="KUBE_JOB_WAITER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    backend: Literal["kubectl", "api"] = Field(default="kubectl")
    kubectl_path: str = Field(default="kubectl", min_length=1)
    namespace: Optional[str] = Field(default=None)
    context: Optional[str] = Field(default=None)
    api_url: str = Field(default="http://127.0.0.1:8001", min_length=1)
    api_token: Optional[str] = Field(default=None)
    verify_ssl: bool = Field(default=True)
    api_request_timeout: float = Field(default=30.0, gt=0)
    poll_interval: float = Field(default=1.0, gt=0)
    timeout: Optional[float] = Field(default=None, gt=0)
    follow_logs: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    def wait_config(self) -> WaitConfig:
        return WaitConfig(
            poll_interval=self.poll_interval,
            follow_logs=self.follow_logs,
            timeout=self.timeout,
        )

    def build_client(self) -> OrchestratorClient:
        if self.backend == "api":
            return KubeApiClient(
                base_url=self.api_url,
                namespace=self.namespace or "default",
                token=self.api_token,
                verify_ssl=self.verify_ssl,
                request_timeout=self.api_request_timeout,
            )
        return KubectlClient(
            kubectl_path=self.kubectl_path,
            namespace=self.namespace,
            context=self.context,
        )


def load_settings(**overrides) -> WaiterSettings:
    """Loads settings from the environment, with explicit values taking precedence.

    Raises:
        SettingsLoadError: If a value fails validation.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return WaiterSettings(**values)
    except ValidationError as exc:
        raise SettingsLoadError(f"Invalid settings: {exc}") from exc
