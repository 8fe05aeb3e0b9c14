class JobWaiterError(Exception):
    """Base class for errors raised while waiting on a job"""


class MissingJobNameError(JobWaiterError, ValueError):
    def __init__(self):
        super().__init__("job release name not specified")


class OrchestratorError(JobWaiterError):
    """The orchestrator could not answer a query about the job"""


class JobNotFoundError(OrchestratorError):
    def __init__(self, job_name: str, detail: str = ""):
        self.job_name = job_name
        message = f"job/{job_name} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class JobWaitTimeoutError(JobWaiterError, TimeoutError):
    def __init__(self, job_name: str, timeout: float):
        self.job_name = job_name
        self.timeout = timeout
        super().__init__(f"job/{job_name} did not complete within {timeout} seconds")
