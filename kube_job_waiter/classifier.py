import re

from kube_job_waiter.models import (
    ContainerDiagnostic,
    ContainerState,
    JobSnapshot,
    JobStatus,
)

IMAGE_PULL_ERROR = re.compile(
    r"image can't be pulled|trying and failing to pull image|ErrImagePull|ImagePullBackOff"
)
CONTAINER_CREATING = re.compile(r"ContainerCreating|PodInitializing")


def _deadline_exceeded(snapshot: JobSnapshot) -> bool:
    return any(
        condition.type == "Failed" and condition.reason == "DeadlineExceeded"
        for condition in snapshot.conditions
    )


def classify(snapshot: JobSnapshot) -> JobStatus:
    """Derives the job status from its pods' completion counts and conditions.

    Rules are checked in order and the first match wins: enough successful
    completions, then exhausted backoff limit, then an active deadline
    failure, then active pods.
    """
    if snapshot.succeeded >= snapshot.completions:
        return JobStatus.completed
    if snapshot.failed >= snapshot.backoff_limit:
        return JobStatus.failed
    if _deadline_exceeded(snapshot):
        return JobStatus.deadline_exceeded
    if snapshot.active > 0:
        return JobStatus.running
    return JobStatus.unknown


def classify_container(diagnostic: ContainerDiagnostic) -> ContainerState:
    """Maps the outcome of a container log probe to a container state"""
    if diagnostic.ok:
        return ContainerState.running
    if IMAGE_PULL_ERROR.search(diagnostic.output):
        return ContainerState.err_image_pull
    if CONTAINER_CREATING.search(diagnostic.output):
        return ContainerState.creating
    return ContainerState.unknown
