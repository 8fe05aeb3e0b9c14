import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger
from kube_job_waiter.errors import JobWaiterError, MissingJobNameError
from kube_job_waiter.job_waiter import JobWaiter
from kube_job_waiter.models import WaitResult
from kube_job_waiter.settings import SettingsLoadError, WaiterSettings, load_settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kube-job-waiter",
        description="Follow a Kubernetes job until it runs to completion. "
        "Exits with 0 if the job succeeded, 1 otherwise.",
    )
    parser.add_argument("job_name", nargs="?", help="Name of the job to wait for.")
    parser.add_argument("-n", "--namespace", help="Namespace of the job.")
    parser.add_argument("--context", help="kubeconfig context (kubectl backend).")
    parser.add_argument("--backend", choices=["kubectl", "api"])
    parser.add_argument("--api-url", help="API server URL (api backend).")
    parser.add_argument("--poll-interval", type=float, help="Seconds between polls.")
    parser.add_argument("--timeout", type=float, help="Give up after this many seconds.")
    parser.add_argument(
        "--no-logs",
        dest="follow_logs",
        action="store_false",
        default=None,
        help="Do not stream the job's output.",
    )
    parser.add_argument("--log-level", help="Log level, INFO by default.")
    return parser


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


async def wait_for_job(settings: WaiterSettings, job_name: Optional[str]) -> WaitResult:
    if not job_name:
        raise MissingJobNameError()
    async with settings.build_client() as client:
        waiter = JobWaiter(client, settings.wait_config())
        return await waiter.run_to_completion(job_name)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if not args.job_name:
        print(MissingJobNameError(), file=sys.stderr)
        return 1

    try:
        settings = load_settings(
            namespace=args.namespace,
            context=args.context,
            backend=args.backend,
            api_url=args.api_url,
            poll_interval=args.poll_interval,
            timeout=args.timeout,
            follow_logs=args.follow_logs,
            log_level=args.log_level,
        )
    except SettingsLoadError as e:
        print(e, file=sys.stderr)
        return 1

    try:
        configure_logging(settings.log_level)
    except ValueError as e:
        print(f"Invalid log level: {e}", file=sys.stderr)
        return 1

    try:
        result = asyncio.run(wait_for_job(settings, args.job_name))
    except JobWaiterError as e:
        logger.error(f"Waiting for job/{args.job_name} failed: {e}")
        return 1

    print(f"job/{result.job_name} status: {result.outcome.value}\n")
    return 0 if result.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
