"""
Verification job dispatch.

A job that finished is not necessarily a job that succeeded: completion is
read from completionTime, success from the failed counter.
"""

import logging
from typing import Optional

from pravega_lifecycle.config import Settings, Timeouts
from pravega_lifecycle.errors import ReportedFailure
from pravega_lifecycle.manifests import controller_service_name, write_read_job
from pravega_lifecycle.models import JobStatus, ResourceRef
from pravega_lifecycle.poller import poll_until
from pravega_lifecycle.services.kubernetes_service import CleanupPolicy, ClusterClient

logger = logging.getLogger("verification")


def run_and_await(client: ClusterClient, job: dict, timeouts: Timeouts,
                  timeout: Optional[float] = None, cleanup: Optional[CleanupPolicy] = None) -> JobStatus:
    """Submit a one-shot job and wait for it to complete without failures."""
    namespace = job["metadata"]["namespace"]
    name = job["metadata"]["name"]
    client.create_job(namespace, job, cleanup=cleanup)

    def check(status: JobStatus) -> bool:
        if not status.completed:
            return False
        if status.failed > 0:
            raise ReportedFailure(
                "JobFailed",
                f"job completed with {status.failed} failed attempt(s)",
                resource=f"{namespace}/{name}",
            )
        return True

    status = poll_until(
        lambda: client.get_job(namespace, name),
        check,
        interval=timeouts.retry_interval,
        timeout=timeout or timeouts.for_operation("verify"),
        what=f"job completion: {namespace}/{name}",
    )
    logger.info(f"job {namespace}/{name} completed (succeeded={status.succeeded})")
    return status


def write_and_read_data(client: ClusterClient, ref: ResourceRef, settings: Settings,
                        cleanup: Optional[CleanupPolicy] = None) -> JobStatus:
    """Write sample data to a pravega cluster and read it back."""
    logger.info(f"writing and reading data from pravega cluster: {ref}")
    job = write_read_job(settings, ref.namespace, controller_service_name(ref.name))
    status = run_and_await(client, job, settings.timeouts, cleanup=cleanup)
    logger.info(f"pravega cluster validated: {ref}")
    return status
