"""
Upgrade monitoring for pravega clusters.

State machine over the Upgrading and Error conditions:
  - Error == True                                  -> FAILED, stop now
  - Upgrading == False and currentVersion == target -> SUCCEEDED
  - anything else (incl. Unknown/missing conditions) -> IN_PROGRESS

Upgrading can flip to False before currentVersion is persisted, so the
version must match too.
"""

import logging
from enum import Enum
from typing import Optional

from pravega_lifecycle.config import Timeouts
from pravega_lifecycle.errors import ReportedFailure
from pravega_lifecycle.models import (
    ClusterResource,
    ConditionStatus,
    ConditionType,
    ResourceRef,
)
from pravega_lifecycle.poller import poll_until
from pravega_lifecycle.services.kubernetes_service import ClusterClient

logger = logging.getLogger("upgrade")


class UpgradeState(str, Enum):
    SUCCEEDED = "Succeeded"
    IN_PROGRESS = "InProgress"
    FAILED = "Failed"


def evaluate_upgrade(resource: ClusterResource, target_version: str) -> UpgradeState:
    status = resource.status
    if status.condition(ConditionType.ERROR.value) == ConditionStatus.TRUE:
        return UpgradeState.FAILED
    if (status.condition(ConditionType.UPGRADING.value) == ConditionStatus.FALSE
            and status.currentVersion == target_version):
        return UpgradeState.SUCCEEDED
    return UpgradeState.IN_PROGRESS


def request_upgrade(client: ClusterClient, ref: ResourceRef, target_version: str) -> ClusterResource:
    """Set spec.version on the latest copy of the resource."""
    cluster = client.get(ref)
    current = cluster.spec.get("version")
    if current == target_version:
        logger.info(f"{ref} already at spec.version {target_version}")
        return cluster
    spec = dict(cluster.spec)
    spec["version"] = target_version
    logger.info(f"requesting upgrade of {ref}: {current} -> {target_version}")
    return client.update(cluster.model_copy(update={"spec": spec}))


def wait_for_upgrade(client: ClusterClient, ref: ResourceRef, target_version: str, timeouts: Timeouts,
                     timeout: Optional[float] = None) -> ClusterResource:
    """Wait until the cluster reports the target version with no upgrade in flight."""
    logger.info(f"waiting for cluster to upgrade: {ref}")

    def check(cluster: ClusterResource) -> bool:
        status = cluster.status
        logger.info(
            f"\twaiting for cluster to upgrade (upgrading: {status.condition(ConditionType.UPGRADING.value).value}; "
            f"error: {status.condition(ConditionType.ERROR.value).value}; "
            f"version: {status.currentVersion} -> {target_version})"
        )
        state = evaluate_upgrade(cluster, target_version)
        if state == UpgradeState.FAILED:
            error = status.get_condition(ConditionType.ERROR.value)
            raise ReportedFailure(error.reason or "UpgradeFailed", f"failed upgrading cluster: {error.message}",
                                  resource=str(ref))
        return state == UpgradeState.SUCCEEDED

    cluster = poll_until(
        lambda: client.get(ref),
        check,
        interval=timeouts.retry_interval,
        timeout=timeout or timeouts.for_operation("upgrade"),
        what=f"upgrade: {ref}",
    )
    logger.info(f"cluster upgraded: {ref}")
    return cluster
