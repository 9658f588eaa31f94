"""
Readiness and termination waits for cluster resources.

A cluster is ready only when its PodsReady condition is True AND the ready
replica count equals the expected size; a size match alone can be transient
during a rollout. An Error=True condition does not end a readiness wait
early: only PodsReady and the replica count are consulted, as the
operators' own readiness checks do, so a cluster reporting an error is
seen as a timeout. The upgrade monitor is where Error aborts immediately.
Termination means every pod and then every volume claim
selected by the cluster's labels is gone.
"""

import logging
from typing import List, Optional

from pravega_lifecycle.config import Timeouts
from pravega_lifecycle.models import (
    ClusterResource,
    ConditionStatus,
    ConditionType,
    ResourceKind,
    ResourceRef,
)
from pravega_lifecycle.poller import poll_until
from pravega_lifecycle.services.kubernetes_service import ClusterClient

logger = logging.getLogger("readiness")


def selector_for(kind: ResourceKind, name: str) -> str:
    """Label selector matching the pods and claims owned by a cluster."""
    if kind == ResourceKind.PRAVEGA:
        return f"app=pravega-cluster,pravega_cluster={name}"
    return f"app={name}"


def is_cluster_ready(resource: ClusterResource, size: int) -> bool:
    pods_ready = resource.status.condition(ConditionType.PODS_READY.value) == ConditionStatus.TRUE
    return pods_ready and resource.status.readyReplicas == size


def wait_for_cluster_ready(client: ClusterClient, ref: ResourceRef, size: int, timeouts: Timeouts,
                           timeout: Optional[float] = None) -> ClusterResource:
    """Wait until all cluster pods are ready at the expected size."""
    logger.info(f"waiting for cluster pods to become ready: {ref}")

    def check(cluster: ClusterResource) -> bool:
        logger.info(
            f"\twaiting for pods to become ready ({cluster.status.readyReplicas}/{size}), "
            f"pods ({cluster.status.ready_members})"
        )
        return is_cluster_ready(cluster, size)

    cluster = poll_until(
        lambda: client.get(ref),
        check,
        interval=timeouts.retry_interval,
        timeout=timeout or timeouts.for_operation("ready"),
        what=f"readiness: {ref}",
    )
    logger.info(f"cluster ready: {ref}")
    return cluster


# ---------------------------------------------------------------------------
# Termination verifier
# ---------------------------------------------------------------------------

def _none_left(kind: str):
    def check(names: List[str]) -> bool:
        logger.info(f"waiting for {kind} to terminate, remaining ({names})")
        return not names
    return check


def wait_for_gone(client: ClusterClient, namespace: str, label_selector: str, timeouts: Timeouts,
                  timeout: Optional[float] = None):
    """
    Wait until no pods and then no volume claims match the selector.

    Pods go first: claims are usually only released after the pods that
    mount them have terminated.
    """
    bound = timeout or timeouts.for_operation("terminate")
    poll_until(
        lambda: [p.name for p in client.list_pods(namespace, label_selector)],
        _none_left("pods"),
        interval=timeouts.retry_interval,
        timeout=bound,
        what=f"pod termination: {namespace}/{label_selector}",
    )
    poll_until(
        lambda: client.list_pvcs(namespace, label_selector),
        _none_left("pvcs"),
        interval=timeouts.retry_interval,
        timeout=bound,
        what=f"pvc termination: {namespace}/{label_selector}",
    )


def wait_for_cluster_to_terminate(client: ClusterClient, ref: ResourceRef, timeouts: Timeouts,
                                  timeout: Optional[float] = None):
    logger.info(f"waiting for cluster to terminate: {ref}")
    wait_for_gone(client, ref.namespace, selector_for(ref.kind, ref.name), timeouts, timeout)
    logger.info(f"cluster terminated: {ref}")
