"""
Rolling-restart verification after a configuration change.

Every selected pod must be seen not-ready at least once, and then every pod
must be ready again. The ready phase works from a fresh listing, since a
Deployment replaces its pods under new names. A pod that restarts faster
than the poll interval can slip through unnoticed and will then fail the
first phase; an aggregate rollout condition from the reconciler would be
the precise signal.
"""

import logging
from typing import Optional

from pravega_lifecycle.config import Timeouts
from pravega_lifecycle.errors import ReportedFailure, TimedOut
from pravega_lifecycle.models import PodSummary
from pravega_lifecycle.poller import poll_until
from pravega_lifecycle.services.kubernetes_service import ClusterClient

logger = logging.getLogger("rolling_restart")


def _wait_pod(client: ClusterClient, namespace: str, name: str, want_ready: bool,
              timeouts: Timeouts) -> Optional[PodSummary]:
    state = "ready" if want_ready else "not ready"

    # A missing pod is being recreated: not ready either way
    def check(pod: Optional[PodSummary]) -> bool:
        ready = pod is not None and pod.ready
        return ready == want_ready

    try:
        return poll_until(
            lambda: client.find_pod(namespace, name),
            check,
            interval=timeouts.restart_interval,
            timeout=timeouts.for_operation("restart"),
            what=f"pod {state}: {namespace}/{name}",
        )
    except TimedOut as e:
        raise ReportedFailure(
            "RestartStalled",
            f"pod {name} did not become {state} within {e.timeout:g}s",
            resource=f"{namespace}/{name}",
        ) from e


def wait_for_rolling_restart(client: ClusterClient, namespace: str, label_selector: str, timeouts: Timeouts):
    """Wait for every selected pod to go not-ready and then ready again."""
    logger.info(f"waiting for pods to restart: {namespace}/{label_selector}")

    names = [p.name for p in client.list_pods(namespace, label_selector)]
    for name in names:
        logger.info(f"waiting for pod to terminate: {name}")
        _wait_pod(client, namespace, name, want_ready=False, timeouts=timeouts)

    # Replacements may come back under new names; wait for the count, then use the fresh listing
    expected = len(names)
    try:
        listed = poll_until(
            lambda: client.list_pods(namespace, label_selector),
            lambda found: len(found) >= expected,
            interval=timeouts.restart_interval,
            timeout=timeouts.for_operation("restart"),
            what=f"pod recreation: {namespace}/{label_selector}",
        )
    except TimedOut as e:
        found = len(e.last_observed or [])
        raise ReportedFailure(
            "RestartStalled",
            f"only {found}/{expected} pod(s) listed after {e.timeout:g}s",
            resource=f"{namespace}/{label_selector}",
        ) from e

    pods = []
    for name in [p.name for p in listed]:
        logger.info(f"waiting for pod to become ready: {name}")
        pods.append(_wait_pod(client, namespace, name, want_ready=True, timeouts=timeouts))

    logger.info(f"all {len(pods)} pod(s) restarted: {namespace}/{label_selector}")
    return pods
