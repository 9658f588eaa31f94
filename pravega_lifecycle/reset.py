"""
Convergent reset of the tier2 (long-term storage) claim.

delete-if-present -> wait until absent -> create from the fixed manifest.
Running it on an absent claim goes straight to creation, and two runs in a
row leave the same spec behind.
"""

import logging

from pravega_lifecycle.config import Settings
from pravega_lifecycle.manifests import tier2_claim
from pravega_lifecycle.poller import poll_until
from pravega_lifecycle.services.kubernetes_service import ClusterClient

logger = logging.getLogger("reset")


def reset_resource(client: ClusterClient, namespace: str, settings: Settings) -> bool:
    """Recreate the tier2 claim fresh. Returns True if an existing claim was deleted."""
    name = settings.TIER2_CLAIM_NAME
    logger.info(f"restarting tier2 storage: {namespace}/{name}")

    deleted = False
    if client.find_pvc(namespace, name) is not None:
        deleted = client.delete_pvc(namespace, name)

    poll_until(
        lambda: client.find_pvc(namespace, name),
        lambda pvc: pvc is None,
        interval=settings.timeouts.retry_interval,
        timeout=settings.timeouts.for_operation("reset"),
        what=f"tier2 termination: {namespace}/{name}",
    )

    client.create_pvc(namespace, tier2_claim(settings, namespace))
    logger.info(f"tier2 storage restarted: {namespace}/{name}")
    return deleted
