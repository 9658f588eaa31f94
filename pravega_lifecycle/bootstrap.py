"""
Bootstrap workflow: brings zookeeper, bookkeeper (and optionally pravega)
from an unknown prior state to a known ready baseline.

Architecture:
  Stages are an ordered list of descriptors (name, create action, readiness
  predicate, dependencies). The driver:
    1. Tears down every stage in reverse order (delete, wait for pods+PVCs gone)
    2. Creates every stage in order, waiting for readiness before the next
    3. Resets the tier2 claim (environment-specific compensating step)

  Any failure aborts the run and surfaces the first error. There is no
  rollback: deletes are idempotent and creates are not, so a failed run is
  retried from the top, through teardown.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from pravega_lifecycle import manifests
from pravega_lifecycle.config import Settings
from pravega_lifecycle.events import EventPublisher, record_stage
from pravega_lifecycle.models import ClusterResource, ResourceKind, ResourceRef
from pravega_lifecycle.readiness import (
    is_cluster_ready,
    wait_for_cluster_ready,
    wait_for_cluster_to_terminate,
)
from pravega_lifecycle.reset import reset_resource
from pravega_lifecycle.services.kubernetes_service import ClusterClient

logger = logging.getLogger("bootstrap")


@dataclass(frozen=True)
class Stage:
    name: str
    kind: ResourceKind
    resource_name: str
    build: Callable[[Settings], dict]
    size: int
    depends_on: Tuple[str, ...] = ()

    def ref(self, namespace: str) -> ResourceRef:
        return ResourceRef(kind=self.kind, namespace=namespace, name=self.resource_name)

    def is_ready(self, resource: ClusterResource) -> bool:
        return is_cluster_ready(resource, self.size)


def default_stages(settings: Settings) -> List[Stage]:
    """Zookeeper first, then bookkeeper which needs the zookeeper client service."""
    return [
        Stage("zookeeper", ResourceKind.ZOOKEEPER, settings.ZOOKEEPER_NAME,
              manifests.zookeeper_cluster, settings.ZOOKEEPER_REPLICAS),
        Stage("bookkeeper", ResourceKind.BOOKKEEPER, settings.BOOKKEEPER_NAME,
              manifests.bookkeeper_cluster, settings.BOOKKEEPER_REPLICAS,
              depends_on=("zookeeper",)),
    ]


def pravega_stage(settings: Settings) -> Stage:
    return Stage("pravega", ResourceKind.PRAVEGA, settings.PRAVEGA_NAME,
                 manifests.pravega_cluster, settings.pravega_size,
                 depends_on=("bookkeeper",))


def validate_stages(stages: Sequence[Stage]):
    """Every dependency must name an earlier stage; names must be unique."""
    seen = set()
    for stage in stages:
        if stage.name in seen:
            raise ValueError(f"Duplicate stage '{stage.name}'")
        missing = [d for d in stage.depends_on if d not in seen]
        if missing:
            raise ValueError(
                f"Stage '{stage.name}' depends on {missing}, which must come earlier in the list"
            )
        seen.add(stage.name)


def dependency_order(stages: Sequence[Stage]) -> List[str]:
    validate_stages(stages)
    return [s.name for s in stages]


@dataclass
class BootstrapReport:
    deleted: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    tier2_reset: bool = False
    tier2_deleted: bool = False


class Workflow:
    """Runs stages strictly in sequence against one namespace."""

    def __init__(self, client: ClusterClient, settings: Settings,
                 publisher: Optional[EventPublisher] = None):
        self.client = client
        self.settings = settings
        self.namespace = settings.NAMESPACE
        self.publisher = publisher or EventPublisher(settings.REDIS_URL)

    def _event(self, stage: str, event_type: str, message: str, phase: str):
        self.publisher.publish(stage, event_type, message, phase)

    def _run(self, stage: str, action: str, step: Callable[[], object]):
        try:
            result = step()
        except Exception as e:
            logger.error(f"[{stage}] {action} failed: {e}")
            record_stage(stage, f"{action}_failed")
            self._event(stage, f"{action.upper()}_FAILED", str(e)[:200], "Failed")
            raise
        record_stage(stage, action)
        return result

    def delete_stage(self, stage: Stage) -> bool:
        ref = stage.ref(self.namespace)
        self._event(stage.name, "DELETE_START", f"Deleting {ref}", "Deleting")
        existed = self._run(stage.name, "delete", lambda: self.client.delete(ref))
        self._run(stage.name, "terminate",
                  lambda: wait_for_cluster_to_terminate(self.client, ref, self.settings.timeouts))
        self._event(stage.name, "DELETE_COMPLETE", f"{ref} terminated", "Deleted")
        return existed

    def create_stage(self, stage: Stage) -> ClusterResource:
        ref = stage.ref(self.namespace)
        self._event(stage.name, "CREATE_START", f"Creating {ref}", "Provisioning")
        self._run(stage.name, "create",
                  lambda: self.client.create(stage.kind, stage.build(self.settings)))
        cluster = self._run(stage.name, "ready",
                            lambda: wait_for_cluster_ready(self.client, ref, stage.size, self.settings.timeouts))
        self._event(stage.name, "READY", f"{ref} ready at size {stage.size}", "Ready")
        return cluster

    def teardown(self, stages: Optional[Sequence[Stage]] = None) -> List[str]:
        """Delete stages in reverse dependency order. Returns the names that existed."""
        stages = list(stages or default_stages(self.settings))
        validate_stages(stages)
        deleted = []
        total = len(stages)
        for i, stage in enumerate(reversed(stages), start=1):
            logger.info(f"[{stage.name}] Teardown {i}/{total}: deleting {stage.resource_name}")
            if self.delete_stage(stage):
                deleted.append(stage.name)
        return deleted

    def bring_up(self, stages: Sequence[Stage]) -> List[str]:
        """Create stages in order, each ready before the next starts."""
        validate_stages(stages)
        return self._bring_up_from(stages, 0)

    def bootstrap(self, stages: Optional[Sequence[Stage]] = None) -> BootstrapReport:
        """Tear down, recreate in dependency order, then reset tier2."""
        stages = list(stages or default_stages(self.settings))
        validate_stages(stages)
        logger.info(f"bootstrapping {dependency_order(stages)} in namespace {self.namespace}")

        # Pravega mounts tier2, so the reset has to land before it is created
        split = next((i for i, s in enumerate(stages) if s.kind == ResourceKind.PRAVEGA), len(stages))

        report = BootstrapReport()
        report.deleted = self.teardown(stages)
        report.created = self.bring_up(stages[:split])

        if self.settings.RESET_TIER2_AFTER_BOOTSTRAP:
            logger.info("resetting tier2 storage after bootstrap")
            report.tier2_deleted = self._run(
                "tier2", "reset",
                lambda: reset_resource(self.client, self.namespace, self.settings),
            )
            report.tier2_reset = True

        if split < len(stages):
            report.created += self._bring_up_from(stages, split)

        logger.info(f"bootstrap complete: {report.created}")
        return report

    def _bring_up_from(self, stages: Sequence[Stage], start: int) -> List[str]:
        created = []
        total = len(stages)
        for i in range(start, total):
            stage = stages[i]
            logger.info(f"[{stage.name}] Step {i + 1}/{total}: creating {stage.resource_name} (size {stage.size})")
            self.create_stage(stage)
            created.append(stage.name)
        return created
