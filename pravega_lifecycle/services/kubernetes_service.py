"""
Kubernetes service layer: abstracts all K8s API interactions for the
zookeeper / bookkeeper / pravega custom resources and their children.

Design principles:
  - Idempotent delete: a 404 means the goal state is already reached
  - Fresh reads: create returns the stored object, not the submitted body
  - Optimistic updates: update requires a previously fetched resourceVersion
  - Clean error handling: translates K8s API exceptions to domain errors
  - Scoped acquisition: created resources can be registered for cleanup,
    which runs on scope exit or at interpreter exit
"""

import atexit
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from kubernetes import client, config
from kubernetes.client import ApiException

from pravega_lifecycle.config import Settings, settings as default_settings
from pravega_lifecycle.errors import (
    AdmissionRejected,
    AlreadyExists,
    Conflict,
    NotFound,
)
from pravega_lifecycle.events import record_operation
from pravega_lifecycle.models import (
    ClusterResource,
    JobStatus,
    PodSummary,
    ResourceKind,
    ResourceRef,
)
from pravega_lifecycle.poller import poll_until

logger = logging.getLogger("kubernetes_service")

_k8s_loaded = False


def _ensure_k8s(cfg: Settings = default_settings):
    """Load Kubernetes config exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    if cfg.IN_CLUSTER:
        config.load_incluster_config()
    else:
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config(config_file=cfg.KUBECONFIG or None)
    _k8s_loaded = True


def core_api() -> client.CoreV1Api:
    _ensure_k8s()
    return client.CoreV1Api()


def batch_api() -> client.BatchV1Api:
    _ensure_k8s()
    return client.BatchV1Api()


def custom_api() -> client.CustomObjectsApi:
    _ensure_k8s()
    return client.CustomObjectsApi()


def _reason(e: ApiException) -> str:
    return f"{e.status} {e.reason}: {(e.body or '')[:300]}"


# ---------------------------------------------------------------------------
# Cleanup registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CleanupPolicy:
    """How long to keep trying to remove a resource abandoned by a run."""
    timeout: float = 5
    retry_interval: float = 1


def cleanup_policy_for(cfg: Settings) -> CleanupPolicy:
    t = cfg.timeouts
    return CleanupPolicy(timeout=t.cleanup_timeout, retry_interval=t.cleanup_retry_interval)


@dataclass
class _CleanupEntry:
    label: str
    delete: Callable[[], bool]
    exists: Callable[[], bool]
    policy: CleanupPolicy


class CleanupRegistry:
    """
    Best-effort release of everything created during a run.

    Use as a context manager; anything still registered when the process
    exits is released by an atexit hook. Resources go in reverse creation
    order so dependents are removed before what they depend on.
    """

    def __init__(self, sleep: Optional[Callable[[float], None]] = None,
                 clock: Optional[Callable[[], float]] = None):
        self._entries: List[_CleanupEntry] = []
        self._hooked = False
        self._sleep = sleep
        self._clock = clock

    def __enter__(self) -> "CleanupRegistry":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.run()
        return False

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, label: str, delete: Callable[[], bool], exists: Callable[[], bool],
                 policy: CleanupPolicy):
        self._entries.append(_CleanupEntry(label, delete, exists, policy))
        if not self._hooked:
            atexit.register(self.run)
            self._hooked = True

    def run(self):
        """Release every registered resource. Never raises."""
        while self._entries:
            entry = self._entries.pop()
            try:
                entry.delete()
                poll_until(
                    entry.exists,
                    lambda present: not present,
                    interval=entry.policy.retry_interval,
                    timeout=entry.policy.timeout,
                    what=f"cleanup of {entry.label}",
                    clock=self._clock,
                    sleep=self._sleep,
                )
                logger.info(f"Cleaned up {entry.label}")
            except Exception as e:
                logger.warning(f"Cleanup of {entry.label} failed (non-fatal): {e}")
        if self._hooked:
            atexit.unregister(self.run)
            self._hooked = False


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

def _pod_ready(pod: client.V1Pod) -> bool:
    """A pod is ready when its Ready condition is True."""
    for c in (pod.status.conditions or []) if pod.status else []:
        if c.type == "Ready":
            return c.status == "True"
    return False


def _parse_pod(pod: client.V1Pod) -> PodSummary:
    return PodSummary(
        name=pod.metadata.name,
        phase=pod.status.phase if pod.status else None,
        ready=_pod_ready(pod),
    )


def _parse_job(job: client.V1Job) -> JobStatus:
    status = job.status or client.V1JobStatus()
    completion = status.completion_time
    if completion is not None and not isinstance(completion, str):
        completion = completion.isoformat()
    return JobStatus(
        name=job.metadata.name,
        completionTime=completion or None,
        succeeded=status.succeeded or 0,
        failed=status.failed or 0,
        active=status.active or 0,
    )


class ClusterClient:
    """Typed create/get/update/delete over the declarative resource store."""

    def __init__(
        self,
        custom: Optional[client.CustomObjectsApi] = None,
        core: Optional[client.CoreV1Api] = None,
        batch: Optional[client.BatchV1Api] = None,
        cleanup: Optional[CleanupRegistry] = None,
        cleanup_policy: Optional[CleanupPolicy] = None,
    ):
        self.custom = custom or custom_api()
        self.core = core or core_api()
        self.batch = batch or batch_api()
        self.cleanup = cleanup if cleanup is not None else CleanupRegistry()
        self.cleanup_policy = cleanup_policy

    @classmethod
    def from_settings(cls, cfg: Settings, ephemeral: bool = False) -> "ClusterClient":
        """
        Build a client for the configured cluster. With ephemeral=True every
        created resource is registered for cleanup, so it is removed when the
        run ends; otherwise only callers passing a CleanupPolicy opt in.
        """
        _ensure_k8s(cfg)
        policy = cleanup_policy_for(cfg) if ephemeral else None
        return cls(cleanup_policy=policy)

    # --- cluster custom resources -----------------------------------------

    def create(self, kind: ResourceKind, body: dict,
               cleanup: Optional[CleanupPolicy] = None) -> ClusterResource:
        """
        Create a cluster resource and return it as stored after admission.
        Raises AlreadyExists / AdmissionRejected.
        """
        metadata = body.get("metadata", {})
        ref = ResourceRef(kind=kind, namespace=metadata["namespace"], name=metadata["name"])
        logger.info(f"creating {ref}")
        try:
            self.custom.create_namespaced_custom_object(
                kind.group, kind.version, ref.namespace, kind.plural, body
            )
        except ApiException as e:
            record_operation(kind.value, "create", "error")
            if e.status == 409:
                raise AlreadyExists(f"{ref} already exists") from e
            if e.status in (400, 422):
                raise AdmissionRejected(f"{ref} rejected: {_reason(e)}") from e
            raise
        record_operation(kind.value, "create", "ok")

        policy = cleanup or self.cleanup_policy
        if policy is not None:
            self.cleanup.register(
                str(ref),
                lambda: self.delete(ref),
                lambda: self.find(ref) is not None,
                policy,
            )

        created = self.get(ref)
        logger.info(f"created {ref} (resourceVersion={created.resource_version})")
        return created

    def get(self, ref: ResourceRef) -> ClusterResource:
        """Fetch the latest state of a cluster resource. Raises NotFound."""
        kind = ref.kind
        try:
            item = self.custom.get_namespaced_custom_object(
                kind.group, kind.version, ref.namespace, kind.plural, ref.name
            )
        except ApiException as e:
            if e.status == 404:
                raise NotFound(kind.value, ref.namespace, ref.name) from e
            raise
        return ClusterResource.from_k8s(kind, item)

    def find(self, ref: ResourceRef) -> Optional[ClusterResource]:
        """Like get, but None when the resource does not exist."""
        try:
            return self.get(ref)
        except NotFound:
            return None

    def update(self, resource: ClusterResource) -> ClusterResource:
        """
        Replace the spec of a previously fetched resource.
        Raises Conflict if the stored version moved on since it was read.
        """
        if not resource.resource_version:
            raise ValueError(f"{resource.ref}: update requires a previously fetched resourceVersion")
        ref, kind = resource.ref, resource.ref.kind
        logger.info(f"updating {ref}")
        try:
            item = self.custom.replace_namespaced_custom_object(
                kind.group, kind.version, ref.namespace, kind.plural, ref.name, resource.to_body()
            )
        except ApiException as e:
            record_operation(kind.value, "update", "error")
            if e.status == 409:
                raise Conflict(f"{ref} was modified since resourceVersion {resource.resource_version}") from e
            if e.status == 404:
                raise NotFound(kind.value, ref.namespace, ref.name) from e
            raise
        record_operation(kind.value, "update", "ok")
        logger.info(f"updated {ref}")
        return ClusterResource.from_k8s(kind, item)

    def delete(self, ref: ResourceRef) -> bool:
        """Delete a cluster resource. Returns True if deleted, False if already absent."""
        kind = ref.kind
        logger.info(f"deleting {ref}")
        try:
            self.custom.delete_namespaced_custom_object(
                kind.group, kind.version, ref.namespace, kind.plural, ref.name
            )
        except ApiException as e:
            if e.status == 404:
                logger.info(f"{ref} already gone")
                record_operation(kind.value, "delete", "absent")
                return False
            record_operation(kind.value, "delete", "error")
            raise
        record_operation(kind.value, "delete", "ok")
        logger.info(f"{ref} deletion initiated")
        return True

    # --- pods -------------------------------------------------------------

    def list_pods(self, namespace: str, label_selector: str) -> List[PodSummary]:
        pods = self.core.list_namespaced_pod(namespace=namespace, label_selector=label_selector)
        return [_parse_pod(p) for p in pods.items]

    def get_pod(self, namespace: str, name: str) -> PodSummary:
        try:
            return _parse_pod(self.core.read_namespaced_pod(name=name, namespace=namespace))
        except ApiException as e:
            if e.status == 404:
                raise NotFound("Pod", namespace, name) from e
            raise

    def find_pod(self, namespace: str, name: str) -> Optional[PodSummary]:
        try:
            return self.get_pod(namespace, name)
        except NotFound:
            return None

    # --- persistent volume claims ----------------------------------------

    def list_pvcs(self, namespace: str, label_selector: str) -> List[str]:
        pvcs = self.core.list_namespaced_persistent_volume_claim(
            namespace=namespace, label_selector=label_selector
        )
        return [p.metadata.name for p in pvcs.items]

    def find_pvc(self, namespace: str, name: str) -> Optional[client.V1PersistentVolumeClaim]:
        try:
            return self.core.read_namespaced_persistent_volume_claim(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def create_pvc(self, namespace: str, body: dict,
                   cleanup: Optional[CleanupPolicy] = None) -> client.V1PersistentVolumeClaim:
        name = body["metadata"]["name"]
        logger.info(f"creating PersistentVolumeClaim {namespace}/{name}")
        try:
            pvc = self.core.create_namespaced_persistent_volume_claim(namespace=namespace, body=body)
        except ApiException as e:
            record_operation("PersistentVolumeClaim", "create", "error")
            if e.status == 409:
                raise AlreadyExists(f"PersistentVolumeClaim {namespace}/{name} already exists") from e
            if e.status in (400, 422):
                raise AdmissionRejected(f"PersistentVolumeClaim {namespace}/{name} rejected: {_reason(e)}") from e
            raise
        record_operation("PersistentVolumeClaim", "create", "ok")
        policy = cleanup or self.cleanup_policy
        if policy is not None:
            self.cleanup.register(
                f"PersistentVolumeClaim {namespace}/{name}",
                lambda: self.delete_pvc(namespace, name),
                lambda: self.find_pvc(namespace, name) is not None,
                policy,
            )
        return pvc

    def delete_pvc(self, namespace: str, name: str) -> bool:
        try:
            self.core.delete_namespaced_persistent_volume_claim(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                record_operation("PersistentVolumeClaim", "delete", "absent")
                return False
            record_operation("PersistentVolumeClaim", "delete", "error")
            raise
        record_operation("PersistentVolumeClaim", "delete", "ok")
        logger.info(f"PersistentVolumeClaim {namespace}/{name} deletion initiated")
        return True

    # --- jobs -------------------------------------------------------------

    def create_job(self, namespace: str, body: dict,
                   cleanup: Optional[CleanupPolicy] = None) -> JobStatus:
        name = body["metadata"]["name"]
        logger.info(f"creating Job {namespace}/{name}")
        try:
            job = self.batch.create_namespaced_job(namespace=namespace, body=body)
        except ApiException as e:
            record_operation("Job", "create", "error")
            if e.status == 409:
                raise AlreadyExists(f"Job {namespace}/{name} already exists") from e
            if e.status in (400, 422):
                raise AdmissionRejected(f"Job {namespace}/{name} rejected: {_reason(e)}") from e
            raise
        record_operation("Job", "create", "ok")
        policy = cleanup or self.cleanup_policy
        if policy is not None:
            self.cleanup.register(
                f"Job {namespace}/{name}",
                lambda: self.delete_job(namespace, name),
                lambda: self._job_exists(namespace, name),
                policy,
            )
        return _parse_job(job)

    def get_job(self, namespace: str, name: str) -> JobStatus:
        try:
            return _parse_job(self.batch.read_namespaced_job_status(name=name, namespace=namespace))
        except ApiException as e:
            if e.status == 404:
                raise NotFound("Job", namespace, name) from e
            raise

    def _job_exists(self, namespace: str, name: str) -> bool:
        try:
            self.get_job(namespace, name)
            return True
        except NotFound:
            return False

    def delete_job(self, namespace: str, name: str) -> bool:
        try:
            self.batch.delete_namespaced_job(
                name=name, namespace=namespace, propagation_policy="Background"
            )
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        logger.info(f"Job {namespace}/{name} deletion initiated")
        return True
