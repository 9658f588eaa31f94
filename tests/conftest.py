"""In-memory stand-ins for the Kubernetes APIs and a fake clock for polling."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Callable

import pytest
from kubernetes import client
from kubernetes.client import ApiException

from pravega_lifecycle import poller
from pravega_lifecycle.config import Settings, Timeouts
from pravega_lifecycle.services.kubernetes_service import CleanupRegistry, ClusterClient


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self._scheduled: list[tuple[float, Callable[[], None]]] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        due = [cb for at, cb in self._scheduled if at <= self.now]
        self._scheduled = [(at, cb) for at, cb in self._scheduled if at > self.now]
        for cb in due:
            cb()

    def at(self, when: float, callback: Callable[[], None]) -> None:
        self._scheduled.append((when, callback))

    def after(self, delay: float, callback: Callable[[], None]) -> None:
        self.at(self.now + delay, callback)


def _not_found() -> ApiException:
    return ApiException(status=404, reason="Not Found")


def _matches(labels: dict | None, selector: str) -> bool:
    labels = labels or {}
    for term in selector.split(","):
        key, _, value = term.partition("=")
        if labels.get(key) != value:
            return False
    return True


class FakeCustomObjects:
    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], dict] = {}
        self.scripts: dict[tuple[str, str, str], list[dict]] = {}
        self.reject_create: ApiException | None = None
        self.on_create: list[Callable[[str, dict], None]] = []
        self.on_delete: list[Callable[[str, dict], None]] = []
        self.calls: list[tuple[str, str, str]] = []

    def create_namespaced_custom_object(self, group, version, namespace, plural, body):
        name = body["metadata"]["name"]
        self.calls.append(("create", plural, name))
        if self.reject_create is not None:
            raise self.reject_create
        key = (namespace, plural, name)
        if key in self.objects:
            raise ApiException(status=409, reason="Conflict")
        stored = copy.deepcopy(body)
        stored["metadata"]["namespace"] = namespace
        stored["metadata"]["resourceVersion"] = "1"
        stored.setdefault("status", {})
        self.objects[key] = stored
        for hook in self.on_create:
            hook(plural, stored)
        return copy.deepcopy(stored)

    def get_namespaced_custom_object(self, group, version, namespace, plural, name):
        key = (namespace, plural, name)
        if key not in self.objects:
            raise _not_found()
        script = self.scripts.get(key)
        if script:
            self.objects[key]["status"] = script.pop(0) if len(script) > 1 else script[0]
        return copy.deepcopy(self.objects[key])

    def replace_namespaced_custom_object(self, group, version, namespace, plural, name, body):
        key = (namespace, plural, name)
        if key not in self.objects:
            raise _not_found()
        stored = self.objects[key]
        if body["metadata"].get("resourceVersion") != stored["metadata"]["resourceVersion"]:
            raise ApiException(status=409, reason="Conflict")
        stored["spec"] = copy.deepcopy(body["spec"])
        stored["metadata"]["resourceVersion"] = str(int(stored["metadata"]["resourceVersion"]) + 1)
        return copy.deepcopy(stored)

    def delete_namespaced_custom_object(self, group, version, namespace, plural, name):
        self.calls.append(("delete", plural, name))
        key = (namespace, plural, name)
        if key not in self.objects:
            raise _not_found()
        removed = self.objects.pop(key)
        for hook in self.on_delete:
            hook(plural, removed)
        return {"status": "Success"}

    def bump(self, namespace: str, plural: str, name: str) -> None:
        """Simulate a concurrent writer advancing the stored version."""
        meta = self.objects[(namespace, plural, name)]["metadata"]
        meta["resourceVersion"] = str(int(meta["resourceVersion"]) + 1)


class FakeCore:
    def __init__(self) -> None:
        self.pods: dict[str, client.V1Pod] = {}
        self.pvcs: dict[str, client.V1PersistentVolumeClaim] = {}
        self.created_pvcs: list[dict] = []
        self.deleted_pvcs: list[str] = []

    # pods
    def add_pod(self, name: str, labels: dict, ready: bool = True) -> None:
        self.pods[name] = client.V1Pod(
            metadata=client.V1ObjectMeta(name=name, labels=labels),
            status=client.V1PodStatus(
                phase="Running",
                conditions=[client.V1PodCondition(type="Ready", status="True" if ready else "False")],
            ),
        )

    def set_ready(self, name: str, ready: bool) -> None:
        self.add_pod(name, self.pods[name].metadata.labels, ready)

    def list_namespaced_pod(self, namespace, label_selector=""):
        return client.V1PodList(items=[p for p in self.pods.values() if _matches(p.metadata.labels, label_selector)])

    def read_namespaced_pod(self, name, namespace):
        if name not in self.pods:
            raise _not_found()
        return self.pods[name]

    # persistent volume claims
    def add_pvc(self, name: str, labels: dict | None = None) -> None:
        self.pvcs[name] = client.V1PersistentVolumeClaim(
            metadata=client.V1ObjectMeta(name=name, labels=labels or {}),
        )

    def list_namespaced_persistent_volume_claim(self, namespace, label_selector=""):
        return client.V1PersistentVolumeClaimList(
            items=[p for p in self.pvcs.values() if _matches(p.metadata.labels, label_selector)]
        )

    def read_namespaced_persistent_volume_claim(self, name, namespace):
        if name not in self.pvcs:
            raise _not_found()
        return self.pvcs[name]

    def create_namespaced_persistent_volume_claim(self, namespace, body):
        name = body["metadata"]["name"]
        if name in self.pvcs:
            raise ApiException(status=409, reason="Conflict")
        self.created_pvcs.append(copy.deepcopy(body))
        self.add_pvc(name)
        return self.pvcs[name]

    def delete_namespaced_persistent_volume_claim(self, name, namespace):
        if name not in self.pvcs:
            raise _not_found()
        self.deleted_pvcs.append(name)
        del self.pvcs[name]


class FakeBatch:
    def __init__(self) -> None:
        self.jobs: dict[str, client.V1Job] = {}

    def create_namespaced_job(self, namespace, body):
        name = body["metadata"]["name"]
        if name in self.jobs:
            raise ApiException(status=409, reason="Conflict")
        self.jobs[name] = client.V1Job(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            status=client.V1JobStatus(active=1),
        )
        return self.jobs[name]

    def read_namespaced_job_status(self, name, namespace):
        if name not in self.jobs:
            raise _not_found()
        return self.jobs[name]

    def delete_namespaced_job(self, name, namespace, propagation_policy=None):
        if name not in self.jobs:
            raise _not_found()
        del self.jobs[name]

    def finish(self, name: str, failed: int = 0) -> None:
        self.jobs[name].status = client.V1JobStatus(
            completion_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
            succeeded=0 if failed else 1,
            failed=failed,
        )


class FakeReconciler:
    """Plays the operators: converges status after create, cascades deletes."""

    def __init__(self, clock: FakeClock, custom: FakeCustomObjects, core: FakeCore, delay: float = 12) -> None:
        self.clock = clock
        self.custom = custom
        self.core = core
        self.delay = delay
        custom.on_create.append(self._created)
        custom.on_delete.append(self._deleted)

    @staticmethod
    def size_of(body: dict) -> int:
        spec = body.get("spec", {})
        if "pravega" in spec:
            return spec["pravega"]["controllerReplicas"] + spec["pravega"]["segmentStoreReplicas"]
        return spec.get("replicas", 0)

    @staticmethod
    def labels_of(plural: str, name: str) -> dict:
        if plural == "pravegaclusters":
            return {"app": "pravega-cluster", "pravega_cluster": name}
        return {"app": name}

    def _created(self, plural: str, stored: dict) -> None:
        name = stored["metadata"]["name"]
        size = self.size_of(stored)

        def converge() -> None:
            stored["status"] = {
                "readyReplicas": size,
                "conditions": [{"type": "PodsReady", "status": "True"}],
            }
            for i in range(size):
                self.core.add_pod(f"{name}-{i}", self.labels_of(plural, name))
                self.core.add_pvc(f"data-{name}-{i}", self.labels_of(plural, name))

        self.clock.after(self.delay, converge)

    def _deleted(self, plural: str, removed: dict) -> None:
        name = removed["metadata"]["name"]
        labels = self.labels_of(plural, name)

        def drop_pods() -> None:
            for pod in [n for n, p in self.core.pods.items() if p.metadata.labels == labels]:
                del self.core.pods[pod]

        def drop_pvcs() -> None:
            for pvc in [n for n, p in self.core.pvcs.items() if p.metadata.labels == labels]:
                del self.core.pvcs[pvc]

        self.clock.after(self.delay, drop_pods)
        self.clock.after(self.delay * 2, drop_pvcs)


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(poller, "_clock", fake)
    monkeypatch.setattr(poller, "_sleep", fake.sleep)
    return fake


@pytest.fixture
def custom() -> FakeCustomObjects:
    return FakeCustomObjects()


@pytest.fixture
def core() -> FakeCore:
    return FakeCore()


@pytest.fixture
def batch() -> FakeBatch:
    return FakeBatch()


@pytest.fixture
def kube(clock: FakeClock, custom: FakeCustomObjects, core: FakeCore, batch: FakeBatch) -> ClusterClient:
    return ClusterClient(custom=custom, core=core, batch=batch, cleanup=CleanupRegistry())


@pytest.fixture
def reconciler(clock: FakeClock, custom: FakeCustomObjects, core: FakeCore) -> FakeReconciler:
    return FakeReconciler(clock, custom, core)


@pytest.fixture
def timeouts() -> Timeouts:
    return Timeouts(
        retry_interval=5,
        default_timeout=60,
        cleanup_retry_interval=1,
        cleanup_timeout=5,
        ready=300,
        upgrade=600,
        terminate=120,
        verify=300,
        reset=180,
        restart=300,
        restart_interval=1,
    )


@pytest.fixture
def settings(timeouts: Timeouts) -> Settings:
    return Settings(NAMESPACE="test", REDIS_URL="", RESET_TIER2_AFTER_BOOTSTRAP=True, timeouts=timeouts)
