"""Unit tests for the upgrade monitor."""

from __future__ import annotations

import pytest

from pravega_lifecycle.errors import Conflict, ReportedFailure, TimedOut
from pravega_lifecycle.manifests import pravega_cluster
from pravega_lifecycle.models import ClusterResource, ResourceKind, ResourceRef
from pravega_lifecycle.upgrade import (
    UpgradeState,
    evaluate_upgrade,
    request_upgrade,
    wait_for_upgrade,
)

TARGET = "0.8.0"
KEY = ("test", "pravegaclusters", "pravega")
REF = ResourceRef(kind=ResourceKind.PRAVEGA, namespace="test", name="pravega")


def _status(upgrading: str | None = None, error: str | None = None, version: str = "0.7.0",
            reason: str = "", message: str = "") -> dict:
    conditions = []
    if upgrading is not None:
        conditions.append({"type": "Upgrading", "status": upgrading})
    if error is not None:
        conditions.append({"type": "Error", "status": error, "reason": reason, "message": message})
    return {"currentVersion": version, "conditions": conditions}


def _resource(status: dict) -> ClusterResource:
    return ClusterResource.from_k8s(ResourceKind.PRAVEGA, {
        "metadata": {"name": "pravega", "namespace": "test"}, "status": status,
    })


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (_status("True", "False"), UpgradeState.IN_PROGRESS),
        (_status("True", "False", TARGET), UpgradeState.IN_PROGRESS),
        (_status("False", "False"), UpgradeState.IN_PROGRESS),
        (_status("False", "False", TARGET), UpgradeState.SUCCEEDED),
        (_status(None, None, TARGET), UpgradeState.IN_PROGRESS),
        (_status("False", "True", TARGET), UpgradeState.FAILED),
        (_status("True", "True"), UpgradeState.FAILED),
    ],
)
def test_evaluate_upgrade(status: dict, expected: UpgradeState) -> None:
    assert evaluate_upgrade(_resource(status), TARGET) == expected


@pytest.fixture
def pravega(kube, settings):
    return kube.create(ResourceKind.PRAVEGA, pravega_cluster(settings))


def test_success_only_at_third_observation(kube, custom, clock, timeouts, pravega) -> None:
    custom.scripts[KEY] = [
        _status("True", "False"),
        _status("True", "False", TARGET),
        _status("False", "False", TARGET),
    ]
    cluster = wait_for_upgrade(kube, REF, TARGET, timeouts)
    assert cluster.status.currentVersion == TARGET
    assert clock.now == 2 * timeouts.retry_interval, "Must not report success before the third observation"


def test_error_condition_aborts_immediately(kube, custom, clock, timeouts, pravega) -> None:
    custom.scripts[KEY] = [
        _status("True", "False"),
        _status("True", "True", reason="UpgradeFailed", message="segment store crashloop"),
        _status("False", "False", TARGET),
    ]
    with pytest.raises(ReportedFailure) as excinfo:
        wait_for_upgrade(kube, REF, TARGET, timeouts)
    assert excinfo.value.reason == "UpgradeFailed"
    assert "segment store crashloop" in excinfo.value.message
    assert clock.now == timeouts.retry_interval


def test_condition_flipped_before_version_times_out(kube, custom, clock, timeouts, pravega) -> None:
    custom.scripts[KEY] = [_status("False", "False")]
    with pytest.raises(TimedOut):
        wait_for_upgrade(kube, REF, TARGET, timeouts, timeout=60)


def test_request_upgrade_updates_spec_version(kube, custom, pravega) -> None:
    updated = request_upgrade(kube, REF, TARGET)
    assert updated.spec["version"] == TARGET
    assert custom.objects[KEY]["spec"]["version"] == TARGET
    assert updated.spec["zookeeperUri"] == pravega.spec["zookeeperUri"], "Other spec fields preserved"


def test_request_upgrade_noop_when_already_requested(kube, custom, pravega) -> None:
    request_upgrade(kube, REF, TARGET)
    version = custom.objects[KEY]["metadata"]["resourceVersion"]
    request_upgrade(kube, REF, TARGET)
    assert custom.objects[KEY]["metadata"]["resourceVersion"] == version


def test_request_upgrade_surfaces_conflict(kube, custom, monkeypatch: pytest.MonkeyPatch, pravega) -> None:
    original_get = kube.get

    def stale_get(ref: ResourceRef) -> ClusterResource:
        resource = original_get(ref)
        custom.bump(*KEY)
        return resource

    monkeypatch.setattr(kube, "get", stale_get)
    with pytest.raises(Conflict):
        request_upgrade(kube, REF, TARGET)
