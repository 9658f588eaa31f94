"""
Pydantic models for cluster resources and the status they publish.

Status is owned by the external reconcilers; these models only ever read it.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResourceKind(str, Enum):
    ZOOKEEPER = "ZookeeperCluster"
    BOOKKEEPER = "BookkeeperCluster"
    PRAVEGA = "PravegaCluster"

    @property
    def group(self) -> str:
        return _API[self][0]

    @property
    def version(self) -> str:
        return _API[self][1]

    @property
    def plural(self) -> str:
        return _API[self][2]

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


_API = {
    ResourceKind.ZOOKEEPER: ("zookeeper.pravega.io", "v1beta1", "zookeeperclusters"),
    ResourceKind.BOOKKEEPER: ("bookkeeper.pravega.io", "v1alpha1", "bookkeeperclusters"),
    ResourceKind.PRAVEGA: ("pravega.pravega.io", "v1beta1", "pravegaclusters"),
}


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionType(str, Enum):
    PODS_READY = "PodsReady"
    UPGRADING = "Upgrading"
    ERROR = "Error"


class ResourceRef(BaseModel):
    """Identifies one declared cluster resource."""
    model_config = ConfigDict(frozen=True)

    kind: ResourceKind
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind.value} {self.namespace}/{self.name}"


class ClusterCondition(BaseModel):
    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    lastUpdateTime: Optional[str] = None
    lastTransitionTime: Optional[str] = None


class ClusterStatus(BaseModel):
    conditions: List[ClusterCondition] = []
    readyReplicas: int = 0
    currentVersion: Optional[str] = None
    targetVersion: Optional[str] = None
    members: Dict[str, Any] = {}

    def get_condition(self, ctype: str) -> Optional[ClusterCondition]:
        """Return the authoritative condition of a type; the last one listed wins."""
        found = None
        for c in self.conditions:
            if c.type == ctype:
                found = c
        return found

    def condition(self, ctype: str) -> ConditionStatus:
        c = self.get_condition(ctype)
        return c.status if c else ConditionStatus.UNKNOWN

    @property
    def ready_members(self) -> List[str]:
        return list((self.members or {}).get("ready") or [])


class ClusterResource(BaseModel):
    """A fetched cluster resource: desired spec plus observed status."""
    ref: ResourceRef
    spec: Dict[str, Any] = {}
    status: ClusterStatus = Field(default_factory=ClusterStatus)
    resource_version: Optional[str] = None
    labels: Dict[str, str] = {}

    @classmethod
    def from_k8s(cls, kind: ResourceKind, item: dict) -> "ClusterResource":
        """Convert a raw custom object dict into a ClusterResource."""
        metadata = item.get("metadata", {})
        status = item.get("status") or {}
        conditions = [
            ClusterCondition(**{k: v for k, v in c.items() if k in ClusterCondition.model_fields})
            for c in status.get("conditions") or []
            if c.get("type")
        ]
        return cls(
            ref=ResourceRef(kind=kind, namespace=metadata.get("namespace", ""), name=metadata["name"]),
            spec=item.get("spec") or {},
            status=ClusterStatus(
                conditions=conditions,
                readyReplicas=status.get("readyReplicas") or 0,
                currentVersion=status.get("currentVersion"),
                targetVersion=status.get("targetVersion"),
                members=status.get("members") or {},
            ),
            resource_version=metadata.get("resourceVersion"),
            labels=metadata.get("labels") or {},
        )

    def to_body(self) -> dict:
        """Render back to a custom object body for update; status is never sent."""
        metadata = {"name": self.ref.name, "namespace": self.ref.namespace}
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        if self.labels:
            metadata["labels"] = dict(self.labels)
        return {
            "apiVersion": self.ref.kind.api_version,
            "kind": self.ref.kind.value,
            "metadata": metadata,
            "spec": self.spec,
        }


class PodSummary(BaseModel):
    name: str
    phase: Optional[str] = None
    ready: bool = False


class JobStatus(BaseModel):
    name: str
    completionTime: Optional[str] = None
    succeeded: int = 0
    failed: int = 0
    active: int = 0

    @property
    def completed(self) -> bool:
        return bool(self.completionTime)
