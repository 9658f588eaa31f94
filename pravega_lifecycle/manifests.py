"""
Declarative bodies for everything the workflow creates.

Each builder returns a plain dict ready for the Kubernetes API, so the same
body can be created, compared, and re-created by the reset path.
"""
from pravega_lifecycle.config import Settings
from pravega_lifecycle.models import ResourceKind


def _cluster_body(kind: ResourceKind, name: str, namespace: str, spec: dict) -> dict:
    return {
        "apiVersion": kind.api_version,
        "kind": kind.value,
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": {"app.kubernetes.io/managed-by": "pravega-lifecycle"},
        },
        "spec": spec,
    }


def zookeeper_client_uri(settings: Settings) -> str:
    return f"{settings.ZOOKEEPER_NAME}-client:2181"


def bookkeeper_uri(settings: Settings) -> str:
    return f"{settings.BOOKKEEPER_NAME}-bookie-headless:3181"


def controller_service_name(pravega_name: str) -> str:
    return f"{pravega_name}-pravega-controller"


def zookeeper_cluster(settings: Settings) -> dict:
    """Small zookeeper ensemble whose volumes are removed with the cluster."""
    return _cluster_body(ResourceKind.ZOOKEEPER, settings.ZOOKEEPER_NAME, settings.NAMESPACE, {
        "replicas": settings.ZOOKEEPER_REPLICAS,
        "persistence": {"reclaimPolicy": "Delete"},
    })


def bookkeeper_cluster(settings: Settings) -> dict:
    """Bookkeeper ensemble wired to the zookeeper client service."""
    return _cluster_body(ResourceKind.BOOKKEEPER, settings.BOOKKEEPER_NAME, settings.NAMESPACE, {
        "replicas": settings.BOOKKEEPER_REPLICAS,
        "envVars": settings.BOOKKEEPER_CONFIGMAP,
        "zookeeperUri": zookeeper_client_uri(settings),
    })


def pravega_cluster(settings: Settings) -> dict:
    return _cluster_body(ResourceKind.PRAVEGA, settings.PRAVEGA_NAME, settings.NAMESPACE, {
        "version": settings.PRAVEGA_VERSION,
        "zookeeperUri": zookeeper_client_uri(settings),
        "bookkeeperUri": bookkeeper_uri(settings),
        "pravega": {
            "controllerReplicas": settings.PRAVEGA_CONTROLLER_REPLICAS,
            "segmentStoreReplicas": settings.PRAVEGA_SEGMENTSTORE_REPLICAS,
            "longtermStorage": {
                "filesystem": {
                    "persistentVolumeClaim": {"claimName": settings.TIER2_CLAIM_NAME},
                },
            },
        },
    })


def tier2_claim(settings: Settings, namespace: str) -> dict:
    """Shared long-term storage claim consumed by the segment stores."""
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {"name": settings.TIER2_CLAIM_NAME, "namespace": namespace},
        "spec": {
            "storageClassName": settings.TIER2_STORAGE_CLASS,
            "accessModes": ["ReadWriteMany"],
            "resources": {"requests": {"storage": settings.TIER2_SIZE}},
        },
    }


def write_read_job(settings: Settings, namespace: str, controller_service: str) -> dict:
    """One-shot job writing and reading back sample events through the controller."""
    uri = f"tcp://{controller_service}:9090"
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {"name": settings.VERIFY_JOB_NAME, "namespace": namespace},
        "spec": {
            "activeDeadlineSeconds": 180,
            "backoffLimit": 1,
            "template": {
                "spec": {
                    "containers": [{
                        "name": "test-container",
                        "image": settings.VERIFY_IMAGE,
                        "command": [
                            "/bin/sh", "-c",
                            f"bin/helloWorldWriter -u {uri} && bin/helloWorldReader -u {uri}",
                        ],
                    }],
                    "restartPolicy": "Never",
                },
            },
        },
    }
