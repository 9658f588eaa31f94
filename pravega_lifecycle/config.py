"""
Configuration module: all settings from env vars with sensible defaults.
Follows 12-factor app methodology.

Timeouts are grouped into their own structure and passed explicitly to
every poll, so each operation kind keeps its own bound.
"""
import os
from dataclasses import dataclass, field
from typing import Optional


def _seconds(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.environ.get(f"LIFECYCLE_{name}_SECONDS")
    if raw is None or raw == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class Timeouts:
    """Poll intervals and per-operation bounds, in seconds."""
    retry_interval: float = _seconds("RETRY_INTERVAL", 5)
    default_timeout: float = _seconds("DEFAULT_TIMEOUT", 60)
    cleanup_retry_interval: float = _seconds("CLEANUP_RETRY_INTERVAL", 1)
    cleanup_timeout: float = _seconds("CLEANUP_TIMEOUT", 5)

    # Per-operation overrides; None falls back to default_timeout
    ready: Optional[float] = _seconds("READY", 5 * 60)
    upgrade: Optional[float] = _seconds("UPGRADE", 10 * 60)
    terminate: Optional[float] = _seconds("TERMINATE", 2 * 60)
    verify: Optional[float] = _seconds("VERIFY", 5 * 60)
    reset: Optional[float] = _seconds("RESET", 3 * 60)
    restart: Optional[float] = _seconds("RESTART", 5 * 60)

    # Tick used while watching individual pods restart
    restart_interval: float = _seconds("RESTART_INTERVAL", 1)

    OPERATIONS = ("ready", "upgrade", "terminate", "verify", "reset", "restart")

    def for_operation(self, operation: str) -> float:
        if operation not in self.OPERATIONS:
            raise ValueError(f"Unknown operation '{operation}' (expected one of {', '.join(self.OPERATIONS)})")
        override = getattr(self, operation)
        return self.default_timeout if override is None else override


@dataclass(frozen=True)
class Settings:
    # Kubernetes
    KUBECONFIG: str = os.environ.get("KUBECONFIG", "")
    IN_CLUSTER: bool = os.environ.get("IN_CLUSTER", "false").lower() == "true"
    NAMESPACE: str = os.environ.get("NAMESPACE", "default")

    # Cluster resources
    ZOOKEEPER_NAME: str = os.environ.get("ZOOKEEPER_NAME", "zookeeper")
    ZOOKEEPER_REPLICAS: int = int(os.environ.get("ZOOKEEPER_REPLICAS", "1"))
    BOOKKEEPER_NAME: str = os.environ.get("BOOKKEEPER_NAME", "bookkeeper")
    BOOKKEEPER_REPLICAS: int = int(os.environ.get("BOOKKEEPER_REPLICAS", "3"))
    BOOKKEEPER_CONFIGMAP: str = os.environ.get("BOOKKEEPER_CONFIGMAP", "bookkeeper-configmap")
    PRAVEGA_NAME: str = os.environ.get("PRAVEGA_NAME", "pravega")
    PRAVEGA_VERSION: str = os.environ.get("PRAVEGA_VERSION", "0.7.0")
    PRAVEGA_CONTROLLER_REPLICAS: int = int(os.environ.get("PRAVEGA_CONTROLLER_REPLICAS", "1"))
    PRAVEGA_SEGMENTSTORE_REPLICAS: int = int(os.environ.get("PRAVEGA_SEGMENTSTORE_REPLICAS", "1"))

    # Tier2 (long-term storage) claim
    TIER2_CLAIM_NAME: str = os.environ.get("TIER2_CLAIM_NAME", "pravega-tier2")
    TIER2_STORAGE_CLASS: str = os.environ.get("TIER2_STORAGE_CLASS", "nfs")
    TIER2_SIZE: str = os.environ.get("TIER2_SIZE", "5Gi")
    # Compensates for stale tier2 state after a fresh bookkeeper; environment-specific
    RESET_TIER2_AFTER_BOOTSTRAP: bool = os.environ.get("RESET_TIER2_AFTER_BOOTSTRAP", "true").lower() == "true"

    # Verification job
    VERIFY_JOB_NAME: str = os.environ.get("VERIFY_JOB_NAME", "test-write-read")
    VERIFY_IMAGE: str = os.environ.get("VERIFY_IMAGE", "adrianmo/pravega-samples")

    # Observability
    REDIS_URL: str = os.environ.get("REDIS_URL", "")
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    timeouts: Timeouts = field(default_factory=Timeouts)

    @property
    def pravega_size(self) -> int:
        return self.PRAVEGA_CONTROLLER_REPLICAS + self.PRAVEGA_SEGMENTSTORE_REPLICAS


settings = Settings()
