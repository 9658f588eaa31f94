"""
Workflow events and metrics.

  - Events go to a Redis Stream per resource plus a global Pub/Sub channel,
    so a dashboard can follow a long bootstrap live.
  - Redis is optional: no URL or an unreachable server degrades to a no-op.
  - Prometheus metrics count resource operations, stage outcomes and how
    long each poll took.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

import redis
from prometheus_client import Counter, Histogram

logger = logging.getLogger("events")

STREAM_MAXLEN = 100
CHANNEL = "lifecycle:events"

RESOURCE_OPERATIONS = Counter(
    "lifecycle_resource_operations_total",
    "Create/get/update/delete calls against the resource store",
    ["kind", "operation", "result"],
)
STAGES = Counter(
    "lifecycle_stage_total",
    "Workflow stage outcomes",
    ["stage", "result"],
)
POLL_SECONDS = Histogram(
    "lifecycle_poll_seconds",
    "Wall-clock time spent in a single poll",
    ["what", "outcome"],
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1200),
)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def record_operation(kind: str, operation: str, result: str):
    RESOURCE_OPERATIONS.labels(kind=kind, operation=operation, result=result).inc()


def record_stage(stage: str, result: str):
    STAGES.labels(stage=stage, result=result).inc()


def record_poll(what: str, outcome: str, seconds: float):
    # Label by the leading words only; "what" often embeds resource names
    POLL_SECONDS.labels(what=what.split(":")[0], outcome=outcome).observe(seconds)


class EventPublisher:
    """Publishes workflow events to Redis. Every failure is non-fatal."""

    def __init__(self, redis_url: str = ""):
        self.redis_url = redis_url
        self._client: Optional[redis.Redis] = None

    def _get_redis(self) -> Optional[redis.Redis]:
        """Lazy-init Redis client. Returns None if unavailable."""
        if self._client is not None:
            return self._client
        if not self.redis_url:
            return None
        try:
            client = redis.Redis.from_url(self.redis_url, decode_responses=True)
            client.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable (non-fatal): {e}")
            return None
        logger.info(f"Redis connected: {self.redis_url}")
        self._client = client
        return client

    def publish(self, resource: str, event_type: str, message: str, phase: str = ""):
        """Publish an event to the resource's stream and the global channel."""
        r = self._get_redis()
        if not r:
            return
        event = {
            "type": event_type,
            "message": message,
            "phase": phase,
            "timestamp": _now(),
            "resource": resource,
        }
        try:
            r.xadd(f"{CHANNEL}:{resource}", event, maxlen=STREAM_MAXLEN)
            r.publish(CHANNEL, json.dumps(event))
        except redis.RedisError as e:
            logger.debug(f"Redis publish failed (non-fatal): {e}")
