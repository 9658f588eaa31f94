"""
pravega-lifecycle: command-line entry point.

Commands:
  - bootstrap     tear down and recreate zookeeper/bookkeeper (+ pravega)
  - teardown      delete the stack in reverse dependency order
  - upgrade       request a pravega version and wait for it to land
  - verify        run the write/read job against pravega
  - reset-tier2   recreate the tier2 storage claim
  - wait-restart  wait for a rolling restart of the selected pods

Exit code is 0 on success and 1 when the workflow reports an error.
"""

import dataclasses
import logging
from typing import Callable, Optional

from cyclopts import App
from kubernetes.client import ApiException
from prometheus_client import start_http_server

from pravega_lifecycle.bootstrap import Workflow, default_stages, pravega_stage
from pravega_lifecycle.config import Settings, settings as default_settings
from pravega_lifecycle.errors import LifecycleError
from pravega_lifecycle.models import ResourceKind, ResourceRef
from pravega_lifecycle.reset import reset_resource
from pravega_lifecycle.rolling_restart import wait_for_rolling_restart
from pravega_lifecycle.services.kubernetes_service import ClusterClient, cleanup_policy_for
from pravega_lifecycle.upgrade import request_upgrade, wait_for_upgrade
from pravega_lifecycle.verification import write_and_read_data

app = App(help="Drive the zookeeper/bookkeeper/pravega lifecycle against a running cluster.")
logger = logging.getLogger("pravega-lifecycle")


def _configure(namespace: Optional[str], log_level: Optional[str], metrics_port: Optional[int]) -> Settings:
    cfg = default_settings
    if namespace:
        cfg = dataclasses.replace(cfg, NAMESPACE=namespace)
    logging.basicConfig(
        level=(log_level or cfg.LOG_LEVEL).upper(),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if metrics_port:
        start_http_server(metrics_port)
        logger.info(f"Prometheus metrics on :{metrics_port}")
    return cfg


def _execute(step: Callable[[], object]) -> int:
    try:
        step()
    except (LifecycleError, ApiException) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    return 0


@app.command
def bootstrap(
    with_pravega: bool = False,
    namespace: Optional[str] = None,
    log_level: Optional[str] = None,
    metrics_port: Optional[int] = None,
) -> int:
    """Bring zookeeper and bookkeeper (and optionally pravega) to a fresh ready baseline."""
    cfg = _configure(namespace, log_level, metrics_port)
    stages = default_stages(cfg) + ([pravega_stage(cfg)] if with_pravega else [])
    workflow = Workflow(ClusterClient.from_settings(cfg), cfg)
    return _execute(lambda: workflow.bootstrap(stages))


@app.command
def teardown(
    with_pravega: bool = False,
    namespace: Optional[str] = None,
    log_level: Optional[str] = None,
    metrics_port: Optional[int] = None,
) -> int:
    """Delete the stack in reverse dependency order and wait for it to terminate."""
    cfg = _configure(namespace, log_level, metrics_port)
    stages = default_stages(cfg) + ([pravega_stage(cfg)] if with_pravega else [])
    workflow = Workflow(ClusterClient.from_settings(cfg), cfg)
    return _execute(lambda: workflow.teardown(stages))


@app.command
def upgrade(
    version: str,
    namespace: Optional[str] = None,
    log_level: Optional[str] = None,
    metrics_port: Optional[int] = None,
) -> int:
    """Request a pravega version and wait until the cluster reports it."""
    cfg = _configure(namespace, log_level, metrics_port)
    client = ClusterClient.from_settings(cfg)
    ref = ResourceRef(kind=ResourceKind.PRAVEGA, namespace=cfg.NAMESPACE, name=cfg.PRAVEGA_NAME)

    def step():
        request_upgrade(client, ref, version)
        wait_for_upgrade(client, ref, version, cfg.timeouts)

    return _execute(step)


@app.command
def verify(
    namespace: Optional[str] = None,
    log_level: Optional[str] = None,
    metrics_port: Optional[int] = None,
) -> int:
    """Run the write/read job against pravega; the job is removed afterwards."""
    cfg = _configure(namespace, log_level, metrics_port)
    client = ClusterClient.from_settings(cfg)
    ref = ResourceRef(kind=ResourceKind.PRAVEGA, namespace=cfg.NAMESPACE, name=cfg.PRAVEGA_NAME)
    with client.cleanup:
        return _execute(lambda: write_and_read_data(client, ref, cfg, cleanup=cleanup_policy_for(cfg)))


@app.command
def reset_tier2(
    namespace: Optional[str] = None,
    log_level: Optional[str] = None,
    metrics_port: Optional[int] = None,
) -> int:
    """Delete the tier2 claim if present, wait for it to go, and create it fresh."""
    cfg = _configure(namespace, log_level, metrics_port)
    client = ClusterClient.from_settings(cfg)
    return _execute(lambda: reset_resource(client, cfg.NAMESPACE, cfg))


@app.command
def wait_restart(
    selector: str,
    namespace: Optional[str] = None,
    log_level: Optional[str] = None,
    metrics_port: Optional[int] = None,
) -> int:
    """Wait for every pod matching SELECTOR to restart after a config change."""
    cfg = _configure(namespace, log_level, metrics_port)
    client = ClusterClient.from_settings(cfg)
    return _execute(lambda: wait_for_rolling_restart(client, cfg.NAMESPACE, selector, cfg.timeouts))


def run():
    """Console-script entry point."""
    raise SystemExit(app())


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    run()
