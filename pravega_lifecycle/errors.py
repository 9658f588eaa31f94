"""
Domain errors for the lifecycle workflow.

Kubernetes API exceptions are translated into these at the client boundary
so workflow code can tell "keep waiting" apart from "stop now".
"""
from typing import Any, Optional


class LifecycleError(Exception):
    """Base error for every failure surfaced by the workflow."""


class NotFound(LifecycleError):
    """The requested resource does not exist."""

    def __init__(self, kind: str, namespace: str, name: str):
        super().__init__(f"{kind} {namespace}/{name} not found")
        self.kind = kind
        self.namespace = namespace
        self.name = name


class AlreadyExists(LifecycleError):
    """Create was refused because a resource with that name exists."""


class AdmissionRejected(LifecycleError):
    """Create was refused by validation or an admission webhook."""


class Conflict(LifecycleError):
    """Update lost against a newer stored version of the object."""


class TimedOut(LifecycleError):
    """A poll ran out of time before its predicate held."""

    def __init__(self, what: str, timeout: float, last_observed: Any = None):
        super().__init__(f"timed out after {timeout:g}s waiting for {what}")
        self.what = what
        self.timeout = timeout
        self.last_observed = last_observed


class ReportedFailure(LifecycleError):
    """The system explicitly reported a failure (Error condition, failed job, ...)."""

    def __init__(self, reason: str, message: str, resource: Optional[str] = None):
        prefix = f"{resource}: " if resource else ""
        super().__init__(f"{prefix}[{reason}] {message}")
        self.reason = reason
        self.message = message
        self.resource = resource
