"""
Client-side lifecycle workflows for a zookeeper -> bookkeeper -> pravega stack:
bootstrap, readiness, termination, upgrade, rolling restart and verification.
"""

__version__ = "0.1.0"
