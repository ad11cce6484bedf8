"""Regenerate a load-balancer configuration from Kubernetes LoadBalancer services."""

__version__ = "0.1.0"
