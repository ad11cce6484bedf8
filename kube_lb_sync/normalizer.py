"""
Raw API object helpers.

Pure functions for reading Kubernetes Service and Endpoints objects
(as decoded JSON dicts) and resolving service ports to backend addresses.
All functions are stateless.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger("kube_lb_sync")

LOAD_BALANCER = "LoadBalancer"


# ── Name helpers ──────────────────────────────────────────────


def rule_name(namespace: str, name: str, port: int) -> str:
    """
    Deterministic load-balancer rule name for one service port:
      ("default", "web", 80) -> "default_web_80"
    """
    return f"{namespace}_{name}_{port}"


def service_key(obj: dict) -> Tuple[str, str]:
    """Return (name, namespace) from an object's metadata."""
    meta = obj.get("metadata") or {}
    return str(meta.get("name") or ""), str(meta.get("namespace") or "")


# ── Service fields ────────────────────────────────────────────


def service_type(svc: dict) -> str:
    return str((svc.get("spec") or {}).get("type") or "ClusterIP")


def external_address(svc: dict) -> str:
    """
    The externally assigned address of a LoadBalancer service.

    spec.loadBalancerIP wins; otherwise the first ingress entry reported
    in status.loadBalancer (ip, then hostname). Empty string when unset.
    """
    spec = svc.get("spec") or {}
    lb_ip = spec.get("loadBalancerIP")
    if lb_ip:
        return str(lb_ip)

    status = (svc.get("status") or {}).get("loadBalancer") or {}
    for ingress in status.get("ingress") or []:
        if not isinstance(ingress, dict):
            continue
        addr = ingress.get("ip") or ingress.get("hostname")
        if addr:
            return str(addr)
    return ""


def service_ports(svc: dict) -> List[Dict[str, Any]]:
    ports = (svc.get("spec") or {}).get("ports") or []
    return [p for p in ports if isinstance(p, dict) and p.get("port")]


def target_of(service_port: dict) -> Any:
    """
    The target of a service port: an int, a port name, or the service
    port number when targetPort is unset.
    """
    target = service_port.get("targetPort")
    if target is None or target == "":
        return int(service_port["port"])
    if isinstance(target, str) and target.isdigit():
        return int(target)
    return target


# ── Endpoint resolution ───────────────────────────────────────


def resolve_subset_port(subset: dict, service_port: dict) -> Tuple[Optional[int], str]:
    """
    Find the endpoint port of one subset that serves a service port.

    Numeric targets match by port number. Named targets match by endpoint
    port name, which Kubernetes copies from the service port name; an
    unnamed service port matches the single port of an unnamed subset.

    Returns (port, "") or (None, reason).
    """
    ep_ports = [p for p in subset.get("ports") or [] if isinstance(p, dict) and p.get("port")]
    target = target_of(service_port)

    if isinstance(target, int):
        matches = [p for p in ep_ports if int(p["port"]) == target]
    else:
        sp_name = service_port.get("name") or ""
        if sp_name:
            matches = [p for p in ep_ports if p.get("name") == sp_name]
        else:
            matches = [p for p in ep_ports if not p.get("name")]

    ports = sorted({int(p["port"]) for p in matches})
    if not ports:
        return None, f"no endpoint port matches target {target!r}"
    if len(ports) > 1:
        return None, f"target {target!r} is ambiguous (ports {ports})"
    return ports[0], ""


def ready_addresses(subset: dict) -> List[str]:
    """IPs of ready addresses only; notReadyAddresses never serve traffic."""
    out: List[str] = []
    for addr in subset.get("addresses") or []:
        if isinstance(addr, dict) and addr.get("ip"):
            out.append(str(addr["ip"]))
    return out


def resolve_backends(
    subsets: List[dict], service_port: dict
) -> Tuple[Optional[int], List[str]]:
    """
    Resolve one service port against endpoint subsets.

    Returns (target_port, ["ip:port", ...]) in subset then address order.
    target_port is the first resolved container port, None if no subset
    matched.
    """
    target_port: Optional[int] = None
    backends: List[str] = []

    for i, subset in enumerate(subsets):
        if not isinstance(subset, dict):
            continue
        port, reason = resolve_subset_port(subset, service_port)
        if port is None:
            logger.debug(f"resolve_backends: subset #{i} skipped: {reason}")
            continue
        if target_port is None:
            target_port = port
        for ip in ready_addresses(subset):
            backends.append(f"{ip}:{port}")

    return target_port, backends
