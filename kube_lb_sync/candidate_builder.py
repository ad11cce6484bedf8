"""
Candidate builder.

Turns the raw service listing into the ordered list of ExposureRecords
that the proxy template is rendered from.

Eligibility:
  - spec.type must be "LoadBalancer"
  - the service must have an external address (spec.loadBalancerIP or
    status.loadBalancer.ingress)
  - each declared port becomes one record named <namespace>_<name>_<port>,
    only if at least one ready endpoint backs it

Endpoints are looked up per port through the cluster client, so the
endpoint view may lag the service view; the next cycle converges.
"""

import logging
from typing import List

from .kube_client import ClusterClient
from .normalizer import (
    LOAD_BALANCER,
    external_address,
    rule_name,
    service_key,
    service_ports,
    service_type,
)
from .records import ExposureRecord

logger = logging.getLogger("kube_lb_sync")


class CandidateBuilder:
    """Filters services and resolves their ports into ExposureRecords."""

    def __init__(self, client: ClusterClient) -> None:
        self._client = client

    def build(self, raw_services: List[dict]) -> List[ExposureRecord]:
        """Build records in listing order; QueryError from endpoint lookups propagates."""
        records: List[ExposureRecord] = []

        for svc in raw_services:
            name, namespace = service_key(svc)
            svc_type = service_type(svc)
            logger.debug(f"Service Candidate : {namespace}:{name} type={svc_type}")

            if svc_type != LOAD_BALANCER:
                logger.debug(f" - Dropped candidate : {name}, not loadbalancer type")
                continue

            address = external_address(svc)
            if not address:
                logger.debug(f" - Dropped candidate : {name}, no loadbalancer IP")
                continue

            records.extend(self._build_service(svc, name, namespace, address))

        logger.debug(f"build: {len(records)} candidates from {len(raw_services)} services")
        return records

    def _build_service(
        self, svc: dict, name: str, namespace: str, address: str
    ) -> List[ExposureRecord]:
        out: List[ExposureRecord] = []

        for sp in service_ports(svc):
            port = int(sp["port"])
            target_port, backends = self._client.get_backends(name, namespace, sp)

            if not backends or target_port is None:
                logger.debug(f" - No endpoints found for service {namespace}/{name}, port {port}")
                logger.debug(f" - Dropped candidate : {name}:{port}")
                continue

            record = ExposureRecord(
                name=rule_name(namespace, name, port),
                namespace=namespace,
                service=name,
                load_balancer_address=address,
                exposed_port=port,
                target_port=target_port,
                backends=tuple(backends),
            )
            out.append(record)
            logger.debug(f"Candidate OK : {record}")

        return out
