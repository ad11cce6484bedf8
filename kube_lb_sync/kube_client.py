"""
Kubernetes API client.

Read-only queries against the cluster API server: all services across
namespaces, and the endpoints of a single service. Objects are returned
in their JSON form (camelCase dicts) for the normalizer helpers.
"""

import logging
from typing import Any, List, Optional, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException

from .config import Config
from .errors import QueryError
from .kubeconfig import api_client_from_file
from .normalizer import resolve_backends, service_key

logger = logging.getLogger("kube_lb_sync")


class ClusterClient:
    """Fetches Service and Endpoints objects through CoreV1Api."""

    def __init__(self, core_v1: client.CoreV1Api, timeout: float = 10) -> None:
        self._api = core_v1
        self._timeout = timeout
        logger.debug(f"ClusterClient initialized: timeout={self._timeout}s")

    @classmethod
    def from_config(cls, config: Config) -> "ClusterClient":
        """Build a client from the kubeconfig named in the configuration."""
        api_client = api_client_from_file(config.kubeconfig)
        return cls(client.CoreV1Api(api_client), timeout=config.api_timeout)

    # ── Internal ──────────────────────────────────────────────

    def _to_dict(self, obj: Any) -> dict:
        data = self._api.api_client.sanitize_for_serialization(obj)
        return data if isinstance(data, dict) else {}

    # ── Public API ────────────────────────────────────────────

    def list_exposable_services(self) -> List[dict]:
        """List every Service in every namespace."""
        logger.debug("list_exposable_services: listing services in all namespaces")
        try:
            result = self._api.list_service_for_all_namespaces(_request_timeout=self._timeout)
        except Exception as e:
            logger.debug(f"list_exposable_services: exception: {e}")
            raise QueryError(f"list services failed: {e}") from e

        items = self._to_dict(result).get("items") or []
        logger.debug(f"list_exposable_services: {len(items)} services listed")
        return [s for s in items if isinstance(s, dict)]

    def get_endpoint_subsets(self, name: str, namespace: str) -> List[dict]:
        """
        Read the Endpoints object of a service and return its subsets.

        A missing object, or one answering for another name/namespace,
        yields no subsets.
        """
        try:
            result = self._api.read_namespaced_endpoints(
                name, namespace, _request_timeout=self._timeout
            )
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"get_endpoint_subsets: no endpoints object for {namespace}/{name}")
                return []
            raise QueryError(f"read endpoints {namespace}/{name} failed: {e.status} {e.reason}") from e
        except Exception as e:
            logger.debug(f"get_endpoint_subsets: exception: {e}")
            raise QueryError(f"read endpoints {namespace}/{name} failed: {e}") from e

        data = self._to_dict(result)
        got_name, got_namespace = service_key(data)
        if got_name != name or got_namespace != namespace:
            logger.debug(
                f"get_endpoint_subsets: asked for {namespace}/{name}, "
                f"got {got_namespace}/{got_name}, ignored"
            )
            return []

        subsets = data.get("subsets") or []
        return [s for s in subsets if isinstance(s, dict)]

    def get_backends(
        self, name: str, namespace: str, service_port: dict
    ) -> Tuple[Optional[int], List[str]]:
        """Resolve one service port to (target_port, ["ip:port", ...])."""
        subsets = self.get_endpoint_subsets(name, namespace)
        target_port, backends = resolve_backends(subsets, service_port)
        logger.debug(f" -> Found Endpoints for {namespace}/{name}:{service_port.get('port')}: {backends}")
        return target_port, backends
