import pytest
from kubernetes.client import ApiClient
from kubernetes.client.rest import ApiException

from kube_lb_sync.config import Config
from kube_lb_sync.kube_client import ClusterClient


class FakeCluster:
    """In-memory CoreV1Api answering the two calls the client makes."""

    def __init__(self):
        self.api_client = ApiClient()
        self.services = []
        self.endpoints = {}
        self.calls = []
        self.fail_list = None

    # ── object factories ──────────────────────────────────────

    def add_service(self, name, namespace="default", type="LoadBalancer",
                    lb_ip="10.0.0.5", ports=None, ingress=None):
        svc = {
            "metadata": {"name": name, "namespace": namespace},
            "spec": {
                "type": type,
                "ports": ports if ports is not None else [{"port": 80, "targetPort": 8080}],
            },
        }
        if lb_ip is not None:
            svc["spec"]["loadBalancerIP"] = lb_ip
        if ingress is not None:
            svc["status"] = {"loadBalancer": {"ingress": ingress}}
        self.services.append(svc)
        return svc

    def set_endpoints(self, name, subsets, namespace="default", reported_as=None):
        got_ns, got_name = reported_as or (namespace, name)
        self.endpoints[(namespace, name)] = {
            "metadata": {"name": got_name, "namespace": got_ns},
            "subsets": subsets,
        }

    # ── CoreV1Api interface ───────────────────────────────────

    def list_service_for_all_namespaces(self, _request_timeout=None):
        self.calls.append("/api/v1/services")
        if self.fail_list is not None:
            raise self.fail_list
        return {"kind": "ServiceList", "items": list(self.services)}

    def read_namespaced_endpoints(self, name, namespace, _request_timeout=None):
        self.calls.append(f"/api/v1/namespaces/{namespace}/endpoints/{name}")
        ep = self.endpoints.get((namespace, name))
        if ep is None:
            raise ApiException(status=404, reason="Not Found")
        return ep


class RecordingReloader:
    def __init__(self, output="reloaded", exit_code=0):
        self.output = output
        self.exit_code = exit_code
        self.calls = 0

    def run(self):
        self.calls += 1
        return self.output, self.exit_code


def subset(ips, port=8080, port_name=None, not_ready=None):
    ep_port = {"port": port, "protocol": "TCP"}
    if port_name:
        ep_port["name"] = port_name
    out = {"addresses": [{"ip": ip} for ip in ips], "ports": [ep_port]}
    if not_ready:
        out["notReadyAddresses"] = [{"ip": ip} for ip in not_ready]
    return out


def make_config(**overrides):
    values = dict(
        kubeconfig="/dev/null",
        template_file="config.tmpl",
        config_file="config.conf",
        reload_script="./reload.sh",
        sync_period=10,
        reload_timeout=60.0,
        fetch_retries=0,
        fetch_backoff=1.0,
        api_timeout=10.0,
        change_detection="ordered",
        verbose=False,
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def client(cluster):
    return ClusterClient(cluster, timeout=5)
