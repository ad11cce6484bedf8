"""
Kubeconfig loading.

Reads a kubeconfig file once at startup and returns an ApiClient for its
current context. Authentication (certificates, tokens, exec plugins,
auth providers) is handled by the kubernetes client library, which also
removes the temp files it writes for inline credentials at exit.
"""

import logging

import yaml
from kubernetes import client, config

from .errors import KubeconfigError

logger = logging.getLogger("kube_lb_sync")


def api_client_from_file(path: str) -> client.ApiClient:
    """Build an ApiClient for the current context of a kubeconfig file."""
    logger.debug(f"api_client_from_file: reading {path}")
    try:
        api_client = config.new_client_from_config(config_file=path)
    except config.ConfigException as e:
        raise KubeconfigError(f"load kubeconfig {path}: {e}") from e
    except yaml.YAMLError as e:
        raise KubeconfigError(f"unmarshal kubeconfig {path}: {e}") from e
    except (OSError, ValueError, TypeError, AttributeError, KeyError) as e:
        raise KubeconfigError(f"invalid kubeconfig {path}: {type(e).__name__}: {e}") from e

    logger.debug(f"api_client_from_file: server={api_client.configuration.host}")
    return api_client
