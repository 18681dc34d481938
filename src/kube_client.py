"""Kubernetes client abstraction module.

All kubernetes library usage is isolated here. No other module imports
from kubernetes. Unlike a best-effort reader, every call here lets API
errors propagate so callers can decide whether to skip a cycle or fail.
"""

import logging
import os
from typing import Dict, List, Optional

from kubernetes import client, config as k8s_config
from kubernetes.client.exceptions import ApiException

from config import KubernetesConfig

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"


def build_core_api(config: KubernetesConfig) -> client.CoreV1Api:
    """Construct and return a configured CoreV1Api.

    Uses the in-cluster service account when running inside a pod,
    otherwise the kubeconfig file from the configuration.

    Args:
        config: Cluster connection settings

    Returns:
        CoreV1Api: Configured core API client

    Raises:
        kubernetes.config.ConfigException: If no usable credentials are found
    """
    if os.path.exists(SERVICE_ACCOUNT_TOKEN_PATH):
        logger.debug("Service account token found, using in-cluster config")
        k8s_config.load_incluster_config()
    else:
        logger.debug(f"Using kubeconfig {config.kubeconfig!r} (context={config.context!r})")
        k8s_config.load_kube_config(config_file=config.kubeconfig, context=config.context)

    return client.CoreV1Api()


def list_pods(
    core_api: client.CoreV1Api, namespace: str, label_selector: str
) -> List[client.V1Pod]:
    """List pods, filtered server-side by namespace and label selector.

    Args:
        core_api: Configured CoreV1Api instance
        namespace: Namespace to list, or "" for all namespaces
        label_selector: Label selector expression, or "" for no filter

    Returns:
        List of V1Pod objects
    """
    kwargs = {}
    if label_selector:
        kwargs["label_selector"] = label_selector

    if namespace:
        pod_list = core_api.list_namespaced_pod(namespace, **kwargs)
    else:
        pod_list = core_api.list_pod_for_all_namespaces(**kwargs)

    return list(pod_list.items or [])


def read_config_map(
    core_api: client.CoreV1Api, namespace: str, name: str
) -> client.V1ConfigMap:
    """Fetch a ConfigMap by name. Raises ApiException (404 when absent)."""
    return core_api.read_namespaced_config_map(name, namespace)


def _build_config_map(
    namespace: str, name: str, data: Dict[str, str], labels: Dict[str, str]
) -> client.V1ConfigMap:
    return client.V1ConfigMap(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=dict(labels)),
        data=dict(data),
    )


def create_config_map(
    core_api: client.CoreV1Api,
    namespace: str,
    name: str,
    data: Dict[str, str],
    labels: Dict[str, str],
) -> client.V1ConfigMap:
    """Create a ConfigMap carrying data and labels."""
    body = _build_config_map(namespace, name, data, labels)
    return core_api.create_namespaced_config_map(namespace, body)


def replace_config_map(
    core_api: client.CoreV1Api,
    namespace: str,
    name: str,
    data: Dict[str, str],
    labels: Dict[str, str],
) -> client.V1ConfigMap:
    """Replace a ConfigMap's whole payload and labels.

    The body carries no resourceVersion, so the API server applies it
    unconditionally.
    """
    body = _build_config_map(namespace, name, data, labels)
    return core_api.replace_namespaced_config_map(name, namespace, body)


def is_not_found(error: BaseException) -> bool:
    """Return True when error is an API 404."""
    return isinstance(error, ApiException) and error.status == 404


def describe_error(error: BaseException) -> str:
    """Short description of an API error for log messages."""
    if isinstance(error, ApiException):
        return f"{error.status} {error.reason}"
    return str(error)


def context_name(config: KubernetesConfig) -> Optional[str]:
    """Return the kubeconfig context that will be used, if determinable."""
    if os.path.exists(SERVICE_ACCOUNT_TOKEN_PATH):
        return None
    if config.context:
        return config.context
    try:
        _, active = k8s_config.list_kube_config_contexts(config_file=config.kubeconfig)
    except (k8s_config.ConfigException, OSError):
        return None
    if not active:
        return None
    return active.get("name")
