"""
Kubernetes API access for the step runner: Jobs, their pods, and the
short-lived Secrets that carry step credentials.
"""

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from typing import Dict, Optional
import logging

from controller.src.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

_apis: Dict[str, object] = {}

def init_k8s_client(in_cluster: Optional[bool] = None) -> bool:
    """
    Load cluster credentials and build the API clients.
    Returns False (after logging why) when the cluster is unreachable.
    """
    in_cluster = settings.k8s_in_cluster if in_cluster is None else in_cluster

    try:
        if in_cluster:
            config.load_incluster_config()
        else:
            config.load_kube_config()
        logger.info(f"Loaded {'in-cluster' if in_cluster else 'kubeconfig'} Kubernetes credentials")

        api_client = client.ApiClient()
        _apis["batch"] = client.BatchV1Api(api_client)
        _apis["core"] = client.CoreV1Api(api_client)

        # Fail early if the API server cannot be reached
        _apis["core"].list_namespace(limit=1)
    except Exception as e:
        _apis.clear()
        logger.error(f"Kubernetes client unavailable: {e}")
        return False

    logger.info("Kubernetes client ready")
    return True

def _api(kind: str):
    if kind not in _apis and not init_k8s_client():
        raise RuntimeError("Kubernetes client is not initialised")
    return _apis[kind]

def get_batch_api() -> client.BatchV1Api:
    """BatchV1 client, for step Jobs."""
    return _api("batch")

def get_core_api() -> client.CoreV1Api:
    """CoreV1 client, for pods, namespaces and Secrets."""
    return _api("core")

def ensure_namespace(namespace: str = None):
    """Create the step namespace unless it already exists."""
    namespace = namespace or settings.k8s_namespace
    core_v1 = get_core_api()

    try:
        core_v1.read_namespace(name=namespace)
        return
    except ApiException as e:
        if e.status != 404:
            raise

    core_v1.create_namespace(body=client.V1Namespace(metadata=client.V1ObjectMeta(name=namespace)))
    logger.info(f"Created namespace '{namespace}'")

def create_step_secret(name: str, data: Dict[str, str], labels: Dict[str, str] = None, namespace: str = None):
    """Create a short-lived Secret holding one step's credential variables."""
    namespace = namespace or settings.k8s_namespace
    secret = client.V1Secret(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels or {}),
        string_data=data,
        type="Opaque",
    )
    get_core_api().create_namespaced_secret(namespace=namespace, body=secret)
    logger.info(f"Created secret {name}")

def delete_secret(name: str, namespace: str = None):
    """Delete a Secret; a missing one is not an error."""
    namespace = namespace or settings.k8s_namespace

    try:
        get_core_api().delete_namespaced_secret(name=name, namespace=namespace)
        logger.info(f"Deleted secret {name}")
    except ApiException as e:
        if e.status != 404:
            logger.error(f"Failed to delete secret {name}: {e.reason}")

def delete_job(job_name: str, namespace: str = None):
    """Delete a step Job together with its pod, stopping it if still running."""
    namespace = namespace or settings.k8s_namespace

    try:
        get_batch_api().delete_namespaced_job(
            name=job_name,
            namespace=namespace,
            body=client.V1DeleteOptions(propagation_policy="Foreground"),
        )
        logger.info(f"Deleted job {job_name}")
    except ApiException as e:
        if e.status != 404:
            logger.error(f"Failed to delete job {job_name}: {e.reason}")
