"""Access to Pods in the Kubernetes API server."""

import logging
from typing import Optional, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException

from .exceptions import ConflictError, NotFoundError, StoreError

logger = logging.getLogger(__name__)


def split_key(key: str) -> Tuple[str, str]:
    """Split a "namespace/name" key. A key without a slash is in "default"."""
    namespace, _, name = key.rpartition("/")
    return namespace or "default", name


def pod_key(pod: client.V1Pod) -> str:
    """Create the reconciliation key for a pod."""
    return f"{pod.metadata.namespace}/{pod.metadata.name}"


def _translate(e: ApiException, key: str) -> StoreError:
    if e.status == 404:
        return NotFoundError(f"Pod {key} not found", status=e.status)
    if e.status == 409:
        return ConflictError(f"Pod {key} was modified concurrently", status=e.status)
    return StoreError(f"API error for pod {key}: {e.status} {e.reason}", status=e.status or 0)


class PodStore:
    """Reads pods and writes them back under optimistic concurrency."""

    def __init__(self, v1: Optional[client.CoreV1Api] = None):
        """
        Initialize the store.

        Args:
            v1: CoreV1Api to use (a new one is created when omitted)
        """
        self.v1 = v1 if v1 is not None else client.CoreV1Api()

    def get(self, key: str) -> client.V1Pod:
        """
        Read a pod.

        Args:
            key: "namespace/name" of the pod

        Returns:
            The current V1Pod, including its resourceVersion

        Raises:
            NotFoundError: the pod does not exist
            StoreError: any other API failure
        """
        namespace, name = split_key(key)
        try:
            return self.v1.read_namespaced_pod(name=name, namespace=namespace)
        except ApiException as e:
            raise _translate(e, key) from e

    def update(self, pod: client.V1Pod) -> client.V1Pod:
        """
        Replace a pod. The write is conditional on the resourceVersion the
        pod carries, so the API server rejects it with 409 if the pod changed
        since it was read.

        Raises:
            NotFoundError: the pod was deleted
            ConflictError: the pod's resourceVersion changed
            StoreError: any other API failure
        """
        key = pod_key(pod)
        try:
            return self.v1.replace_namespaced_pod(
                name=pod.metadata.name,
                namespace=pod.metadata.namespace,
                body=pod
            )
        except ApiException as e:
            raise _translate(e, key) from e


class DryRunPodStore(PodStore):
    """PodStore that reads from the cluster but never writes."""

    def update(self, pod: client.V1Pod) -> client.V1Pod:
        logger.info(f"[DRY-RUN] Would update pod {pod_key(pod)} labels to {pod.metadata.labels}")
        return pod
