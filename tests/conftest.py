import copy

import pytest
from kubernetes import client

from label_controller.exceptions import ConflictError, NotFoundError, StoreError
from label_controller.store import pod_key


class FakePodStore:
    """In-memory pod store with resourceVersion compare-and-swap."""

    def __init__(self):
        self.pods = {}
        self.writes = []
        self.before_update = None
        self.get_error = None
        self.update_error = None
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def put(self, pod: client.V1Pod) -> client.V1Pod:
        pod = copy.deepcopy(pod)
        pod.metadata.resource_version = self._next_version()
        self.pods[pod_key(pod)] = pod
        # Callers get a read snapshot, like get()
        return copy.deepcopy(pod)

    def modify(self, key: str, fn) -> None:
        """Simulate another writer changing the pod."""
        pod = self.pods[key]
        fn(pod)
        pod.metadata.resource_version = self._next_version()

    def delete(self, key: str) -> None:
        self.pods.pop(key, None)

    def get(self, key: str) -> client.V1Pod:
        if self.get_error is not None:
            raise self.get_error
        if key not in self.pods:
            raise NotFoundError(f"Pod {key} not found", status=404)
        return copy.deepcopy(self.pods[key])

    def update(self, pod: client.V1Pod) -> client.V1Pod:
        key = pod_key(pod)
        if self.before_update is not None:
            self.before_update(key)
        self.writes.append(copy.deepcopy(pod))
        if self.update_error is not None:
            raise self.update_error
        current = self.pods.get(key)
        if current is None:
            raise NotFoundError(f"Pod {key} not found", status=404)
        if current.metadata.resource_version != pod.metadata.resource_version:
            raise ConflictError(f"Pod {key} was modified concurrently", status=409)
        return self.put(pod)


def _make_pod(
    name="web-1",
    namespace="default",
    annotations=None,
    labels=None,
    node_name=None,
    pod_ip=None,
):
    return client.V1Pod(
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            annotations=annotations,
            labels=labels,
            resource_version="1",
        ),
        spec=client.V1PodSpec(
            containers=[client.V1Container(name="app", image="nginx")],
            node_name=node_name,
        ),
        status=client.V1PodStatus(pod_ip=pod_ip),
    )


@pytest.fixture
def make_pod():
    return _make_pod


@pytest.fixture
def store():
    return FakePodStore()


@pytest.fixture
def unavailable():
    return StoreError("API error for pod default/web-1: 503 Service Unavailable", status=503)
