"""Desired-state computation for the managed label set.

Each managed label is described by a :class:`ProjectionKind`: the value of the
intent annotation that asks for it, the label key it owns and a function that
projects the label value out of the Pod. :func:`compute_delta` walks the table
and returns the additions and removals needed to converge one Pod. It does no
I/O and cannot fail.
"""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Optional, Tuple

from kubernetes import client

from .config import (
    ADD_LABEL_ANNOTATION,
    LABEL_VALUE_MAX_LENGTH,
    LEGACY_POD_NAME_ANNOTATION,
    LEGACY_POD_NAME_LABEL,
    POD_IP_LABEL,
    POD_NAME_LABEL,
    POD_NODE_NAME_LABEL,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectionKind:
    """One annotation value mapped to the label it controls."""
    annotation_value: str
    label_key: str
    project: Callable[[client.V1Pod], str]


@dataclass(frozen=True)
class LabelDelta:
    """Labels to set and label keys to drop for one reconciliation pass."""
    add: Dict[str, str] = field(default_factory=dict)
    remove: FrozenSet[str] = frozenset()

    def is_empty(self) -> bool:
        return not self.add and not self.remove

    def keys(self) -> FrozenSet[str]:
        return frozenset(self.add) | self.remove


def sanitize_label_value(val: str) -> str:
    """
    Turn a projected field into a valid label value.

    Characters outside [A-Za-z0-9-_.] become '-', separator runs collapse,
    non-alphanumeric ends are trimmed, and values over 63 characters are
    truncated with a 6-character hash of the original as suffix. An empty
    input stays empty.
    """
    if not val:
        return ""
    v = re.sub(r"[^A-Za-z0-9-_.]", "-", val)
    v = re.sub(r"[-_.]{2,}", "-", v)
    v = re.sub(r"^[^A-Za-z0-9]+", "", v)
    v = re.sub(r"[^A-Za-z0-9]+$", "", v)
    h = hashlib.sha1(val.encode()).hexdigest()[:6]
    if not v:
        return h
    if len(v) > LABEL_VALUE_MAX_LENGTH:
        v = re.sub(r"[^A-Za-z0-9]+$", "", v[:LABEL_VALUE_MAX_LENGTH - 7])
        v = f"{v}-{h}" if v else h
    return v


def _pod_name(pod: client.V1Pod) -> str:
    return pod.metadata.name or ""


def _node_name(pod: client.V1Pod) -> str:
    if pod.spec is None:
        return ""
    return pod.spec.node_name or ""


def _pod_ip(pod: client.V1Pod) -> str:
    if pod.status is None:
        return ""
    return pod.status.pod_ip or ""


PROJECTION_KINDS: Tuple[ProjectionKind, ...] = (
    ProjectionKind("pod-name", POD_NAME_LABEL, _pod_name),
    ProjectionKind("node-name", POD_NODE_NAME_LABEL, _node_name),
    ProjectionKind("pod-ip", POD_IP_LABEL, _pod_ip),
)

# Keys written by earlier releases; removed whenever found
RETIRED_LABEL_KEYS: FrozenSet[str] = frozenset(k for k in (LEGACY_POD_NAME_LABEL,) if k)

MANAGED_LABEL_KEYS: FrozenSet[str] = (
    frozenset(k.label_key for k in PROJECTION_KINDS) | RETIRED_LABEL_KEYS
)


def _intent(annotations: Dict[str, str]) -> Tuple[Optional[str], bool]:
    """
    Read the intent channel.

    Returns:
        Tuple of (requested annotation value, legacy pod-name opt-in). The
        first element is None when the annotation key is absent.
    """
    requested = annotations.get(ADD_LABEL_ANNOTATION)
    legacy = bool(LEGACY_POD_NAME_ANNOTATION) and annotations.get(LEGACY_POD_NAME_ANNOTATION) == "true"
    return requested, legacy


def compute_delta(pod: client.V1Pod) -> LabelDelta:
    """
    Compute the label changes that bring a pod to its desired state.

    Every projection kind is evaluated on its own; several kinds may be added
    or removed in the same pass. A label whose value no longer matches the
    projected value counts as absent, so a wanted kind overwrites it.

    Args:
        pod: Kubernetes Pod object as read from the store

    Returns:
        The LabelDelta for this pod (empty when already converged)
    """
    annotations = pod.metadata.annotations or {}
    labels = pod.metadata.labels or {}
    requested, legacy = _intent(annotations)
    annotation_missing = requested is None and not legacy

    add: Dict[str, str] = {}
    remove = set()

    for kind in PROJECTION_KINDS:
        value = sanitize_label_value(kind.project(pod))
        wanted = requested == kind.annotation_value or (
            legacy and kind.label_key == POD_NAME_LABEL
        )
        present = kind.label_key in labels and labels[kind.label_key] == value

        if wanted and not present:
            if not value:
                logger.debug(
                    f"Pod {pod.metadata.namespace}/{pod.metadata.name} wants "
                    f"{kind.label_key} but has no value for it yet"
                )
                continue
            add[kind.label_key] = value
        elif present and (not wanted or annotation_missing):
            remove.add(kind.label_key)

    remove.update(k for k in RETIRED_LABEL_KEYS if k in labels)

    return LabelDelta(add=add, remove=frozenset(remove))
