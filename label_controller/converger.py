"""Applies a LabelDelta to a pod with a single conditional write."""

import copy
import enum
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from kubernetes import client

from .exceptions import (
    ConflictError,
    InvariantViolation,
    NotFoundError,
    ReconcileCancelled,
    StoreError,
)
from .projections import MANAGED_LABEL_KEYS, LabelDelta
from .store import pod_key

logger = logging.getLogger(__name__)


class ReconcileResult(enum.Enum):
    CONVERGED = "converged"
    UNCHANGED = "unchanged"
    STALE = "stale"
    CONFLICT = "conflict"
    TRANSIENT_FAILURE = "transient-failure"


@dataclass(frozen=True)
class Outcome:
    """Result of one pass, with the store error for TRANSIENT_FAILURE."""
    result: ReconcileResult
    error: Optional[StoreError] = None


class Converger:
    """Writes label changes back to the store."""

    def __init__(self, store):
        """
        Initialize the converger.

        Args:
            store: Object with ``update(pod)`` raising NotFoundError,
                ConflictError or StoreError
        """
        self.store = store

    def apply(
        self,
        pod: client.V1Pod,
        delta: LabelDelta,
        cancel: Optional[threading.Event] = None
    ) -> Outcome:
        """
        Apply a delta to a pod.

        The pod is copied before it is modified, so the caller's object is
        never mutated. Every addition and removal goes into one update; the
        update carries the resourceVersion the pod was read with. Failures
        are classified and returned, never retried here.

        Args:
            pod: Pod as read from the store
            delta: Changes computed for this pod
            cancel: Set when the pass should be abandoned

        Returns:
            The Outcome of the pass

        Raises:
            InvariantViolation: the delta touches a label this controller does not own
            ReconcileCancelled: cancel was set before the write
        """
        key = pod_key(pod)

        if delta.is_empty():
            logger.debug(f"Pod {key} labels already converged")
            return Outcome(ReconcileResult.UNCHANGED)

        unmanaged = delta.keys() - MANAGED_LABEL_KEYS
        if unmanaged:
            raise InvariantViolation(
                f"Delta for pod {key} references unmanaged labels: {sorted(unmanaged)}"
            )

        updated = copy.deepcopy(pod)
        labels = dict(updated.metadata.labels or {})
        labels.update(delta.add)
        for label_key in delta.remove:
            labels.pop(label_key, None)
        updated.metadata.labels = labels

        if cancel is not None and cancel.is_set():
            raise ReconcileCancelled(f"Reconciliation of pod {key} cancelled before update")

        for label_key, value in sorted(delta.add.items()):
            logger.info(f"Adding label {label_key}={value} to pod {key}")
        for label_key in sorted(delta.remove):
            logger.info(f"Removing label {label_key} from pod {key}")

        try:
            self.store.update(updated)
        except NotFoundError:
            logger.info(f"Pod {key} was deleted before its labels could be updated")
            return Outcome(ReconcileResult.STALE)
        except ConflictError:
            logger.info(f"Conflict updating pod {key}, the pod reference is outdated")
            return Outcome(ReconcileResult.CONFLICT)
        except StoreError as e:
            logger.error(f"Error updating pod {key}: {e}")
            return Outcome(ReconcileResult.TRANSIENT_FAILURE, error=e)

        logger.info(f"Updated labels on pod {key}")
        return Outcome(ReconcileResult.CONVERGED)
