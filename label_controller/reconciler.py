"""Reconciliation logic for the Pod Label Controller."""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from .converger import Converger, Outcome, ReconcileResult
from .exceptions import NotFoundError, ReconcileCancelled, StoreError
from .projections import compute_delta

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Directive:
    """What the scheduler should do with a key after a pass."""
    requeue: bool = False
    backoff: bool = False


def directive_for(outcome: Outcome) -> Directive:
    """
    Map a pass outcome to a scheduling directive.

    CONFLICT is requeued right away so the next pass re-reads the pod.
    TRANSIENT_FAILURE is requeued with per-key backoff. Every other result
    needs no further work for this cause.
    """
    if outcome.result is ReconcileResult.CONFLICT:
        return Directive(requeue=True)
    if outcome.result is ReconcileResult.TRANSIENT_FAILURE:
        return Directive(requeue=True, backoff=True)
    return Directive()


class LabelReconciler:
    """Runs one reconciliation pass per pod key."""

    def __init__(self, store):
        """
        Initialize the reconciler.

        Args:
            store: PodStore (or any object with the same get/update contract)
        """
        self.store = store
        self.converger = Converger(store)

    def reconcile(self, key: str, cancel: Optional[threading.Event] = None) -> Outcome:
        """
        Bring one pod's managed labels in line with its annotation.

        The pod is read fresh on every call and the delta recomputed from
        scratch, so duplicate or out-of-order calls are harmless.

        Args:
            key: "namespace/name" of the pod
            cancel: Set when the pass should be abandoned

        Returns:
            The Outcome of the pass

        Raises:
            InvariantViolation: propagated from the converger
            ReconcileCancelled: cancel was set before the pod was written
        """
        if cancel is not None and cancel.is_set():
            raise ReconcileCancelled(f"Reconciliation of pod {key} cancelled before read")

        try:
            pod = self.store.get(key)
        except NotFoundError:
            logger.debug(f"Pod {key} no longer exists, nothing to reconcile")
            return Outcome(ReconcileResult.STALE)
        except StoreError as e:
            logger.error(f"Error getting pod {key}: {e}")
            return Outcome(ReconcileResult.TRANSIENT_FAILURE, error=e)

        logger.debug(f"Reconciling pod {key}")
        delta = compute_delta(pod)
        return self.converger.apply(pod, delta, cancel)
