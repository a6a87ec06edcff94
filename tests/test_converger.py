import threading

import pytest

from label_controller.config import ADD_LABEL_ANNOTATION, POD_IP_LABEL, POD_NAME_LABEL
from label_controller.converger import Converger, ReconcileResult
from label_controller.exceptions import InvariantViolation, ReconcileCancelled
from label_controller.projections import LabelDelta


def test_empty_delta_is_unchanged_without_write(store, make_pod) -> None:
    pod = store.put(make_pod())

    outcome = Converger(store).apply(pod, LabelDelta())

    assert outcome.result is ReconcileResult.UNCHANGED
    assert store.writes == []


def test_apply_adds_and_removes_in_one_write(store, make_pod) -> None:
    pod = store.put(make_pod(labels={"app": "web", POD_NAME_LABEL: "web-1"}))
    delta = LabelDelta(add={POD_IP_LABEL: "10.0.0.7"}, remove=frozenset({POD_NAME_LABEL}))

    outcome = Converger(store).apply(pod, delta)

    assert outcome.result is ReconcileResult.CONVERGED
    assert len(store.writes) == 1
    assert store.pods["default/web-1"].metadata.labels == {"app": "web", POD_IP_LABEL: "10.0.0.7"}


def test_apply_does_not_mutate_callers_pod(store, make_pod) -> None:
    pod = store.put(make_pod(labels={"app": "web"}))

    Converger(store).apply(pod, LabelDelta(add={POD_NAME_LABEL: "web-1"}))

    assert pod.metadata.labels == {"app": "web"}


def test_none_labels_treated_as_empty(store, make_pod) -> None:
    pod = store.put(make_pod(labels=None))

    outcome = Converger(store).apply(pod, LabelDelta(add={POD_NAME_LABEL: "web-1"}))

    assert outcome.result is ReconcileResult.CONVERGED
    assert store.pods["default/web-1"].metadata.labels == {POD_NAME_LABEL: "web-1"}


def test_not_found_on_write_is_stale(store, make_pod) -> None:
    pod = store.put(make_pod())
    store.delete("default/web-1")

    outcome = Converger(store).apply(pod, LabelDelta(add={POD_NAME_LABEL: "web-1"}))

    assert outcome.result is ReconcileResult.STALE
    assert outcome.error is None


def test_version_change_is_conflict(store, make_pod) -> None:
    pod = store.put(make_pod(labels={"app": "web"}))
    store.modify("default/web-1", lambda p: p.metadata.labels.update({"team": "payments"}))

    outcome = Converger(store).apply(pod, LabelDelta(add={POD_NAME_LABEL: "web-1"}))

    assert outcome.result is ReconcileResult.CONFLICT
    assert len(store.writes) == 1


def test_other_store_error_is_transient_failure(store, make_pod, unavailable) -> None:
    pod = store.put(make_pod())
    store.update_error = unavailable

    outcome = Converger(store).apply(pod, LabelDelta(add={POD_NAME_LABEL: "web-1"}))

    assert outcome.result is ReconcileResult.TRANSIENT_FAILURE
    assert outcome.error is unavailable


def test_unmanaged_label_in_delta_is_fatal(store, make_pod) -> None:
    pod = store.put(make_pod(labels={"app": "web"}))

    with pytest.raises(InvariantViolation):
        Converger(store).apply(pod, LabelDelta(remove=frozenset({"app"})))

    assert store.writes == []


def test_cancelled_pass_issues_no_write(store, make_pod) -> None:
    pod = store.put(make_pod(annotations={ADD_LABEL_ANNOTATION: "pod-name"}))
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(ReconcileCancelled):
        Converger(store).apply(pod, LabelDelta(add={POD_NAME_LABEL: "web-1"}), cancel)

    assert store.writes == []
