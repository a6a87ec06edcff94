"""Main controller logic for the Pod Label Controller."""

import logging
import threading
import time
from typing import List, Optional

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from .config import (
    DEFAULT_WORKERS,
    RESYNC_INTERVAL_SECONDS,
    WATCH_ERROR_BACKOFF_SECONDS,
    WATCH_TIMEOUT_SECONDS,
)
from .exceptions import InvariantViolation, ReconcileCancelled
from .reconciler import LabelReconciler, directive_for
from .store import PodStore, pod_key
from .workqueue import WorkQueue

logger = logging.getLogger(__name__)


class LabelController:
    """
    Watches Pods and keeps their managed labels in sync with the
    add-label annotation.

    Watch events and a periodic resync feed pod keys into a WorkQueue;
    worker threads take keys off the queue and run one reconciliation pass
    each, then requeue the key as the pass outcome directs.
    """

    def __init__(
        self,
        namespace: str = "",
        store: Optional[PodStore] = None,
        workers: int = DEFAULT_WORKERS,
        v1: Optional[client.CoreV1Api] = None,
        queue: Optional[WorkQueue] = None
    ):
        """
        Initialize the controller.

        Args:
            namespace: Namespace to watch ("" for all namespaces)
            store: Store used for reads and writes (defaults to PodStore)
            workers: Number of worker threads
            v1: CoreV1Api used for list and watch
            queue: Work queue (a new one is created when omitted)
        """
        self.namespace = namespace
        self.workers = workers
        self.v1 = v1 if v1 is not None else client.CoreV1Api()
        self.store = store if store is not None else PodStore(self.v1)
        self.reconciler = LabelReconciler(self.store)
        self.queue = queue if queue is not None else WorkQueue()

        self._stop_event = threading.Event()
        self._watch: Optional[watch.Watch] = None
        self._watch_lock = threading.Lock()
        self._threads: List[threading.Thread] = []

    def handle_pod_event(self, event_type: str, pod) -> None:
        """
        Handle a pod watch event.

        Args:
            event_type: ADDED, MODIFIED, or DELETED
            pod: The pod object from the event
        """
        if event_type == "DELETED":
            return
        if event_type not in ("ADDED", "MODIFIED"):
            logger.debug(f"Ignoring pod event {event_type}")
            return
        self.queue.add(pod_key(pod))

    def _list_pods(self):
        if self.namespace:
            return self.v1.list_namespaced_pod(namespace=self.namespace)
        return self.v1.list_pod_for_all_namespaces()

    def resync(self) -> int:
        """
        Enqueue every pod in scope.

        Returns:
            Number of pods enqueued
        """
        try:
            pods = self._list_pods()
        except ApiException as e:
            logger.error(f"Error listing pods for resync: {e.status} {e.reason}")
            return 0

        for pod in pods.items:
            self.queue.add(pod_key(pod))
        logger.debug(f"Resync enqueued {len(pods.items)} pod(s)")
        return len(pods.items)

    def watch_pods(self) -> None:
        """Watch for Pod events in a loop."""
        logger.info("Starting pod watcher...")

        while not self._stop_event.is_set():
            w = watch.Watch()
            with self._watch_lock:
                self._watch = w
            try:
                if self.namespace:
                    stream = w.stream(
                        self.v1.list_namespaced_pod,
                        namespace=self.namespace,
                        timeout_seconds=WATCH_TIMEOUT_SECONDS
                    )
                else:
                    stream = w.stream(
                        self.v1.list_pod_for_all_namespaces,
                        timeout_seconds=WATCH_TIMEOUT_SECONDS
                    )

                for event in stream:
                    if self._stop_event.is_set():
                        break
                    self.handle_pod_event(event["type"], event["object"])

            except ApiException as e:
                logger.error(f"Pod watch error: {e.status} {e.reason}")
                self._stop_event.wait(WATCH_ERROR_BACKOFF_SECONDS)
            except Exception as e:
                logger.error(f"Unexpected error in pod watcher: {e}")
                self._stop_event.wait(WATCH_ERROR_BACKOFF_SECONDS)
            finally:
                with self._watch_lock:
                    self._watch = None

    def periodic_resync(self) -> None:
        """Periodically enqueue every pod."""
        logger.info(f"Starting periodic resync (interval: {RESYNC_INTERVAL_SECONDS}s)")

        while not self._stop_event.wait(RESYNC_INTERVAL_SECONDS):
            self.resync()

    def process_next_item(self, timeout: Optional[float] = None) -> bool:
        """
        Run one reconciliation pass for the next queued key.

        Args:
            timeout: Seconds to wait for a key

        Returns:
            False if no key was available (timeout or shutdown)
        """
        key = self.queue.get(timeout=timeout)
        if key is None:
            return False

        try:
            outcome = self.reconciler.reconcile(key, self._stop_event)
        except ReconcileCancelled as e:
            logger.debug(str(e))
            self.queue.forget(key)
        except InvariantViolation:
            logger.exception(f"Invariant violated while reconciling pod {key}, dropping it")
            self.queue.forget(key)
        except Exception:
            logger.exception(f"Unexpected error reconciling pod {key}")
            self.queue.add_rate_limited(key)
        else:
            directive = directive_for(outcome)
            if not directive.requeue:
                self.queue.forget(key)
            elif directive.backoff:
                delay = self.queue.add_rate_limited(key)
                logger.info(f"Requeueing pod {key} in {delay:.1f}s after {outcome.result.value}")
            else:
                logger.debug(f"Requeueing pod {key} after {outcome.result.value}")
                self.queue.add(key)
        finally:
            self.queue.done(key)

        return True

    def worker(self) -> None:
        """Process keys until the controller stops."""
        while not self._stop_event.is_set():
            self.process_next_item()

    def start(self) -> None:
        """Start the watcher, resync and worker threads."""
        self._stop_event.clear()
        self.resync()

        self._threads = [
            threading.Thread(target=self.watch_pods, name="pod-watcher", daemon=True),
            threading.Thread(target=self.periodic_resync, name="periodic-resync", daemon=True),
        ]
        for i in range(self.workers):
            self._threads.append(
                threading.Thread(target=self.worker, name=f"worker-{i}", daemon=True)
            )
        for thread in self._threads:
            thread.start()

    def run(self) -> None:
        """Run the controller until interrupted."""
        logger.info("=" * 60)
        logger.info("Starting Pod Label Controller")
        logger.info("=" * 60)
        logger.info(f"Namespace: {self.namespace or 'all namespaces'}")
        logger.info(f"Workers: {self.workers}")

        self.start()
        logger.info("Controller is running. Press Ctrl+C to stop.")

        # Keep main thread alive
        try:
            while not self._stop_event.is_set():
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Shutdown requested...")
            self.stop()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the controller and wait for its threads."""
        logger.info("Stopping controller...")
        self._stop_event.set()
        self.queue.shut_down()
        with self._watch_lock:
            if self._watch is not None:
                self._watch.stop()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
