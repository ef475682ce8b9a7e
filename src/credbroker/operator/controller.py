"""
credbroker.operator.controller

Runs the reconcilers: startup sweep, watch pump, workers and periodic sweeps.

Responsibilities:
- Garbage-collect each backend before any event is processed.
- Route ServiceAccount watch events through each reconciler's predicate into
  its work queue.
- Run one worker per reconciler, requeueing failed keys with backoff.
- Optionally re-sweep on an interval, enqueueing orphans instead of deleting inline.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Sequence

from credbroker.errors import CredbrokerError
from credbroker.kube.identities import IdentitySource
from credbroker.observability.logging import get_logger
from credbroker.operator.reconciler import BackendReconciler
from credbroker.operator.workqueue import WorkQueue
from credbroker.settings import OperatorSettings

log = get_logger(__name__)

QueueKey = tuple[str, str]


class Controller:
    def __init__(
        self,
        *,
        reconcilers: Sequence[BackendReconciler],
        identities: IdentitySource,
        settings: OperatorSettings,
    ) -> None:
        self.reconcilers = list(reconcilers)
        self.identities = identities
        self.settings = settings
        self.queues: dict[str, WorkQueue[QueueKey]] = {
            r.name: WorkQueue(
                base_delay=settings.requeue_base_delay,
                max_delay=settings.requeue_max_delay,
            )
            for r in self.reconcilers
        }

    async def run(self) -> None:
        """
        Runs until cancelled or until the watch ends. A failed startup sweep or a
        watch failure is raised to the caller.
        """

        for reconciler in self.reconcilers:
            await reconciler.garbage_collect()

        tasks = [
            asyncio.create_task(self._worker(r, self.queues[r.name]), name=f"worker-{r.name}")
            for r in self.reconcilers
        ]
        tasks.append(asyncio.create_task(self._pump(), name="watch-pump"))
        if self.settings.gc_interval_seconds > 0:
            tasks.extend(
                asyncio.create_task(self._sweep(r, self.queues[r.name]), name=f"sweep-{r.name}")
                for r in self.reconcilers
            )

        log.info("controller_started", backends=[r.name for r in self.reconcilers])
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                task.result()
        finally:
            for task in tasks:
                task.cancel()
            for task in tasks:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            for queue in self.queues.values():
                queue.shutdown()
            log.info("controller_stopped")

    async def _pump(self) -> None:
        async for event in self.identities.watch():
            for reconciler in self.reconcilers:
                if reconciler.is_interested(event):
                    self.queues[reconciler.name].add((event.namespace, event.name))

    async def _worker(self, reconciler: BackendReconciler, queue: WorkQueue[QueueKey]) -> None:
        while True:
            key = await queue.get()
            namespace, name = key
            try:
                await reconciler.reconcile(namespace, name)
            except CredbrokerError as e:
                delay = queue.requeue(key)
                log.error(
                    "reconcile_failed",
                    backend=reconciler.name,
                    namespace=namespace,
                    serviceaccount=name,
                    key=reconciler.key_for(namespace, name),
                    attempt=queue.failures(key),
                    retry_in=delay,
                    error=str(e),
                )
            else:
                queue.forget(key)
            finally:
                queue.done(key)

    async def _sweep(self, reconciler: BackendReconciler, queue: WorkQueue[QueueKey]) -> None:
        while True:
            await asyncio.sleep(self.settings.gc_interval_seconds)
            try:
                orphans = await reconciler.find_orphans()
            except CredbrokerError as e:
                log.warning("garbage_collection_failed", backend=reconciler.name, error=str(e))
                continue
            for key in orphans:
                queue.add((key.namespace, key.name))
            if orphans:
                log.info("garbage_collection_enqueued", backend=reconciler.name, orphans=len(orphans))


# --- Module Notes -----------------------------------------------------------
# Periodic sweeps go through the queue, so an orphan removal and a write for the
# same ServiceAccount are never processed at the same time.
