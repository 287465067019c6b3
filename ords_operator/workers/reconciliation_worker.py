"""
Reconciliation worker - the dispatcher in front of the reconciler.

Keys ("namespace/name") arrive from the watch streams, from the periodic
resync and from delayed retries. The worker guarantees:

- a key is never reconciled by two passes at once; an event arriving while
  its pass runs marks the key dirty and it is reconciled once more afterwards
- at most ``max_concurrent_reconciles`` passes run at a time
- a REQUEUE outcome or an unexpected error schedules the key again after
  the fixed requeue delay
"""
import asyncio
from typing import Dict, Optional, Set

from ords_operator.config.logging import get_logger
from ords_operator.config.settings import Settings
from ords_operator.core.outcome import PhaseOutcome
from ords_operator.services import metrics

logger = get_logger(__name__)


def split_key(key: str):
    namespace, _, name = key.partition("/")
    return namespace, name


class ReconciliationWorker:
    """
    Work queue with per-key serialization.

    Features:
    - Deduplication (a queued key is queued only once)
    - Concurrency ceiling across keys
    - Delayed retries through loop timers
    - Periodic full resync
    - Graceful shutdown cancelling in-flight passes
    """

    def __init__(self, reconciler, store, settings: Settings):
        self.reconciler = reconciler
        self.store = store
        self.settings = settings
        self.running = False

        self._queue: asyncio.Queue = asyncio.Queue()
        self._queued: Set[str] = set()
        self._active: Set[str] = set()
        self._dirty: Set[str] = set()
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._semaphore = asyncio.Semaphore(settings.max_concurrent_reconciles)
        self._resync_task: Optional[asyncio.Task] = None

    def enqueue(self, key: str, delay: float = 0) -> None:
        """Schedule a pass for ``key``, now or after ``delay`` seconds."""
        if delay > 0:
            if key in self._timers:
                return
            loop = asyncio.get_running_loop()
            self._timers[key] = loop.call_later(delay, self._fire_timer, key)
            metrics.requeue_total.inc()
            return

        if key in self._active:
            self._dirty.add(key)
            return
        if key in self._queued:
            return
        self._queued.add(key)
        self._queue.put_nowait(key)
        metrics.queue_depth.set(len(self._queued))

    def _fire_timer(self, key: str) -> None:
        self._timers.pop(key, None)
        self.enqueue(key)

    async def start(self):
        """Dispatch keys until stopped."""
        self.running = True
        self._resync_task = asyncio.create_task(self._resync_loop())
        logger.info(
            "reconciliation_worker_started",
            max_concurrent=self.settings.max_concurrent_reconciles,
            resync_interval_seconds=self.settings.resync_interval_seconds,
        )

        try:
            while self.running:
                key = await self._queue.get()
                await self._semaphore.acquire()
                self._queued.discard(key)
                metrics.queue_depth.set(len(self._queued))
                self._active.add(key)
                task = asyncio.create_task(self._process(key))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        except asyncio.CancelledError:
            logger.info("reconciliation_worker_cancelled")
            raise
        finally:
            logger.info("reconciliation_worker_stopped")

    async def _process(self, key: str) -> None:
        namespace, name = split_key(key)
        outcome = PhaseOutcome.STOP
        metrics.reconciles_in_flight.inc()
        try:
            outcome = await self.reconciler.reconcile(namespace, name)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            metrics.reconcile_errors_total.labels(error_type=type(e).__name__).inc()
            logger.error("reconcile_failed", instance=key, error=str(e), exc_info=True)
            outcome = PhaseOutcome.REQUEUE
        finally:
            metrics.reconciles_in_flight.dec()
            self._active.discard(key)
            self._semaphore.release()

        if key in self._dirty:
            self._dirty.discard(key)
            self.enqueue(key)
        elif outcome.requeue:
            logger.debug("reconcile_requeued", instance=key, delay=self.settings.requeue_delay_seconds)
            self.enqueue(key, delay=self.settings.requeue_delay_seconds)

    async def resync(self) -> int:
        """Enqueue every instance in the watched scope; returns the count."""
        items = await self.store.list_instances(self.settings.watch_namespace)
        for obj in items:
            metadata = obj.get("metadata") or {}
            self.enqueue(f"{metadata.get('namespace', 'default')}/{metadata.get('name')}")
        logger.info("resync_completed", instances=len(items))
        return len(items)

    async def _resync_loop(self):
        while self.running:
            try:
                await self.resync()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("resync_failed", error=str(e), exc_info=True)
            try:
                await asyncio.sleep(self.settings.resync_interval_seconds)
            except asyncio.CancelledError:
                logger.info("resync_sleep_cancelled")
                break

    async def stop(self):
        """Stop dispatching and cancel timers and in-flight passes."""
        logger.info("stopping_reconciliation_worker", in_flight=len(self._tasks))
        self.running = False

        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

        pending = list(self._tasks)
        if self._resync_task and not self._resync_task.done():
            pending.append(self._resync_task)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
