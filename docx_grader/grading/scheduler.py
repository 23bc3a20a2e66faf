"""
Grading scheduler.

Drives a queue of documents through the GradingEngine with a bounded
pool of worker threads. Runs can be paused (no new claims; in-flight
documents finish) and resumed. Every item transition is published as a
new immutable snapshot.

Per item:   pending -> processing -> completed | error
Scheduler:  idle -> running -> pausing -> idle
"""

import logging
import threading
from collections.abc import Callable, Iterable
from enum import Enum

from docx_grader.errors import ConfigError, GraderError, truncate
from docx_grader.extractors import extract_archive_documents
from docx_grader.grading.engine import GradingEngine
from docx_grader.models import DocumentParts, GradingItem, ItemStatus, Rubric

logger = logging.getLogger(__name__)

ItemCallback = Callable[[GradingItem], None]


# ==============================================================================
# Queue
# ==============================================================================


class GradingQueue:
    """
    Ordered collection of grading items.

    Items are immutable; each transition replaces the stored snapshot under
    a lock, so readers always see a consistent item. The optional callback
    receives every new snapshot in transition order. It runs while the lock
    is held, so it may read the queue but must not block for long.
    """

    def __init__(self, on_update: ItemCallback | None = None):
        self._items: dict[str, GradingItem] = {}
        self._lock = threading.RLock()
        self._on_update = on_update

    def __len__(self) -> int:
        return len(self._items)

    def enqueue(self, display_name: str, data: bytes) -> GradingItem:
        """Add a document in the pending state."""
        item = GradingItem(display_name=display_name, source_bytes=data)
        with self._lock:
            self._items[item.id] = item
            self._notify(item)
        return item

    def enqueue_archive(self, data: bytes, source: str = "<memory>") -> list[GradingItem]:
        """
        Add every Word document found in a batch ZIP.

        Raises:
            ExtractionError: If the data is not a ZIP archive.
        """
        return [self.enqueue(doc.name, doc.data) for doc in extract_archive_documents(data, source)]

    def get(self, item_id: str) -> GradingItem:
        """Raises KeyError for unknown ids."""
        return self._items[item_id]

    def items(self) -> list[GradingItem]:
        """Snapshot of all items in insertion order."""
        with self._lock:
            return list(self._items.values())

    def pending(self) -> list[GradingItem]:
        return [i for i in self.items() if i.status == ItemStatus.PENDING]

    def counts(self) -> dict[ItemStatus, int]:
        counts = {status: 0 for status in ItemStatus}
        for item in self.items():
            counts[item.status] += 1
        return counts

    def retry(self, item_id: str) -> GradingItem:
        """
        Put a finished item back into the pending state.

        Raises:
            ValueError: If the item is currently being processed.
        """

        def reset(item: GradingItem) -> GradingItem:
            if item.status == ItemStatus.PROCESSING:
                raise ValueError(f"Item '{item.display_name}' is being processed")
            return item.reset()

        return self.update(item_id, reset)

    def retry_failed(self) -> list[GradingItem]:
        """Put every item in the error state back into pending."""
        return [self.retry(i.id) for i in self.items() if i.status == ItemStatus.ERROR]

    def claim(self, item_id: str) -> GradingItem | None:
        """Move a pending item to processing; None if it is no longer pending."""
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.status != ItemStatus.PENDING:
                return None
            claimed = self._items[item_id] = item.claimed()
            self._notify(claimed)
        return claimed

    def update(self, item_id: str, transition: Callable[[GradingItem], GradingItem]) -> GradingItem:
        """Apply `transition` to the current snapshot and store the result."""
        with self._lock:
            current = self._items[item_id]
            updated = transition(current)
            if updated is current:
                return current
            self._items[item_id] = updated
            self._notify(updated)
        return updated

    def _notify(self, item: GradingItem) -> None:
        if self._on_update is not None:
            self._on_update(item)


# ==============================================================================
# Progress Estimate
# ==============================================================================


class ProgressEstimator:
    """
    User-facing progress estimate for items being graded.

    Providers report no progress, so this only simulates it: the value
    climbs toward 99 in shrinking steps and reaches 100 only when the
    item completes. Nothing reads it to decide completion.
    """

    CEILING = 99

    def __init__(self, rate: float = 0.1):
        self._rate = rate

    def next_value(self, current: int) -> int:
        if current >= self.CEILING:
            return current
        step = max(1, int((self.CEILING - current) * self._rate))
        return min(self.CEILING, current + step)


# ==============================================================================
# Scheduler
# ==============================================================================


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSING = "pausing"


class CancellationToken:
    """Checked by workers before each claim. One token per start/resume."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class GradingScheduler:
    """
    Bounded-concurrency, pausable grading run over a GradingQueue.

    Workers share a cursor over the pending items captured at start or
    resume. The cursor and the active-worker count change only under
    `self._lock`. Errors stay scoped to their item, except ConfigError,
    which stops the run and is re-raised by `wait()`.
    """

    def __init__(
        self,
        engine: GradingEngine,
        queue: GradingQueue,
        rubric: Rubric,
        reference: DocumentParts | None = None,
        concurrency_limit: int | None = None,
        progress_interval: float = 0.5,
    ):
        """
        Initialize the scheduler.

        Args:
            engine: Pipeline shared by all workers.
            queue: Items to grade; only pending items are claimed.
            rubric: Rubric for every document of the run.
            reference: Template document parts for differential grading.
            concurrency_limit: Worker count. Defaults to the engine's config.
            progress_interval: Seconds between progress estimate updates.
        """
        self._engine = engine
        self._queue = queue
        self._rubric = rubric
        self._reference = reference
        self._limit = concurrency_limit or engine.config.concurrency_limit
        if self._limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        self._progress_interval = progress_interval
        self._estimator = ProgressEstimator()

        self._lock = threading.Lock()
        self._state = SchedulerState.IDLE
        self._token: CancellationToken | None = None
        self._batch: list[str] = []
        self._cursor = 0
        self._active = 0
        self._fatal_error: ConfigError | None = None
        self._finished = threading.Event()
        self._finished.set()
        self._ticker: threading.Thread | None = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def concurrency_limit(self) -> int:
        return self._limit

    @property
    def active_workers(self) -> int:
        return self._active

    @property
    def queue(self) -> GradingQueue:
        return self._queue

    def start(self, verify: bool = False) -> None:
        """
        Start grading all pending items.

        Args:
            verify: Run the provider connectivity self-test first.

        Raises:
            RuntimeError: If a run is already in progress.
            ConfigError / ProviderError: If `verify` fails. Nothing is
                claimed in that case.
        """
        if self._state != SchedulerState.IDLE:
            raise RuntimeError(f"Scheduler is {self._state.value}")

        if verify:
            self._engine.check_connection()

        self._launch()

    def pause(self) -> None:
        """Stop claiming new items. In-flight items run to completion."""
        with self._lock:
            if self._state != SchedulerState.RUNNING:
                return
            self._state = SchedulerState.PAUSING
            if self._token is not None:
                self._token.cancel()
        logger.info("Pausing: %d item(s) still in flight", self._active)

    def resume(self) -> None:
        """Continue with the items that are still pending."""
        if self._state == SchedulerState.RUNNING:
            return
        self._launch()

    def wait(self, timeout: float | None = None) -> bool:
        """
        Block until all workers have stopped.

        Returns:
            False if the timeout expired first.

        Raises:
            ConfigError: If the run was aborted by a configuration error.
        """
        finished = self._finished.wait(timeout)
        if finished and self._fatal_error is not None:
            raise self._fatal_error
        return finished

    def run(self, verify: bool = False) -> list[GradingItem]:
        """Start, wait for the run to finish and return the final items."""
        self.start(verify=verify)
        self.wait()
        return self._queue.items()

    def _launch(self) -> None:
        # Read before taking self._lock; the queue lock is never taken inside it
        pending = [item.id for item in self._queue.pending()]
        with self._lock:
            self._batch = pending
            self._cursor = 0
            self._fatal_error = None

            if not self._batch:
                logger.info("Nothing to grade")
                if self._active == 0:
                    self._state = SchedulerState.IDLE
                return

            self._token = CancellationToken()
            self._state = SchedulerState.RUNNING
            self._finished.clear()

            # Workers still finishing a paused run count against the limit
            workers = min(self._limit - self._active, len(self._batch))
            for _ in range(workers):
                self._spawn_worker(self._token)

            logger.info(
                "Grading %d item(s) with up to %d concurrent worker(s)",
                len(self._batch),
                self._limit,
            )
            self._ensure_ticker()

    def _spawn_worker(self, token: CancellationToken) -> None:
        # Caller holds self._lock
        self._active += 1
        threading.Thread(target=self._worker_loop, args=(token,), daemon=True).start()

    def _worker_loop(self, token: CancellationToken) -> None:
        try:
            while not token.cancelled:
                item_id = self._claim_next(token)
                if item_id is None:
                    break
                self._process(item_id)
        finally:
            self._worker_exited()

    def _claim_next(self, token: CancellationToken) -> str | None:
        while True:
            with self._lock:
                if token.cancelled or self._cursor >= len(self._batch):
                    return None
                item_id = self._batch[self._cursor]
                self._cursor += 1

            # Skipped if the caller changed the item since the batch was taken
            if self._queue.claim(item_id) is not None:
                return item_id

    def _worker_exited(self) -> None:
        with self._lock:
            self._active -= 1

            # A worker of a paused run hands its slot to the resumed run
            token = self._token
            if (
                self._state == SchedulerState.RUNNING
                and token is not None
                and not token.cancelled
                and self._cursor < len(self._batch)
                and self._active < self._limit
            ):
                self._spawn_worker(token)
                return

            if self._active > 0:
                return

            was_pausing = self._state == SchedulerState.PAUSING
            self._state = SchedulerState.IDLE
            self._finished.set()

        counts = self._queue.counts()
        logger.info(
            "%s: %d completed, %d failed, %d pending",
            "Paused" if was_pausing else "Run finished",
            counts[ItemStatus.COMPLETED],
            counts[ItemStatus.ERROR],
            counts[ItemStatus.PENDING],
        )

    def _process(self, item_id: str) -> None:
        item = self._queue.get(item_id)
        logger.info("Grading %s", item.display_name)

        try:
            parts = self._engine.extract(item)
            if item.parts is None:
                self._queue.update(item_id, lambda current: current.with_parts(parts))
            result = self._engine.grade_document(parts, self._rubric, self._reference)

        except ConfigError as e:
            self._fail(item_id, str(e))
            self._abort(e)
            return

        except GraderError as e:
            self._fail(item_id, str(e))
            return

        except Exception as e:
            # Failures stay scoped to this item
            logger.exception("Unexpected error while grading %s", item.display_name)
            self._fail(item_id, truncate(f"Unexpected error: {e}"))
            return

        self._queue.update(item_id, lambda current: current.completed(result))
        logger.info(
            "Graded %s: %s/%s", item.display_name, result.total_score, result.max_score
        )

    def _fail(self, item_id: str, message: str) -> None:
        item = self._queue.update(item_id, lambda current: current.failed(message))
        logger.warning("Failed to grade %s: %s", item.display_name, message)

    def _abort(self, error: ConfigError) -> None:
        with self._lock:
            if self._fatal_error is None:
                self._fatal_error = error
        logger.error("Configuration error, stopping run: %s", error)
        self.pause()

    def _ensure_ticker(self) -> None:
        # Caller holds self._lock
        if self._ticker is None:
            self._ticker = threading.Thread(target=self._tick_progress, daemon=True)
            self._ticker.start()

    def _tick_progress(self) -> None:
        while True:
            if self._finished.wait(self._progress_interval):
                with self._lock:
                    # A resumed run may have cleared the flag again
                    if self._finished.is_set():
                        self._ticker = None
                        return
                continue
            for item in self._processing_items():
                self._queue.update(item.id, self._advance_progress)

    def _processing_items(self) -> Iterable[GradingItem]:
        return [i for i in self._queue.items() if i.status == ItemStatus.PROCESSING]

    def _advance_progress(self, item: GradingItem) -> GradingItem:
        if item.status != ItemStatus.PROCESSING:
            return item
        return item.with_progress(self._estimator.next_value(item.progress))
