"""
Tests for the grading queue and scheduler.

Covers liveness under bounded concurrency, per-item error isolation,
run-fatal configuration errors, pause/resume and the progress estimate.
"""

import threading
import time
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from docx_grader.config import ProviderConfig
from docx_grader.errors import ConfigError, ProviderError
from docx_grader.grading import GradingEngine, GradingQueue, GradingScheduler, SchedulerState
from docx_grader.grading.scheduler import ProgressEstimator
from docx_grader.models import GradingItem, ItemStatus, Rubric

WAIT = 5.0


class FakeProvider:
    """Provider double that tracks concurrent calls and can hold them open."""

    def __init__(self, response: str, gate: threading.Event | None = None):
        self.response = response
        self.gate = gate
        self.errors: dict[str, Exception] = {}
        self.connection_error: Exception | None = None
        self.entered = threading.Semaphore(0)
        self.calls = 0
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def grade(self, system_instruction: str, prompt: str, response_shape: object) -> str:
        with self._lock:
            self.calls += 1
            self.active += 1
            self.peak = max(self.peak, self.active)
        self.entered.release()
        try:
            if self.gate is not None:
                self.gate.wait(timeout=WAIT)
            else:
                time.sleep(0.005)
            for marker, error in self.errors.items():
                if marker in prompt:
                    raise error
            return self.response
        finally:
            with self._lock:
                self.active -= 1

    def test_connection(self) -> str:
        if self.connection_error is not None:
            raise self.connection_error
        return "pong"

    def wait_entered(self, count: int) -> None:
        for _ in range(count):
            assert self.entered.acquire(timeout=WAIT), "provider was not called in time"


class TransitionRecorder:
    """Queue observer that checks the processing count at every transition."""

    def __init__(self) -> None:
        self.queue: GradingQueue | None = None
        self.snapshots: list[GradingItem] = []
        self.peak_processing = 0
        self._lock = threading.Lock()

    def __call__(self, item: GradingItem) -> None:
        with self._lock:
            self.snapshots.append(item)
            if self.queue is not None:
                processing = sum(i.status == ItemStatus.PROCESSING for i in self.queue.items())
                self.peak_processing = max(self.peak_processing, processing)

    def completed_ids(self) -> list[str]:
        with self._lock:
            return [s.id for s in self.snapshots if s.status == ItemStatus.COMPLETED]


@pytest.fixture
def recorder() -> TransitionRecorder:
    return TransitionRecorder()


@pytest.fixture
def make_queue(
    make_docx: Callable[..., bytes], recorder: TransitionRecorder
) -> Callable[[int], GradingQueue]:
    """Queue of N documents whose XML carries their own name."""

    def _make(count: int) -> GradingQueue:
        queue = GradingQueue(on_update=recorder)
        recorder.queue = queue
        for index in range(count):
            name = f"student{index}"
            queue.enqueue(f"{name}.docx", make_docx(document=f"<w:document>{name}</w:document>"))
        return queue

    return _make


@pytest.fixture
def make_scheduler(
    deepseek_config: ProviderConfig, sample_rubric: Rubric
) -> Callable[..., GradingScheduler]:
    def _make(
        provider: FakeProvider,
        queue: GradingQueue,
        limit: int,
        progress_interval: float = 0.05,
    ) -> GradingScheduler:
        engine = GradingEngine(deepseek_config, provider=provider)  # type: ignore[arg-type]
        return GradingScheduler(
            engine,
            queue,
            sample_rubric,
            concurrency_limit=limit,
            progress_interval=progress_interval,
        )

    return _make


class TestGradingQueue:
    """Tests for GradingQueue."""

    def test_enqueue(self, docx_bytes: bytes) -> None:
        updates: list[GradingItem] = []
        queue = GradingQueue(on_update=updates.append)

        item = queue.enqueue("alice.docx", docx_bytes)

        assert item.status == ItemStatus.PENDING
        assert item.progress == 0
        assert queue.get(item.id) is item
        assert updates == [item]
        assert len(queue) == 1

    def test_enqueue_archive(
        self, docx_bytes: bytes, zip_builder: Callable[..., bytes]
    ) -> None:
        queue = GradingQueue()
        data = zip_builder({"a/alice.docx": docx_bytes, "a/bob.docx": docx_bytes, "a/notes.txt": "x"})

        items = queue.enqueue_archive(data, "batch.zip")

        assert [i.display_name for i in items] == ["alice.docx", "bob.docx"]
        assert [i.display_name for i in queue.pending()] == ["alice.docx", "bob.docx"]

    def test_claim_only_pending(self, docx_bytes: bytes) -> None:
        queue = GradingQueue()
        item = queue.enqueue("alice.docx", docx_bytes)

        claimed = queue.claim(item.id)

        assert claimed is not None
        assert claimed.status == ItemStatus.PROCESSING
        assert queue.claim(item.id) is None

    def test_snapshots_are_replaced(self, docx_bytes: bytes) -> None:
        """Test transitions store a new snapshot and leave old ones untouched."""
        queue = GradingQueue()
        original = queue.enqueue("alice.docx", docx_bytes)

        queue.claim(original.id)

        assert original.status == ItemStatus.PENDING
        assert queue.get(original.id).status == ItemStatus.PROCESSING

    def test_retry_processing_rejected(self, docx_bytes: bytes) -> None:
        queue = GradingQueue()
        item = queue.enqueue("alice.docx", docx_bytes)
        queue.claim(item.id)

        with pytest.raises(ValueError, match="being processed"):
            queue.retry(item.id)

    def test_retry_failed(self, docx_bytes: bytes) -> None:
        queue = GradingQueue()
        failed = queue.enqueue("alice.docx", docx_bytes)
        done = queue.enqueue("bob.docx", docx_bytes)
        queue.claim(failed.id)
        queue.update(failed.id, lambda i: i.failed("boom"))
        queue.claim(done.id)

        retried = queue.retry_failed()

        assert [i.id for i in retried] == [failed.id]
        assert queue.get(failed.id).status == ItemStatus.PENDING
        assert queue.get(failed.id).error_message is None
        assert queue.get(done.id).status == ItemStatus.PROCESSING

    def test_counts(self, docx_bytes: bytes) -> None:
        queue = GradingQueue()
        first = queue.enqueue("a.docx", docx_bytes)
        queue.enqueue("b.docx", docx_bytes)
        queue.claim(first.id)

        counts = queue.counts()

        assert counts[ItemStatus.PENDING] == 1
        assert counts[ItemStatus.PROCESSING] == 1
        assert counts[ItemStatus.COMPLETED] == 0

    def test_get_unknown(self) -> None:
        with pytest.raises(KeyError):
            GradingQueue().get("missing")


class TestGradingScheduler:
    """Tests for GradingScheduler."""

    def test_bounded_concurrency_all_complete(
        self,
        make_queue: Callable[[int], GradingQueue],
        make_scheduler: Callable[..., GradingScheduler],
        recorder: TransitionRecorder,
        sample_grading_response: str,
    ) -> None:
        """Test 5 items at limit 2: 5 completions, never more than 2 processing."""
        provider = FakeProvider(sample_grading_response)
        queue = make_queue(5)
        scheduler = make_scheduler(provider, queue, limit=2)

        items = scheduler.run()

        assert all(i.status == ItemStatus.COMPLETED for i in items)
        assert sorted(recorder.completed_ids()) == sorted(i.id for i in items)
        assert recorder.peak_processing <= 2
        assert provider.peak <= 2
        assert provider.calls == 5
        assert scheduler.state == SchedulerState.IDLE
        assert scheduler.active_workers == 0

    @pytest.mark.parametrize(("count", "limit"), [(1, 1), (4, 1), (6, 3), (4, 4), (3, 8)])
    def test_liveness(
        self,
        make_queue: Callable[[int], GradingQueue],
        make_scheduler: Callable[..., GradingScheduler],
        recorder: TransitionRecorder,
        sample_grading_response: str,
        count: int,
        limit: int,
    ) -> None:
        """Test every item reaches a terminal state exactly once."""
        provider = FakeProvider(sample_grading_response)
        queue = make_queue(count)
        scheduler = make_scheduler(provider, queue, limit=limit)

        scheduler.start()
        assert scheduler.wait(timeout=WAIT)

        completed = recorder.completed_ids()
        assert len(completed) == count
        assert len(set(completed)) == count
        assert recorder.peak_processing <= min(count, limit)

    def test_results_attached(
        self,
        make_queue: Callable[[int], GradingQueue],
        make_scheduler: Callable[..., GradingScheduler],
        sample_grading_response: str,
    ) -> None:
        queue = make_queue(1)
        scheduler = make_scheduler(FakeProvider(sample_grading_response), queue, limit=1)

        [item] = scheduler.run()

        assert item.progress == 100
        assert item.result is not None
        assert str(item.result.total_score) == "10"
        assert item.parts is not None

    def test_errors_scoped_to_item(
        self,
        make_queue: Callable[[int], GradingQueue],
        make_scheduler: Callable[..., GradingScheduler],
        sample_grading_response: str,
    ) -> None:
        """Test provider, format and unexpected failures only fail their own item."""
        provider = FakeProvider(sample_grading_response)
        provider.errors = {
            "student1<": ProviderError("upstream failed", status_code=500),
            "student2<": RuntimeError("kaboom"),
        }
        queue = make_queue(4)
        queue.enqueue("broken.docx", b"not a zip")
        scheduler = make_scheduler(provider, queue, limit=2)

        items = {i.display_name: i for i in scheduler.run()}

        assert items["student0.docx"].status == ItemStatus.COMPLETED
        assert items["student3.docx"].status == ItemStatus.COMPLETED
        assert items["student1.docx"].status == ItemStatus.ERROR
        assert "upstream failed (HTTP 500)" in items["student1.docx"].error_message
        assert items["student2.docx"].error_message == "Unexpected error: kaboom"
        assert "broken.docx" in items["broken.docx"].error_message
        assert items["broken.docx"].result is None

    def test_config_error_stops_run(
        self,
        make_queue: Callable[[int], GradingQueue],
        make_scheduler: Callable[..., GradingScheduler],
        sample_grading_response: str,
    ) -> None:
        """Test a rejected credential stops claiming and is re-raised by wait()."""
        provider = FakeProvider(sample_grading_response)
        provider.errors = {"student": ConfigError("key rejected")}
        queue = make_queue(3)
        scheduler = make_scheduler(provider, queue, limit=1)

        scheduler.start()
        with pytest.raises(ConfigError, match="key rejected"):
            scheduler.wait(timeout=WAIT)

        counts = queue.counts()
        assert counts[ItemStatus.ERROR] == 1
        assert counts[ItemStatus.PENDING] == 2
        assert provider.calls == 1
        assert scheduler.state == SchedulerState.IDLE

    def test_verify_failure_claims_nothing(
        self,
        make_queue: Callable[[int], GradingQueue],
        make_scheduler: Callable[..., GradingScheduler],
        sample_grading_response: str,
    ) -> None:
        provider = FakeProvider(sample_grading_response)
        provider.connection_error = ConfigError("No API key")
        queue = make_queue(2)
        scheduler = make_scheduler(provider, queue, limit=2)

        with pytest.raises(ConfigError):
            scheduler.start(verify=True)

        assert len(queue.pending()) == 2
        assert provider.calls == 0
        assert scheduler.state == SchedulerState.IDLE

    def test_verify_success(
        self,
        make_queue: Callable[[int], GradingQueue],
        make_scheduler: Callable[..., GradingScheduler],
        sample_grading_response: str,
    ) -> None:
        queue = make_queue(2)
        scheduler = make_scheduler(FakeProvider(sample_grading_response), queue, limit=2)

        items = scheduler.run(verify=True)

        assert all(i.status == ItemStatus.COMPLETED for i in items)

    def test_pause_and_resume(
        self,
        make_queue: Callable[[int], GradingQueue],
        make_scheduler: Callable[..., GradingScheduler],
        sample_grading_response: str,
    ) -> None:
        """Test pause stops new claims and resume takes exactly the pending rest."""
        gate = threading.Event()
        provider = FakeProvider(sample_grading_response, gate=gate)
        queue = make_queue(6)
        scheduler = make_scheduler(provider, queue, limit=2)

        scheduler.start()
        provider.wait_entered(2)
        scheduler.pause()

        assert scheduler.state == SchedulerState.PAUSING
        assert queue.counts()[ItemStatus.PROCESSING] == 2

        gate.set()
        assert scheduler.wait(timeout=WAIT)

        counts = queue.counts()
        assert counts[ItemStatus.COMPLETED] == 2
        assert counts[ItemStatus.PENDING] == 4
        assert provider.calls == 2
        assert scheduler.state == SchedulerState.IDLE

        scheduler.resume()
        assert scheduler.wait(timeout=WAIT)

        assert queue.counts()[ItemStatus.COMPLETED] == 6
        assert provider.calls == 6

    def test_resume_while_pausing(
        self,
        make_queue: Callable[[int], GradingQueue],
        make_scheduler: Callable[..., GradingScheduler],
        recorder: TransitionRecorder,
        sample_grading_response: str,
    ) -> None:
        """Test resuming before in-flight items finish keeps the limit."""
        gate = threading.Event()
        provider = FakeProvider(sample_grading_response, gate=gate)
        queue = make_queue(5)
        scheduler = make_scheduler(provider, queue, limit=2)

        scheduler.start()
        provider.wait_entered(2)
        scheduler.pause()
        scheduler.resume()

        assert scheduler.state == SchedulerState.RUNNING
        gate.set()
        assert scheduler.wait(timeout=WAIT)

        assert queue.counts()[ItemStatus.COMPLETED] == 5
        assert provider.peak <= 2
        assert recorder.peak_processing <= 2

    def test_start_while_running(
        self,
        make_queue: Callable[[int], GradingQueue],
        make_scheduler: Callable[..., GradingScheduler],
        sample_grading_response: str,
    ) -> None:
        gate = threading.Event()
        provider = FakeProvider(sample_grading_response, gate=gate)
        scheduler = make_scheduler(provider, make_queue(1), limit=1)

        scheduler.start()
        try:
            with pytest.raises(RuntimeError, match="running"):
                scheduler.start()
        finally:
            gate.set()
            scheduler.wait(timeout=WAIT)

    def test_retry_after_failure(
        self,
        make_queue: Callable[[int], GradingQueue],
        make_scheduler: Callable[..., GradingScheduler],
        sample_grading_response: str,
    ) -> None:
        provider = FakeProvider(sample_grading_response)
        provider.errors = {"student0<": ProviderError("timeout")}
        queue = make_queue(2)
        scheduler = make_scheduler(provider, queue, limit=2)
        scheduler.run()

        provider.errors = {}
        queue.retry_failed()
        items = scheduler.run()

        assert all(i.status == ItemStatus.COMPLETED for i in items)
        assert provider.calls == 3

    def test_empty_queue(
        self,
        make_scheduler: Callable[..., GradingScheduler],
        sample_grading_response: str,
    ) -> None:
        scheduler = make_scheduler(FakeProvider(sample_grading_response), GradingQueue(), limit=2)

        assert scheduler.run() == []
        assert scheduler.state == SchedulerState.IDLE

    def test_concurrency_defaults_to_config(
        self, deepseek_config: ProviderConfig, sample_rubric: Rubric
    ) -> None:
        engine = MagicMock()
        engine.config = deepseek_config

        scheduler = GradingScheduler(engine, GradingQueue(), sample_rubric)

        assert scheduler.concurrency_limit == deepseek_config.concurrency_limit

    def test_progress_estimate_advances(
        self,
        make_queue: Callable[[int], GradingQueue],
        make_scheduler: Callable[..., GradingScheduler],
        sample_grading_response: str,
    ) -> None:
        """Test in-flight progress only grows, stays below 100, then snaps to 100."""
        gate = threading.Event()
        provider = FakeProvider(sample_grading_response, gate=gate)
        queue = make_queue(1)
        [item] = queue.items()
        scheduler = make_scheduler(provider, queue, limit=1, progress_interval=0.01)

        scheduler.start()
        provider.wait_entered(1)

        samples: list[int] = []
        deadline = time.monotonic() + WAIT
        while time.monotonic() < deadline and (not samples or samples[-1] < 30):
            samples.append(queue.get(item.id).progress)
            time.sleep(0.01)

        gate.set()
        assert scheduler.wait(timeout=WAIT)

        assert samples[-1] >= 30
        assert samples == sorted(samples)
        assert max(samples) <= 99
        assert queue.get(item.id).progress == 100

    def test_slow_observer_sees_transitions_in_order(
        self,
        make_docx: Callable[..., bytes],
        make_scheduler: Callable[..., GradingScheduler],
        sample_grading_response: str,
    ) -> None:
        """Test completion is never followed by an older progress snapshot."""
        gate = threading.Event()
        provider = FakeProvider(sample_grading_response, gate=gate)
        seen: list[tuple[ItemStatus, int]] = []

        def observer(item: GradingItem) -> None:
            seen.append((item.status, item.progress))
            if item.status == ItemStatus.PROCESSING and item.progress > 0 and not gate.is_set():
                # Let the provider call finish while this snapshot is being delivered
                gate.set()
                time.sleep(0.2)

        queue = GradingQueue(on_update=observer)
        queue.enqueue("student0.docx", make_docx(document="<w:document>student0</w:document>"))
        scheduler = make_scheduler(provider, queue, limit=1, progress_interval=0.01)

        scheduler.start()
        assert scheduler.wait(timeout=WAIT)

        completed_at = seen.index((ItemStatus.COMPLETED, 100))
        assert completed_at == len(seen) - 1
        progress = [p for _, p in seen if p]
        assert progress == sorted(progress)


class TestProgressEstimator:
    """Tests for ProgressEstimator."""

    def test_monotonic_and_capped(self) -> None:
        estimator = ProgressEstimator()
        values = [0]
        for _ in range(200):
            values.append(estimator.next_value(values[-1]))

        assert values == sorted(values)
        assert values[-1] == 99

    def test_slows_down_near_ceiling(self) -> None:
        estimator = ProgressEstimator()

        assert estimator.next_value(0) - 0 > estimator.next_value(80) - 80

    def test_never_exceeds_ceiling(self) -> None:
        assert ProgressEstimator().next_value(99) == 99
