"""Tests for the admission throttle."""

import threading
import time

import pytest

from plantvision.domain.admission import AdmissionQueue
from plantvision.domain.models import PipelineOutcome

from .helpers import RecordingProcess, text_event


def _events(n: int, prefix: str = "m"):
    return [text_event(f"{prefix}{i}") for i in range(n)]


@pytest.fixture
def process():
    return RecordingProcess()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def queue(process, sleeps):
    return AdmissionQueue(
        process,
        window_seconds=1.0,
        threshold=50,
        pacing_seconds=0.1,
        sleep=sleeps.append,
    )


class TestSubmit:
    def test_under_threshold_processed_inline(self, queue, process):
        outcome = queue.submit(text_event("hello"))

        assert outcome.status == "success"
        assert [e.text_payload for e in process.events] == ["hello"]
        assert queue.window_count == 1
        assert queue.pending == 0

    def test_burst_over_threshold_is_buffered(self, queue, process):
        """75 events in one window: 50 inline, 25 buffered."""
        outcomes = [queue.submit(e) for e in _events(75)]

        assert sum(1 for o in outcomes if o.status == "success") == 50
        assert sum(1 for o in outcomes if o.deferred) == 25
        assert len(process.events) == 50
        assert queue.pending == 25

    def test_deferred_outcome_returned_without_processing(self, queue, process):
        for e in _events(50):
            queue.submit(e)

        outcome = queue.submit(text_event("late"))

        assert outcome.deferred
        assert "late" not in [e.text_payload for e in process.events]


class TestTick:
    def test_tick_resets_counter(self, queue):
        for e in _events(10):
            queue.submit(e)

        assert queue.tick() is None
        assert queue.window_count == 0

    def test_next_window_drains_buffer_in_order(self, queue, process, sleeps):
        for e in _events(75):
            queue.submit(e)

        thread = queue.tick()

        assert thread is not None
        assert queue.wait_for_drain(timeout=5)
        assert queue.pending == 0
        assert queue.draining is False
        assert [e.text_payload for e in process.events] == [f"m{i}" for i in range(75)]
        # Pacing delay between drained entries
        assert sleeps == [0.1] * 25

    def test_inline_admissions_resume_after_reset(self, queue, process):
        for e in _events(60):
            queue.submit(e)
        queue.tick()
        queue.wait_for_drain(timeout=5)

        outcome = queue.submit(text_event("fresh"))

        assert outcome.status == "success"
        assert process.events[-1].text_payload == "fresh"

    def test_failed_entry_does_not_stop_drain(self, sleeps):
        process = RecordingProcess(fail_on={"m1"}, raise_on={"m2"})
        queue = AdmissionQueue(
            process, window_seconds=1.0, threshold=1, pacing_seconds=0, sleep=sleeps.append
        )
        for e in _events(5):
            queue.submit(e)

        queue.tick()
        assert queue.wait_for_drain(timeout=5)

        assert [e.text_payload for e in process.events] == ["m0", "m1", "m2", "m3", "m4"]
        assert queue.pending == 0
        assert sleeps == []


class TestDrainExclusivity:
    def test_second_tick_during_drain_is_noop(self):
        """While a drain runs, further ticks only reset the counter."""
        release = threading.Event()
        started = threading.Event()
        seen = []

        def slow_process(event):
            seen.append(event.text_payload)
            if event.text_payload == "m0":
                started.set()
                release.wait(timeout=5)
            return PipelineOutcome.success("ok", delivered=True)

        queue = AdmissionQueue(
            slow_process, window_seconds=1.0, threshold=1, pacing_seconds=0
        )
        queue.submit(text_event("inline"))
        for e in _events(3):
            queue.submit(e)

        first = queue.tick()
        assert first is not None
        assert started.wait(timeout=5)
        assert queue.draining is True

        # New window: one inline admission, then overflow joins the buffer
        queue.submit(text_event("inline2"))
        for e in _events(2, prefix="n"):
            queue.submit(e)
        second = queue.tick()

        assert second is None
        assert queue.window_count == 0

        release.set()
        assert queue.wait_for_drain(timeout=5)
        # The running drain also picks up entries buffered while it was active
        assert seen == ["inline", "m0", "inline2", "m1", "m2", "n0", "n1"]
        assert queue.draining is False


class TestLifecycle:
    def test_ticker_drains_in_background(self, process):
        queue = AdmissionQueue(process, window_seconds=0.05, threshold=2, pacing_seconds=0)
        for e in _events(6):
            queue.submit(e)

        queue.start()
        try:
            for _ in range(100):
                if queue.pending == 0 and not queue.draining:
                    break
                time.sleep(0.05)
        finally:
            queue.stop(timeout=1)

        assert queue.pending == 0
        assert len(process.events) == 6

    def test_stop_is_idempotent(self, queue):
        queue.start()
        queue.stop(timeout=1)
        queue.stop(timeout=1)


class TestDrainHandover:
    def test_finished_drain_does_not_release_successor(self, monkeypatch):
        """A drain that is wrapping up must not clear the flag of the next drain."""
        from plantvision.domain import admission

        a_wrapping_up = threading.Event()
        a_release = threading.Event()
        b_started = threading.Event()
        b_release = threading.Event()
        seen = []
        seen_lock = threading.Lock()

        original_info = admission.logger.info
        paused = []

        def pausing_info(msg, *args, **kwargs):
            if msg == "deferred messages drained" and not paused:
                paused.append(True)
                a_wrapping_up.set()
                a_release.wait(timeout=5)
            return original_info(msg, *args, **kwargs)

        monkeypatch.setattr(admission.logger, "info", pausing_info)

        def process(event):
            with seen_lock:
                seen.append(event.text_payload)
            if event.text_payload == "y":
                b_started.set()
                b_release.wait(timeout=5)
            return PipelineOutcome.success("ok", delivered=True)

        queue = AdmissionQueue(process, window_seconds=1.0, threshold=1, pacing_seconds=0)

        queue.submit(text_event("inline-a"))
        queue.submit(text_event("x"))
        drain_a = queue.tick()
        assert a_wrapping_up.wait(timeout=5)

        # Drain A has emptied the buffer; a new drain may start now
        queue.submit(text_event("inline-b"))
        queue.submit(text_event("y"))
        drain_b = queue.tick()
        assert drain_b is not None
        assert b_started.wait(timeout=5)

        a_release.set()
        drain_a.join(timeout=5)
        assert not drain_a.is_alive()

        assert queue.draining is True
        queue.submit(text_event("inline-c"))
        queue.submit(text_event("z"))
        assert queue.tick() is None

        b_release.set()
        assert queue.wait_for_drain(timeout=5)
        assert queue.draining is False
        assert seen == ["inline-a", "x", "inline-b", "y", "inline-c", "z"]


class TestConcurrentSubmit:
    def test_parallel_submitters_share_one_window(self):
        threads_n, per_thread, threshold = 8, 25, 50
        process = RecordingProcess()
        queue = AdmissionQueue(
            process, window_seconds=1.0, threshold=threshold, pacing_seconds=0
        )
        barrier = threading.Barrier(threads_n)
        outcomes = []
        outcomes_lock = threading.Lock()

        def submitter(worker: int):
            barrier.wait(timeout=5)
            for i in range(per_thread):
                outcome = queue.submit(text_event(f"w{worker}-{i}"))
                with outcomes_lock:
                    outcomes.append(outcome)

        workers = [threading.Thread(target=submitter, args=(w,)) for w in range(threads_n)]
        for w in workers:
            w.start()
        for w in workers:
            w.join(timeout=10)

        total = threads_n * per_thread
        assert len(outcomes) == total
        assert queue.window_count == total
        assert sum(1 for o in outcomes if o.status == "success") == threshold
        assert sum(1 for o in outcomes if o.deferred) == total - threshold
        assert queue.pending == total - threshold
        assert len(process.events) == threshold

        assert queue.tick() is not None
        assert queue.wait_for_drain(timeout=10)

        payloads = [e.text_payload for e in process.events]
        assert len(payloads) == total
        assert sorted(payloads) == sorted(
            f"w{w}-{i}" for w in range(threads_n) for i in range(per_thread)
        )
        assert queue.pending == 0
