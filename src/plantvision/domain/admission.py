"""Admission throttle in front of the message pipeline.

Leaky-bucket style: up to ``threshold`` events per window are processed
inline by the caller; the rest are buffered FIFO and drained once the
window resets. Nothing is dropped.

State (window counter, buffer, draining flag) is process-local and guarded
by a single lock. Running several app instances gives each its own
throttle.

Threads:
- the caller's thread runs admitted events inline
- a ticker thread resets the counter every window and starts drains
- each drain runs on its own thread so the ticker keeps resetting the
  counter while a long drain is in progress; drains never overlap
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable

from plantvision.domain.models import PipelineOutcome
from plantvision.observability.logging import get_logger
from plantvision.observability.redaction import hash_identifier, safe_log_context
from plantvision.whatsapp.models import InboundEvent

logger = get_logger(__name__)

ProcessFn = Callable[[InboundEvent], PipelineOutcome]


class AdmissionQueue:
    """Decides per event whether to process now or defer.

    Usage:
        queue = AdmissionQueue(pipeline.process, window_seconds=1.0, threshold=50)
        queue.start()
        outcome = queue.submit(event)
        ...
        queue.stop()
    """

    def __init__(
        self,
        process: ProcessFn,
        *,
        window_seconds: float,
        threshold: int,
        pacing_seconds: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._process = process
        self._window_seconds = window_seconds
        self._threshold = threshold
        self._pacing_seconds = pacing_seconds
        self._sleep = sleep

        self._lock = threading.Lock()
        self._window_count = 0
        self._buffer: deque[InboundEvent] = deque()
        self._draining = False

        self._stop_event = threading.Event()
        self._ticker: threading.Thread | None = None
        self._drain_thread: threading.Thread | None = None

    @property
    def window_count(self) -> int:
        with self._lock:
            return self._window_count

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    @property
    def draining(self) -> bool:
        with self._lock:
            return self._draining

    def submit(self, event: InboundEvent) -> PipelineOutcome:
        """Admit or defer one event.

        Returns the pipeline outcome when processed inline, or a ``deferred``
        outcome immediately when the window is over threshold.
        """
        with self._lock:
            self._window_count += 1
            count = self._window_count
            admit = count <= self._threshold
            if not admit:
                self._buffer.append(event)
                pending = len(self._buffer)

        if not admit:
            logger.info(
                "high traffic, deferring message",
                extra={
                    "extra_fields": safe_log_context(
                        window_count=count,
                        threshold=self._threshold,
                        pending=pending,
                        sender_hash=hash_identifier(event.sender_id),
                    )
                },
            )
            return PipelineOutcome.buffered()

        logger.debug(
            "processing message directly",
            extra={"extra_fields": safe_log_context(window_count=count)},
        )
        return self._process(event)

    def tick(self) -> threading.Thread | None:
        """Close the current window.

        Resets the counter and, if entries are buffered and no drain is
        active, starts a drain thread. Returns that thread, or None when no
        drain was started.
        """
        with self._lock:
            self._window_count = 0
            if not self._buffer or self._draining:
                return None
            self._draining = True
            pending = len(self._buffer)

        logger.info(
            "draining deferred messages",
            extra={"extra_fields": safe_log_context(pending=pending)},
        )
        thread = threading.Thread(
            target=self._drain, name="admission-drain", daemon=True
        )
        self._drain_thread = thread
        thread.start()
        return thread

    def wait_for_drain(self, timeout: float | None = None) -> bool:
        """Block until the current drain (if any) finishes. Returns False on timeout."""
        thread = self._drain_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def start(self) -> None:
        """Start the window ticker thread."""
        if self._ticker is not None and self._ticker.is_alive():
            return
        self._stop_event.clear()
        self._ticker = threading.Thread(
            target=self._run_ticker, name="admission-ticker", daemon=True
        )
        self._ticker.start()
        logger.info(
            "admission queue started",
            extra={
                "extra_fields": safe_log_context(
                    window_seconds=self._window_seconds,
                    threshold=self._threshold,
                )
            },
        )

    def stop(self, timeout: float | None = None) -> None:
        """Stop the ticker. Buffered entries that were not drained are logged and kept."""
        self._stop_event.set()
        if self._ticker is not None:
            self._ticker.join(timeout)
            self._ticker = None
        pending = self.pending
        if pending:
            logger.warning(
                "admission queue stopped with pending messages",
                extra={"extra_fields": safe_log_context(pending=pending)},
            )

    def _run_ticker(self) -> None:
        while not self._stop_event.wait(self._window_seconds):
            self.tick()

    def _drain(self) -> None:
        processed = 0
        failed = 0
        try:
            while True:
                with self._lock:
                    # Released under the same lock as the emptiness check
                    if not self._buffer:
                        self._draining = False
                        break
                    event = self._buffer.popleft()

                try:
                    outcome = self._process(event)
                    if outcome.status == "failed":
                        failed += 1
                except Exception:
                    failed += 1
                    logger.exception(
                        "deferred message failed",
                        extra={
                            "extra_fields": safe_log_context(
                                sender_hash=hash_identifier(event.sender_id),
                                message_type=event.message_type,
                            )
                        },
                    )
                processed += 1

                if self._pacing_seconds:
                    self._sleep(self._pacing_seconds)
        except BaseException:
            # Only reached while the flag is still held by this drain
            with self._lock:
                self._draining = False
            raise

        logger.info(
            "deferred messages drained",
            extra={
                "extra_fields": safe_log_context(
                    processed=processed, failed=failed
                )
            },
        )
