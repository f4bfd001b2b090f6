"""
Background detection loop fed by a latest-frame slot.

The capture side calls `submit()` for every frame and never blocks. A single
worker thread takes the newest frame, runs one full pipeline cycle and
publishes the result. Frames that arrive while a cycle is running overwrite
each other in the slot; only the most recent one is processed next.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from .frames import RawFrame
from .types import Detection


logger = logging.getLogger(__name__)

ResultCallback = Callable[[List[Detection]], None]
Detector = Callable[[RawFrame], List[Detection]]


class LatestFrameSlot:
    """
    Single-writer overwrite, single-reader consume. Holds at most one frame.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._frame: Optional[RawFrame] = None

    def put(self, frame: RawFrame) -> bool:
        """Store `frame`; returns True when it replaced an unconsumed frame."""
        with self._cond:
            replaced = self._frame is not None
            self._frame = frame
            self._cond.notify()
            return replaced

    def take(self, timeout: Optional[float] = None) -> Optional[RawFrame]:
        """Remove and return the stored frame, waiting up to `timeout` seconds."""
        with self._cond:
            if self._frame is None:
                self._cond.wait(timeout)
            frame, self._frame = self._frame, None
            return frame

    def wake(self) -> None:
        with self._cond:
            self._cond.notify_all()


@dataclass
class WorkerStats:
    submitted: int = 0
    dropped: int = 0
    completed: int = 0


class DetectionWorker:
    def __init__(
        self,
        detector: Detector,
        on_result: Optional[ResultCallback] = None,
        poll_interval: float = 0.1,
    ):
        self._detector = detector
        self._on_result = on_result
        self._poll_interval = poll_interval
        self._slot = LatestFrameSlot()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        # Serializes cycles across runs, including a loop that outlived stop().
        self._cycle = threading.Lock()
        self._latest: List[Detection] = []
        self.stats = WorkerStats()

    @property
    def latest(self) -> List[Detection]:
        with self._lock:
            return list(self._latest)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        # Each run gets its own stop event; a stale loop is never revived.
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stop,), name="detection-worker", daemon=True
        )
        self._thread.start()
        logger.debug("Detection worker started")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        self._slot.wake()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Detection worker still busy after %ss; its result will be discarded", timeout)
            self._thread = None
        self._slot.take(0)
        with self._lock:
            self._latest = []
        logger.debug("Detection worker stopped (%s)", self.stats)

    def submit(self, frame: RawFrame) -> None:
        with self._lock:
            self.stats.submitted += 1
            if self._slot.put(frame):
                self.stats.dropped += 1

    def _run(self, stop: threading.Event) -> None:
        while not stop.is_set():
            frame = self._slot.take(self._poll_interval)
            if frame is None or stop.is_set():
                continue

            with self._cycle:
                try:
                    detections = self._detector(frame)
                except Exception:
                    logger.exception("Detection cycle failed; publishing no detections")
                    detections = []
            if stop.is_set():
                logger.debug("Dropping result of a cycle that finished after stop()")
                continue

            with self._lock:
                self._latest = detections
                self.stats.completed += 1

            if self._on_result is not None:
                try:
                    self._on_result(detections)
                except Exception:
                    logger.exception("Detection result callback failed")

    def __enter__(self) -> "DetectionWorker":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
