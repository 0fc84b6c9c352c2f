import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterator, Optional

import numpy as np

from .interfaces import IVideoSource

logger = logging.getLogger("FrameSampler")

DEFAULT_FRAME_INTERVAL = 0.1  # seconds


class FrameSampler:
    """
    Pulls frames from a live source on a fixed cadence.

    frames() is lazy and runs until the source ends or stop() is called.
    A finished sampler cannot be restarted.
    """

    def __init__(self, source: IVideoSource, interval: float = DEFAULT_FRAME_INTERVAL,
                 clock: Callable[[], float] = time.monotonic):
        self.source = source
        self.interval = interval
        self._clock = clock
        self._stop_event = threading.Event()
        self._finished = False
        self.frames_sampled = 0
        self.source_ended = False

    @property
    def finished(self) -> bool:
        return self._finished

    def stop(self) -> None:
        """Halt future ticks. Safe to call from any thread."""
        self._stop_event.set()

    def frames(self) -> Iterator[np.ndarray]:
        if self._finished:
            return
        try:
            next_tick = self._clock()
            while not self._stop_event.is_set():
                ok, frame = self.source.get_frame()
                if not ok or frame is None:
                    logger.info("Video source ended")
                    self.source_ended = True
                    break

                self.frames_sampled += 1
                yield frame

                next_tick += self.interval
                delay = next_tick - self._clock()
                if delay > 0:
                    self._stop_event.wait(delay)
                else:
                    # Behind schedule: resync instead of bursting to catch up
                    next_tick = self._clock()
        finally:
            self._finished = True


class SingleFlightDispatcher:
    """
    Runs `handler(frame)` on one worker thread, one frame at a time.

    A frame dispatched while a pass is still running is dropped, never queued.
    """

    def __init__(self, handler: Callable[[np.ndarray], None], name: str = "DetectionWorker"):
        self.handler = handler
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._idle = threading.Event()
        self._idle.set()
        self._in_flight = False
        self._closed = False
        self.dispatched = 0
        self.skipped = 0

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    def dispatch(self, frame: np.ndarray) -> bool:
        """Start a pass for this frame. Returns False if the frame was dropped."""
        with self._lock:
            if self._closed:
                return False
            if self._in_flight:
                self.skipped += 1
                return False
            self._in_flight = True
            self._idle.clear()
            self.dispatched += 1
            self._executor.submit(self._run, frame)
        return True

    def _run(self, frame: np.ndarray) -> None:
        try:
            self.handler(frame)
        except Exception:
            logger.exception("Frame pass failed")
        finally:
            with self._lock:
                self._in_flight = False
                self._idle.set()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)

    def shutdown(self, wait: bool = False) -> None:
        """Refuse new frames. A pass already running is left to finish."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
