# timers.py
import logging
import threading

logger = logging.getLogger(__name__)


class RepeatingTask:
    """
    Calls `func` every `interval` seconds on a chain of threading.Timer
    objects until stopped. Stopping is final for the current run but the task
    can be started again.
    """

    def __init__(self, interval: float, func):
        self.interval = interval
        self.func = func
        self._lock = threading.Lock()
        self._timer = None
        self._running = False

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def start(self):
        with self._lock:
            if self._running:
                return
            self._running = True
            self._schedule()

    def _schedule(self):
        self._timer = threading.Timer(self.interval, self._run)
        self._timer.daemon = True
        self._timer.start()

    def _run(self):
        with self._lock:
            if not self._running:
                return
        try:
            self.func()
        except Exception:
            logger.exception("Repeating task failed, stopping it")
            self.stop()
            return
        with self._lock:
            if self._running:
                self._schedule()

    def stop(self):
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    cancel = stop


class CountdownTimer:
    """Writing timer: counts whole seconds down to zero, then calls `on_finished`."""

    def __init__(self, on_finished=None, interval: float = 1.0):
        self.on_finished = on_finished
        self.remaining = 0
        self._task = RepeatingTask(interval, self.tick)

    @property
    def active(self) -> bool:
        return self.remaining > 0

    def start(self, minutes: int, background: bool = True):
        if minutes <= 0:
            raise ValueError("Timer length must be positive")
        self.remaining = int(minutes) * 60
        if background:
            self._task.start()

    def tick(self):
        if self.remaining <= 0:
            return
        self.remaining -= 1
        if self.remaining == 0:
            self._task.stop()
            if self.on_finished:
                self.on_finished()

    def stop(self):
        self._task.stop()
        self.remaining = 0

    @property
    def display(self) -> str:
        minutes, seconds = divmod(self.remaining, 60)
        return f"{minutes:02d}:{seconds:02d}"
