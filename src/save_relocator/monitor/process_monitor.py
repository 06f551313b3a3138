"""Game process detection and exit notification."""

import logging
import os
import threading
from typing import Callable, Optional

import psutil

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0  # seconds
EXECUTABLE_SUFFIX = ".exe"


class ProcessWatch:
    """Subscription to the exit of one process.

    A daemon thread waits for the process to terminate and then calls
    ``on_exit(watch)`` exactly once. ``cancel()`` unsubscribes; after it
    returns the callback will not be invoked.
    """

    def __init__(self, process: psutil.Process, on_exit: Callable[["ProcessWatch"], None],
                 wait_step: float = 1.0):
        self.process = process
        self.pid = process.pid
        self._on_exit = on_exit
        self._wait_step = wait_step
        self._lock = threading.Lock()
        self._cancelled = threading.Event()
        self._fired = False
        self._thread = threading.Thread(
            target=self._wait_for_exit,
            name=f"process-watch-{self.pid}",
            daemon=True
        )

    def start(self) -> "ProcessWatch":
        self._thread.start()
        return self

    @property
    def active(self) -> bool:
        return not (self._cancelled.is_set() or self._fired)

    def cancel(self) -> None:
        """Unsubscribe from the exit notification. Safe to call repeatedly."""
        with self._lock:
            self._cancelled.set()
            self._on_exit = None

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    def _wait_for_exit(self) -> None:
        while not self._cancelled.is_set():
            try:
                self.process.wait(timeout=self._wait_step)
                break
            except psutil.TimeoutExpired:
                continue
            except psutil.NoSuchProcess:
                break
            except psutil.Error as e:
                logger.error(f"Error waiting for process {self.pid}: {e}")
                break
        self._fire()

    def _fire(self) -> None:
        with self._lock:
            if self._cancelled.is_set() or self._fired:
                return
            self._fired = True
            callback, self._on_exit = self._on_exit, None

        logger.debug(f"Process {self.pid} exited")
        try:
            callback(self)
        except Exception:
            logger.exception(f"Exit callback for process {self.pid} failed")


class ProcessMonitor:
    """Look up a named process in the OS process table."""

    def __init__(self, process_name: str = ""):
        """Initialize process monitor.

        Args:
            process_name: Process name without executable suffix; empty
                disables monitoring
        """
        self.process_name = (process_name or "").strip()

    @property
    def enabled(self) -> bool:
        return bool(self.process_name)

    def matches(self, name: Optional[str]) -> bool:
        """Check whether a process table name belongs to the watched game."""
        if not name or not self.enabled:
            return False
        wanted = self.process_name
        if os.name == 'nt':
            name, wanted = name.lower(), wanted.lower()
        return name == wanted or name == wanted + EXECUTABLE_SUFFIX

    def poll(self) -> Optional[psutil.Process]:
        """Return the first running process matching the name, if any."""
        if not self.enabled:
            return None

        current_pid = os.getpid()
        try:
            for proc in psutil.process_iter(['pid', 'name', 'status']):
                try:
                    if proc.info['pid'] == current_pid:
                        continue
                    if proc.info['status'] in (psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD):
                        continue
                    if self.matches(proc.info['name']):
                        return proc
                except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                    continue
        except psutil.Error as e:
            logger.error(f"ERROR checking game process '{self.process_name}': {e}")
        return None

    def watch(self, process: psutil.Process,
              on_exit: Callable[[ProcessWatch], None]) -> ProcessWatch:
        """Subscribe to the exit of ``process``."""
        return ProcessWatch(process, on_exit).start()
