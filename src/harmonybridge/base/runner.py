"""Runner classes that drive a Process on its own schedule."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any

from pydantic import Field

from .entity import Entity
from .process import Process


class TimeSource:
    """Thread-local time source discovery for process execution.

    A runner registers itself for the thread it executes on, so the
    processes it drives read the runner's clock. Simulated runners use
    this to make timing deterministic in tests.
    """

    _thread_locals = threading.local()

    @classmethod
    def set_current(cls, runner: "Runner") -> None:
        """Set time source (runner) for current thread."""
        cls._thread_locals.runner = runner

    @classmethod
    def get_current(cls) -> "Runner | None":
        """Get time source (runner) for current thread, if any."""
        return getattr(cls._thread_locals, "runner", None)

    @classmethod
    def clear_current(cls) -> None:
        """Clear time source for current thread."""
        if hasattr(cls._thread_locals, "runner"):
            del cls._thread_locals.runner


class Runner(Entity, ABC):
    """Base class for autonomous execution of one process.

    A Runner initializes its process on start() and then calls
    execute() whenever get_next_execution_time() comes due, until the
    process reports is_finished() or stop() is requested.
    """

    main_process: Process = Field(description="The process to execute")

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}."
            f"{self.name}"
        )

    @abstractmethod
    def get_time(self) -> int:
        """Get current time in nanoseconds."""

    @abstractmethod
    def start(self) -> None:
        """Initialize the process and begin executing it."""

    @abstractmethod
    def stop(self, wait: bool = True) -> None:
        """Stop executing the process.

        Args:
            wait: Whether to block until in-flight work has finished

        """

    @abstractmethod
    def is_running(self) -> bool:
        """Check if the runner is still driving its process."""

    def _initialize_process(self) -> None:
        """Initialize the process with this runner as its clock."""
        TimeSource.set_current(self)
        try:
            self.main_process.initialize()
        finally:
            TimeSource.clear_current()

    def _execute_process_once(self) -> bool:
        """Execute the main process once, logging any failure.

        Returns True on success. A failing cycle is not counted, so
        the process stays due and is retried after a backoff.
        """
        self._logger.debug(f"Executing {self.main_process.name}")
        try:
            self.main_process.execute()
        except Exception:
            self._logger.exception(
                "Process %s failed in runner %s",
                self.main_process.name,
                self.name,
            )
            return False
        return True


class StandardRunner(Runner):
    """Real-time runner executing the process on a daemon thread.

    The thread sleeps on a stop event between executions, so stop()
    takes effect immediately rather than after the current interval.
    """

    error_backoff_s: float = Field(
        default=0.1,
        ge=0,
        description="Pause after a failed cycle to avoid a tight loop",
    )

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    def get_time(self) -> int:
        """Get current monotonic time in nanoseconds."""
        return time.monotonic_ns()

    def start(self) -> None:
        """Start execution in a background thread.

        Raises:
            RuntimeError: If runner is already started

        """
        if self._thread and self._thread.is_alive():
            raise RuntimeError(f"Runner {self.name} already started")

        self._logger.debug(f"Starting runner {self.name}")
        self._initialize_process()

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._execution_loop,
            name=f"Runner-{self.name}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, wait: bool = True) -> None:
        """Signal the thread to stop and optionally wait for it."""
        self._stop_event.set()
        thread = self._thread
        if thread is None:
            return

        if not wait or thread is threading.current_thread():
            return

        thread.join(timeout=5.0)
        if thread.is_alive():
            self._logger.warning(
                f"Runner {self.name} thread did not stop within timeout"
            )

    def is_running(self) -> bool:
        """Check if the execution thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def _execution_loop(self) -> None:
        """Main loop: execute when due, otherwise sleep until due."""
        TimeSource.set_current(self)

        try:
            while (
                not self._stop_event.is_set()
                and not self.main_process.is_finished()
            ):
                next_time = self.main_process.get_next_execution_time()
                current_time = self.get_time()

                if next_time <= current_time:
                    if not self._execute_process_once():
                        self._stop_event.wait(self.error_backoff_s)
                else:
                    self._stop_event.wait(
                        (next_time - current_time) / 1_000_000_000.0
                    )
        finally:
            TimeSource.clear_current()
            self._logger.debug(f"Runner {self.name} execution loop ended")


class FastRunner(Runner):
    """Test runner that advances simulated time instead of sleeping.

    start() initializes the process at the current simulated time
    without spawning a thread. Tests then drive execution explicitly
    with step() or run_for_duration(); each call jumps the clock to
    the next due time, so timing behaviour is deterministic.
    """

    max_duration_ns: int = Field(
        default=3600_000_000_000,  # 1 hour in nanoseconds
        description="Maximum simulation duration to prevent infinite loops",
    )

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        self._simulation_time = 0
        self._start_time = 0
        self._started = False
        self._stop_requested = False

    def get_time(self) -> int:
        """Get current simulation time in nanoseconds."""
        return self._simulation_time

    def start(self) -> None:
        """Initialize the process at the current simulated time."""
        self._start_time = self._simulation_time
        self._stop_requested = False
        self._started = True
        self._initialize_process()

    def stop(self, wait: bool = True) -> None:
        """Stop executing; later step() calls do nothing."""
        self._stop_requested = True

    def is_running(self) -> bool:
        """Check if the process would still be executed by step()."""
        return self._should_continue_execution()

    def _advance_time_to(self, target_time: int) -> None:
        """Advance simulation time to target (never backwards)."""
        if target_time > self._simulation_time:
            self._simulation_time = target_time

    def _should_continue_execution(self) -> bool:
        """Check stop flag, process completion and safety limits."""
        if not self._started or self._stop_requested:
            return False

        if self.main_process.is_finished():
            return False

        # Safety check for runaway time
        if self._simulation_time - self._start_time > self.max_duration_ns:
            self._logger.warning("FastRunner exceeded max duration, stopping")
            return False

        return True

    def step(self) -> bool:
        """Jump to the next due time and execute one cycle.

        Returns:
            True if a cycle was executed

        """
        if not self._should_continue_execution():
            return False

        self._advance_time_to(self.main_process.get_next_execution_time())
        TimeSource.set_current(self)
        try:
            succeeded = self._execute_process_once()
        finally:
            TimeSource.clear_current()
        if not succeeded:
            self._advance_time_to(
                self._simulation_time + self.main_process.interval_ns
            )
        return True

    def run_for_duration(self, duration_seconds: float) -> None:
        """Run cycles until the simulated duration has elapsed.

        Args:
            duration_seconds: Simulation duration in seconds

        """
        if not self._started:
            self.start()

        end_time = self._simulation_time + int(
            duration_seconds * 1_000_000_000
        )
        while self._should_continue_execution():
            next_time = max(
                self.main_process.get_next_execution_time(),
                self._simulation_time,
            )
            if next_time > end_time:
                break
            self.step()
        self._advance_time_to(end_time)
