"""Process base class for periodically executed units."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from pydantic import ConfigDict, Field

from .entity import Entity


class Process(Entity, ABC):
    """Base class for work that a Runner executes on a fixed interval.

    A Process declares when it next wants to run through
    get_next_execution_time() and does its work in _execute(). Runners
    call execute(), which bumps the execution count on success, and
    stop driving the process once is_finished() returns True.

    Timing is modulo-based: the n-th execution is due at
    ``start_time + n * interval_ns``. Execution 0 is therefore due the
    moment the process is initialized.
    """

    model_config = ConfigDict(extra="allow", frozen=False)

    interval_ns: int = Field(
        default=500_000_000,  # 500ms in nanoseconds
        gt=0,
        description="Execution interval in nanoseconds",
    )

    # Runtime timing state (mutable during execution)
    start_time: int = Field(
        default=0,
        description="Time at which initialize() was called "
        "(nanoseconds)",
    )
    execution_count: int = Field(
        default=0,
        description="Number of completed execution cycles",
    )

    def __init__(self, **data: Any) -> None:
        """Initialize process with a per-instance logger."""
        super().__init__(**data)
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}."
            f"{self.__class__.__name__}."
            f"{self.name}"
        )

    def execute(self) -> None:
        """Execute one cycle of this process.

        Template method that calls _execute() and updates the
        execution count only if it returned normally.
        """
        self._execute()
        self.update_execution_count()

    @abstractmethod
    def _execute(self) -> None:
        """Do one cycle of work."""

    def get_time(self) -> int:
        """Get current time in nanoseconds.

        When running under a Runner, returns the runner's time source,
        which is simulated time under FastRunner.

        Returns:
            Current time in nanoseconds

        """
        # Import here to avoid circular dependency
        from .runner import TimeSource

        runner = TimeSource.get_current()
        if runner:
            return runner.get_time()

        return time.monotonic_ns()

    def update_execution_count(self) -> None:
        """Increment execution_count after a successful cycle."""
        self.execution_count += 1

    def get_next_execution_time(self) -> int:
        """Calculate when the next execution should occur.

        Returns:
            Next execution time in nanoseconds

        """
        return self.start_time + (self.execution_count * self.interval_ns)

    def initialize(self) -> None:
        """Reset timing state so execution 0 is due immediately."""
        self.start_time = self.get_time()
        self.execution_count = 0

    def is_finished(self) -> bool:
        """Whether this process wants no further executions."""
        return False
