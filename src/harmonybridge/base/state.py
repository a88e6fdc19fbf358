"""Inferred power state and actuation intent types."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InferredState(str, Enum):
    """Best current judgment of an appliance's real power state."""

    UNKNOWN = "unknown"
    ON = "on"
    OFF = "off"


class LoopPhase(str, Enum):
    """Lifecycle of a convergence loop.

    IDLE -> ATTEMPTING -> one of CONVERGED, CANCELLED, FAILED. The three
    exits are terminal; a loop is never restarted.
    """

    IDLE = "idle"
    ATTEMPTING = "attempting"
    CONVERGED = "converged"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            LoopPhase.CONVERGED,
            LoopPhase.CANCELLED,
            LoopPhase.FAILED,
        )


class ActuationIntent(BaseModel):
    """A request to drive one appliance to a desired state."""

    model_config = ConfigDict(frozen=False)

    desired: InferredState = Field(
        description="Target state, ON or OFF",
    )
    attempt_count: int = Field(
        default=0, ge=0, description="Toggles issued so far"
    )
    started_at: int = Field(
        default=0, description="Nanosecond timestamp of the request"
    )

    @field_validator("desired")
    @classmethod
    def desired_must_be_binary(cls, value: InferredState) -> InferredState:
        if value is InferredState.UNKNOWN:
            raise ValueError("desired state must be ON or OFF")
        return value


class ActuationOutcome(BaseModel):
    """Terminal result of one convergence loop, reported to listeners."""

    model_config = ConfigDict(frozen=True)

    device: str
    desired: InferredState
    phase: LoopPhase
    attempts: int
    elapsed_ns: int
    reason: str = ""

    @property
    def succeeded(self) -> bool:
        return self.phase is LoopPhase.CONVERGED
