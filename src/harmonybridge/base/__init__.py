"""Base classes for the harmony bridge."""

from harmonybridge.base.actuator import POWER_TOGGLE, Actuator
from harmonybridge.base.buffer import PowerSampleBuffer
from harmonybridge.base.entity import Entity
from harmonybridge.base.errors import (
    ActionError,
    ActionSendFailure,
    BridgeError,
    ConfigError,
    DeviceNotFound,
    SensorParseFailure,
)
from harmonybridge.base.feed import Feed, PayloadHandler
from harmonybridge.base.hub import (
    ControlGroup,
    DeviceDescription,
    HubClient,
    HubFunction,
    PowerCommand,
)
from harmonybridge.base.process import Process
from harmonybridge.base.runner import (
    FastRunner,
    Runner,
    StandardRunner,
    TimeSource,
)
from harmonybridge.base.sample import PowerSample, parse_payload
from harmonybridge.base.state import (
    ActuationIntent,
    ActuationOutcome,
    InferredState,
    LoopPhase,
)

__all__ = [
    "POWER_TOGGLE",
    "ActionError",
    "ActionSendFailure",
    "ActuationIntent",
    "ActuationOutcome",
    "Actuator",
    "BridgeError",
    "ConfigError",
    "ControlGroup",
    "DeviceDescription",
    "DeviceNotFound",
    "Entity",
    "Feed",
    "FastRunner",
    "HubClient",
    "HubFunction",
    "InferredState",
    "LoopPhase",
    "PayloadHandler",
    "PowerCommand",
    "PowerSample",
    "PowerSampleBuffer",
    "Process",
    "Runner",
    "SensorParseFailure",
    "StandardRunner",
    "TimeSource",
    "parse_payload",
]
