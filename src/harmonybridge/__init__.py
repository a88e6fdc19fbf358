"""Infer appliance power from a plug feed and drive it via a remote hub."""

# Core classes
from .base import (
    POWER_TOGGLE,
    ActionError,
    ActionSendFailure,
    ActuationIntent,
    ActuationOutcome,
    Actuator,
    BridgeError,
    ConfigError,
    ControlGroup,
    DeviceDescription,
    DeviceNotFound,
    Entity,
    FastRunner,
    Feed,
    HubClient,
    HubFunction,
    InferredState,
    LoopPhase,
    PowerCommand,
    PowerSample,
    PowerSampleBuffer,
    Process,
    Runner,
    SensorParseFailure,
    StandardRunner,
    TimeSource,
    parse_payload,
)
from .config import (
    DEVICE_CLASSES,
    BridgeConfig,
    DeviceClass,
    DeviceConfig,
    HubConfig,
    MqttConfig,
    RemoteKey,
)

# Estimators and controllers
from .controllers import ConvergenceLoop, DeviceController, standard_runner
from .estimators import (
    AveragingEstimator,
    Estimator,
    InstantEstimator,
    create_estimator,
)
from .platform import Platform

__all__ = [
    "DEVICE_CLASSES",
    "POWER_TOGGLE",
    "ActionError",
    "ActionSendFailure",
    "ActuationIntent",
    "ActuationOutcome",
    "Actuator",
    "AveragingEstimator",
    "BridgeConfig",
    "BridgeError",
    "ConfigError",
    "ControlGroup",
    "ConvergenceLoop",
    "DeviceClass",
    "DeviceConfig",
    "DeviceController",
    "DeviceDescription",
    "DeviceNotFound",
    "Entity",
    "Estimator",
    "FastRunner",
    "Feed",
    "HubClient",
    "HubConfig",
    "HubFunction",
    "InferredState",
    "InstantEstimator",
    "LoopPhase",
    "MqttConfig",
    "Platform",
    "PowerCommand",
    "PowerSample",
    "PowerSampleBuffer",
    "Process",
    "RemoteKey",
    "Runner",
    "SensorParseFailure",
    "StandardRunner",
    "TimeSource",
    "create_estimator",
    "parse_payload",
    "standard_runner",
]
