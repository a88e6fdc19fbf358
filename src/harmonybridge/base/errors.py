"""Exception hierarchy for the harmony bridge.

None of these are fatal to a running bridge. Actuation errors are
absorbed by the convergence loop as attempts that had no effect, and
sensor parse errors drop the offending sample. Only ConfigError stops
the process, and only at startup.
"""


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigError(BridgeError):
    """Configuration file is missing or does not validate."""


class ActionError(BridgeError):
    """A remote command could not be resolved or sent."""


class DeviceNotFound(ActionError):
    """Device label or command index is absent from the hub table."""

    def __init__(self, label: str, detail: str | None = None) -> None:
        self.label = label
        message = f"Device '{label}' not found in hub command table"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ActionSendFailure(ActionError):
    """The hub raised or reported failure while sending a command."""


class SensorParseFailure(BridgeError):
    """A sensor payload could not be turned into a power sample."""
