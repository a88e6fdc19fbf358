"""Toggle actuator that sends remote commands through the hub."""

import logging
from typing import Any

from pydantic import ConfigDict

from .entity import Entity
from .errors import ActionError, ActionSendFailure, DeviceNotFound
from .hub import HubClient, PowerCommand

POWER_TOGGLE = PowerCommand(group_index=0, function_index=0)


class Actuator(Entity):
    """Sends single remote commands for devices identified by label.

    The actuator has no notion of target state: toggle() flips power
    in whatever direction the appliance is currently in. Converging on
    a desired state is the job of the feedback loop around it.

    Each call resolves the label against the hub's current command
    table, so a stale or reloaded table is picked up on the next
    attempt.
    """

    model_config = ConfigDict(frozen=False)

    def __init__(self, hub: HubClient, **data: Any) -> None:
        """Initialize actuator around a shared hub client."""
        data.setdefault("name", "hub")
        super().__init__(**data)
        self._hub = hub
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}."
            f"{self.name}"
        )

    def resolve(self, label: str, command: PowerCommand) -> str:
        """Look up the action payload for a device command.

        Args:
            label: Device label as shown in the hub command table
            command: Control group and function indices

        Returns:
            The opaque action string to send

        Raises:
            DeviceNotFound: If the label is unknown or either index is
                out of range for that device
            ActionSendFailure: If the command table cannot be fetched

        """
        try:
            devices = self._hub.get_available_commands()
        except ActionError:
            raise
        except Exception as e:
            raise ActionSendFailure(
                f"Could not fetch hub commands: {e}"
            ) from e

        device = next((d for d in devices if d.label == label), None)
        if device is None:
            raise DeviceNotFound(label)

        groups = device.control_group
        if command.group_index >= len(groups):
            raise DeviceNotFound(
                label, f"no control group {command.group_index}"
            )
        functions = groups[command.group_index].function
        if command.function_index >= len(functions):
            raise DeviceNotFound(
                label,
                f"no function {command.function_index} in control group "
                f"{command.group_index}",
            )
        return functions[command.function_index].action

    def send_command(self, label: str, command: PowerCommand) -> None:
        """Resolve and send exactly one remote command.

        Raises:
            DeviceNotFound: If the command cannot be resolved
            ActionSendFailure: If the hub fails to send it

        """
        self.send(label, self.resolve(label, command))

    def send(self, label: str, action: str) -> None:
        """Send an action previously returned by resolve().

        Raises:
            ActionSendFailure: If the hub fails to send it

        """
        self._logger.debug(f"[{label}] sending {action}")
        try:
            self._hub.send(action)
        except ActionError:
            raise
        except Exception as e:
            raise ActionSendFailure(
                f"Hub failed to send command for '{label}': {e}"
            ) from e

    def toggle(self, label: str, command: PowerCommand = POWER_TOGGLE) -> None:
        """Send the power-toggle command for a device."""
        self._logger.info(f"[{label}] power toggle")
        self.send_command(label, command)
