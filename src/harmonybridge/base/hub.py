"""Hub command table models and the hub client interface."""

from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field


class HubFunction(BaseModel):
    """One button in a control group; ``action`` is an opaque payload."""

    model_config = ConfigDict(extra="allow", frozen=True)

    action: str
    name: str = ""
    label: str = ""


class ControlGroup(BaseModel):
    """A named group of functions (Power, Volume, NavigationBasic, ...)."""

    model_config = ConfigDict(extra="allow", frozen=True)

    name: str = ""
    function: list[HubFunction] = Field(default_factory=list)


class DeviceDescription(BaseModel):
    """A device as listed in the hub's command table."""

    model_config = ConfigDict(
        extra="allow", frozen=True, populate_by_name=True
    )

    label: str
    id: str = ""
    control_group: list[ControlGroup] = Field(
        default_factory=list, alias="controlGroup"
    )


class PowerCommand(BaseModel):
    """Position of a command inside a device's control groups."""

    model_config = ConfigDict(frozen=True)

    group_index: int = Field(default=0, ge=0)
    function_index: int = Field(default=0, ge=0)


class HubClient(Protocol):
    """What the bridge needs from a universal-remote hub connection.

    One client is shared by every device controller. Both calls may
    block on network I/O.
    """

    def get_available_commands(self) -> list[DeviceDescription]:
        """Return the hub's current command table."""
        ...

    def send(self, action: str) -> None:
        """Send one opaque action payload, raising on failure."""
        ...
