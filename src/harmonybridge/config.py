"""Bridge configuration models and per-device-class defaults."""

from enum import Enum
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    model_validator,
)

from harmonybridge.base.errors import ConfigError
from harmonybridge.base.hub import PowerCommand


class RemoteKey(str, Enum):
    """One-shot remote keys a device class may support."""

    ARROW_UP = "arrow_up"
    ARROW_DOWN = "arrow_down"
    ARROW_LEFT = "arrow_left"
    ARROW_RIGHT = "arrow_right"
    SELECT = "select"
    INFORMATION = "information"
    VOLUME_UP = "volume_up"
    VOLUME_DOWN = "volume_down"


class DeviceClass(BaseModel):
    """Tunables shared by every appliance of one kind.

    The power command and key positions are indices into the device's
    control groups in the hub command table.
    """

    model_config = ConfigDict(frozen=True)

    policy: Literal["instant", "averaging"]
    capacity: int = Field(default=5, ge=1)
    threshold: float = Field(default=0.0, ge=0)
    readiness: int = Field(default=1, ge=1)
    interval_ms: int = Field(default=500, gt=0)
    power_command: PowerCommand = Field(default_factory=PowerCommand)
    keys: dict[RemoteKey, PowerCommand] = Field(default_factory=dict)


DEVICE_CLASSES: dict[str, DeviceClass] = {
    "fan": DeviceClass(policy="instant", readiness=1, interval_ms=500),
    "switch": DeviceClass(policy="instant", readiness=1, interval_ms=500),
    "television": DeviceClass(
        policy="averaging",
        capacity=5,
        threshold=5.0,
        readiness=2,
        interval_ms=1000,
        keys={
            RemoteKey.ARROW_DOWN: PowerCommand(group_index=4, function_index=0),
            RemoteKey.ARROW_LEFT: PowerCommand(group_index=4, function_index=1),
            RemoteKey.ARROW_RIGHT: PowerCommand(
                group_index=4, function_index=2
            ),
            RemoteKey.ARROW_UP: PowerCommand(group_index=4, function_index=3),
            RemoteKey.SELECT: PowerCommand(group_index=4, function_index=4),
            RemoteKey.INFORMATION: PowerCommand(
                group_index=14, function_index=5
            ),
            RemoteKey.VOLUME_DOWN: PowerCommand(
                group_index=2, function_index=1
            ),
            RemoteKey.VOLUME_UP: PowerCommand(group_index=2, function_index=2),
        },
    ),
}

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_MAX_DURATION_S = 60.0


class HubConfig(BaseModel):
    """Connection settings for the universal-remote hub."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(min_length=1)
    timeout_s: float = Field(default=10.0, gt=0)


class MqttConfig(BaseModel):
    """Connection settings for the power-feed broker.

    Accepts either ``host``/``port`` or a ``server_uri`` such as
    ``mqtt://localhost:1883``.
    """

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = Field(default=1883, gt=0, lt=65536)
    client_id: str = ""
    keepalive: int = Field(default=60, gt=0)

    @model_validator(mode="before")
    @classmethod
    def split_server_uri(cls, data: Any) -> Any:
        if isinstance(data, dict) and "server_uri" in data:
            data = dict(data)
            uri = urlsplit(data.pop("server_uri"))
            if uri.scheme not in ("mqtt", "tcp") or not uri.hostname:
                raise ValueError(f"unsupported server_uri {uri.geturl()!r}")
            data.setdefault("host", uri.hostname)
            if uri.port:
                data.setdefault("port", uri.port)
        return data


class DeviceConfig(BaseModel):
    """One appliance: its hub label, power feed topic and tunables.

    Any tunable left out is taken from the device class.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    label: str = Field(min_length=1, description="Label in the hub table")
    device_class: Literal["fan", "television", "switch"]
    topic: str = Field(min_length=1, description="Power feed topic")
    unique_id: str | None = None

    policy: Literal["instant", "averaging"]
    capacity: int = Field(ge=1)
    threshold: float = Field(ge=0)
    readiness: int = Field(ge=1)
    interval_ms: int = Field(gt=0)
    power_command: PowerCommand
    max_attempts: int | None = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    max_duration_s: float | None = Field(default=DEFAULT_MAX_DURATION_S, gt=0)

    @model_validator(mode="before")
    @classmethod
    def apply_class_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        defaults = DEVICE_CLASSES.get(data.get("device_class", ""))
        if defaults is None:
            # Let field validation report the bad device_class
            return data
        merged = defaults.model_dump(exclude={"keys"})
        merged.update(data)
        return merged

    @model_validator(mode="after")
    def check_readiness(self) -> "DeviceConfig":
        if self.readiness > self.capacity:
            raise ValueError(
                f"readiness {self.readiness} exceeds capacity {self.capacity}"
            )
        return self

    @property
    def keys(self) -> dict[RemoteKey, PowerCommand]:
        """Remote keys this device's class supports."""
        return DEVICE_CLASSES[self.device_class].keys

    @property
    def interval_ns(self) -> int:
        return self.interval_ms * 1_000_000

    @property
    def max_duration_ns(self) -> int | None:
        if self.max_duration_s is None:
            return None
        return int(self.max_duration_s * 1_000_000_000)


class BridgeConfig(BaseModel):
    """Top-level bridge configuration."""

    model_config = ConfigDict(frozen=True)

    hub: HubConfig
    mqtt: MqttConfig = Field(default_factory=MqttConfig)
    devices: list[DeviceConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_devices(self) -> "BridgeConfig":
        for attribute in ("name", "topic"):
            seen: set[str] = set()
            for device in self.devices:
                value = getattr(device, attribute)
                if value in seen:
                    raise ValueError(f"duplicate device {attribute} {value!r}")
                seen.add(value)
        return self

    def device(self, name: str) -> DeviceConfig | None:
        """Get a device's configuration by name."""
        return next((d for d in self.devices if d.name == name), None)

    @classmethod
    def load(cls, path: str | Path) -> "BridgeConfig":
        """Read and validate a JSON configuration file.

        Raises:
            ConfigError: If the file cannot be read or is invalid

        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e

        try:
            return cls.model_validate_json(text)
        except ValidationError as e:
            raise ConfigError(f"Invalid config {path}:\n{e}") from e
