"""Power feed: smart-plug readings delivered over MQTT."""

import logging
import threading
from typing import Any

import paho.mqtt.client as mqtt
from pydantic import ConfigDict, Field

from harmonybridge.base.entity import Entity
from harmonybridge.base.feed import PayloadHandler


def create_mqtt_client(client_id: str = "", **kwargs: Any) -> mqtt.Client:
    """Build an MQTT client that works with paho-mqtt 1.x and 2.x.

    paho-mqtt 2.x requires a callback API version; the handlers here
    use the original (client, userdata, ...) signatures, so VERSION1
    is requested when the enum exists.

    Args:
        client_id: Optional client identifier
        kwargs: Extra keyword arguments for the client constructor

    """
    client_kwargs: dict[str, Any] = {
        "client_id": client_id,
        "protocol": kwargs.pop("protocol", mqtt.MQTTv311),
    }
    client_kwargs.update(kwargs)

    callback_api_version = getattr(mqtt, "CallbackAPIVersion", None)
    if callback_api_version is not None:
        client_kwargs["callback_api_version"] = callback_api_version.VERSION1

    return mqtt.Client(**client_kwargs)


class PowerFeed(Entity):
    """Routes plug power reports from an MQTT broker to handlers.

    Each device controller binds its topic to its ingest handler.
    Subscriptions are re-issued on every (re)connect, and paho's
    network thread reconnects on its own after a drop. Handlers run
    on that network thread and receive the raw payload bytes.
    """

    model_config = ConfigDict(frozen=False)

    host: str = Field(default="localhost", min_length=1)
    port: int = Field(default=1883, gt=0, lt=65536)
    client_id: str = ""
    keepalive: int = Field(default=60, gt=0)

    def __init__(self, client: mqtt.Client | None = None, **data: Any) -> None:
        """Initialize the feed.

        Args:
            client: Pre-built client, mainly for tests; one is created
                on start() otherwise
            **data: Field values for the feed

        """
        data.setdefault("name", "mqtt")
        super().__init__(**data)
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}."
            f"{self.name}"
        )
        self._client = client
        self._handlers_lock = threading.Lock()
        self._handlers: list[tuple[str, PayloadHandler]] = []
        self._connected = False

    def bind(self, topic: str, handler: PayloadHandler) -> None:
        """Deliver payloads on ``topic`` (an MQTT filter) to ``handler``."""
        with self._handlers_lock:
            self._handlers.append((topic, handler))
        if self._connected and self._client is not None:
            self._client.subscribe(topic)

    def topics(self) -> list[str]:
        """Distinct topics with at least one bound handler."""
        with self._handlers_lock:
            return list(dict.fromkeys(topic for topic, _ in self._handlers))

    def is_connected(self) -> bool:
        return self._connected

    def start(self) -> None:
        """Connect in the background and start the network thread."""
        if self._client is None:
            self._client = create_mqtt_client(client_id=self.client_id)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._logger.info(f"Connecting to MQTT broker {self.host}:{self.port}")
        self._client.connect_async(self.host, self.port, self.keepalive)
        self._client.loop_start()

    def stop(self) -> None:
        """Disconnect and stop the network thread."""
        if self._client is None:
            return
        self._client.disconnect()
        self._client.loop_stop()
        self._connected = False
        self._logger.info("Disconnected from MQTT broker")

    def _on_connect(self, client, userdata, flags, rc) -> None:
        if rc != 0:
            self._logger.error(
                f"MQTT connection refused: {mqtt.connack_string(rc)}"
            )
            return
        self._connected = True
        topics = self.topics()
        self._logger.info(f"MQTT connected, subscribing to {topics}")
        for topic in topics:
            client.subscribe(topic)

    def _on_disconnect(self, client, userdata, rc) -> None:
        self._connected = False
        if rc != 0:
            self._logger.warning(
                f"MQTT connection lost (rc={rc}), reconnecting"
            )

    def _on_message(self, client, userdata, msg) -> None:
        with self._handlers_lock:
            handlers = list(self._handlers)

        handled = False
        for topic, handler in handlers:
            if not mqtt.topic_matches_sub(topic, msg.topic):
                continue
            handled = True
            try:
                handler(msg.payload)
            except Exception:
                self._logger.exception(
                    f"Handler for {topic} failed on message from {msg.topic}"
                )

        if not handled:
            self._logger.debug(f"No handler for MQTT message on {msg.topic}")
