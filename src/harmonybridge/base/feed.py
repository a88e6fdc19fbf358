"""Power feed interface consumed by the platform."""

from collections.abc import Callable
from typing import Protocol, runtime_checkable

PayloadHandler = Callable[[bytes], None]


@runtime_checkable
class Feed(Protocol):
    """Source of raw power payloads, delivered per topic.

    Handlers run on the feed's own delivery thread.
    """

    def bind(self, topic: str, handler: PayloadHandler) -> None:
        """Deliver payloads published on ``topic`` to ``handler``."""
        ...

    def start(self) -> None:
        """Begin delivering payloads."""
        ...

    def stop(self) -> None:
        """Stop delivering payloads and release the connection."""
        ...
