"""Transport interface.

This is the (small) contract that broker backends follow. The connection
manager owns the lifecycle and the policy decisions; a transport only knows
how to speak one wire protocol.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from typing import Callable, Optional


class ConnectionState(enum.Enum):
    """Lifecycle of a broker session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def _ignore(*args) -> None:
    pass


class Transport(ABC):
    """Minimal contract for a broker transport.

    The three callbacks are assigned by the owner before :meth:`connect` is
    called. ``on_message`` and ``on_connection_lost`` are invoked on the
    transport's own network thread, never on the caller's.
    """

    name = "base"

    def __init__(self, settings):
        self.settings = settings
        self.on_connect: Callable[[], None] = _ignore
        self.on_connection_lost: Callable[[Exception], None] = _ignore
        self.on_message: Callable[[str, bytes], None] = _ignore

    @abstractmethod
    def connect(self, timeout: Optional[float] = None) -> None:
        """Open the session; block until the handshake completes.

        Raises :class:`mqrelay.errors.ConnectError` on failure or timeout.
        """

    @abstractmethod
    def disconnect(self, grace_period: Optional[float] = None) -> None:
        """Flush in-flight acknowledgments, then close the session."""

    @abstractmethod
    def subscribe(self, topic: str, qos: int) -> None:
        """Register interest in *topic* on the broker."""

    @abstractmethod
    def publish(
        self, topic: str, payload: bytes, qos: int, timeout: Optional[float] = None
    ) -> None:
        """Send *payload*; block until the broker acknowledges it.

        Raises :class:`mqrelay.errors.PublishError` on any failure.
        """

    @property
    def endpoint(self) -> str:
        """Human-readable broker address, for log messages."""
        return f"{self.settings.host}:{self.settings.port}"

    @property
    def is_connected(self) -> bool:
        """Whether the session is currently established."""
        return False

    def matches(self, subscription: str, topic: str) -> bool:
        """Whether an inbound *topic* falls under a *subscription* filter."""
        return subscription == topic
