"""Broker transport implementations."""

from .base import ConnectionState, Transport
from ..errors import ConfigurationError

backends = ("mqtt", "amqp")


def create(settings) -> Transport:
    """Instantiate the transport selected by ``settings.transport``."""

    backend = settings.transport

    if backend == "mqtt":
        from .mqtt import MqttTransport as factory
    elif backend == "amqp":
        from .amqp import AmqpTransport as factory
    else:
        raise ConfigurationError(f"unknown transport backend: {backend!r}")

    return factory(settings)
