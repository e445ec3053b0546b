"""RabbitMQ transport backed by a pika topic exchange."""

from __future__ import annotations

import ssl
import threading
import time
from typing import Callable, Optional

import pika
import pika.exceptions

from ..errors import ConnectError, ConnectionLostError, PublishError
from ..logconfig import get_logger
from .base import Transport

logger = get_logger("transport.amqp")


def to_routing_key(topic: str) -> str:
    """Translate an MQTT-style topic or filter to an AMQP routing key.

    Raises :class:`ValueError` for a topic containing ``.``, which would
    come back from the broker as extra topic levels.
    """

    if "." in topic:
        raise ValueError(f"topic cannot be mapped to an AMQP routing key: {topic}")

    words = []
    for level in topic.split("/"):
        if level == "+":
            level = "*"
        words.append(level)
    return ".".join(words)


def from_routing_key(routing_key: str) -> str:
    """Translate an AMQP routing key back to an MQTT-style topic."""

    levels = []
    for word in routing_key.split("."):
        if word == "*":
            word = "+"
        levels.append(word)
    return "/".join(levels)


class _Pending:
    """Run a callable on the connection thread and hand back its outcome."""

    def __init__(self, function: Callable):
        self.function = function
        self.result = None
        self.error: Optional[BaseException] = None
        self.done = threading.Event()

    def run(self) -> None:
        try:
            self.result = self.function()
        except Exception as e:
            self.error = e
        finally:
            self.done.set()

    def wait(self, timeout: Optional[float]) -> bool:
        return self.done.wait(timeout)


class AmqpTransport(Transport):
    """Blocking pika connection driven by a dedicated thread.

    pika connections are not thread-safe: every channel operation runs on
    the connection thread, other threads hand work over with
    ``add_callback_threadsafe``.
    """

    name = "amqp"
    loop_timeout = 0.25

    def __init__(self, settings):
        super().__init__(settings)

        self._connection: Optional[pika.BlockingConnection] = None
        self._channel = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._connect_error: Optional[ConnectError] = None
        self._closing = False

        self._inflight = 0
        self._manual_ack = set()
        self._inflight_lock = threading.Lock()

    def _parameters(self) -> pika.ConnectionParameters:
        settings = self.settings
        kwargs = dict(
            host=settings.host,
            port=settings.port,
            virtual_host=settings.vhost,
            heartbeat=settings.keepalive,
            blocked_connection_timeout=300,
            socket_timeout=settings.connect_timeout,
        )

        if settings.username:
            kwargs["credentials"] = pika.PlainCredentials(
                settings.username, settings.password or ""
            )

        if settings.client_id:
            kwargs["client_properties"] = {"connection_name": settings.client_id}

        if settings.tls:
            context = ssl.create_default_context(cafile=settings.ca_certs)
            if settings.tls_insecure:
                context.check_hostname = False
                context.verify_mode = ssl.CERT_NONE
            kwargs["ssl_options"] = pika.SSLOptions(context, settings.host)

        return pika.ConnectionParameters(**kwargs)

    @property
    def is_connected(self) -> bool:
        connection = self._connection
        return connection is not None and connection.is_open and not self._closing

    def connect(self, timeout: Optional[float] = None) -> None:
        if timeout is None:
            timeout = self.settings.connect_timeout

        if self._thread is not None:
            self._thread.join(timeout)

        self._ready.clear()
        self._manual_ack.clear()
        self._connect_error = None
        self._closing = False

        self._thread = threading.Thread(
            target=self._run, name="mqrelay-amqp", daemon=True
        )
        self._thread.start()

        if not self._ready.wait(timeout):
            self._closing = True
            raise ConnectError(
                f"no AMQP handshake from {self.endpoint} in {timeout:.2f} sec"
            )

        if self._connect_error is not None:
            raise self._connect_error

    def disconnect(self, grace_period: Optional[float] = None) -> None:
        if grace_period is None:
            grace_period = self.settings.grace_period

        deadline = time.monotonic() + grace_period
        while time.monotonic() < deadline:
            with self._inflight_lock:
                if self._inflight == 0:
                    break
            time.sleep(0.01)

        self._closing = True

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(grace_period + self.loop_timeout * 2)
        self._thread = None

    def subscribe(self, topic: str, qos: int) -> None:
        if not self.is_connected:
            raise ConnectError(f"cannot subscribe to {topic}: not connected")

        try:
            routing_key = to_routing_key(topic)
        except ValueError as e:
            raise ConnectError(f"cannot subscribe to {topic}: {e}") from e

        def bind():
            result = self._channel.queue_declare(queue="", exclusive=True)
            queue_name = result.method.queue
            self._channel.queue_bind(
                exchange=self.settings.exchange,
                queue=queue_name,
                routing_key=routing_key,
            )
            consumer_tag = self._channel.basic_consume(
                queue=queue_name,
                on_message_callback=self._on_delivery,
                auto_ack=(qos == 0),
            )
            if qos:
                self._manual_ack.add(consumer_tag)

        try:
            self._call(bind, self.settings.connect_timeout)
        except TimeoutError as e:
            raise ConnectError(f"no reply to subscribe for {topic}") from e
        except pika.exceptions.AMQPError as e:
            raise ConnectError(f"subscribe to {topic} failed: {e!r}") from e

        logger.debug(f"Bound {routing_key} on exchange {self.settings.exchange}")

    def publish(
        self, topic: str, payload: bytes, qos: int, timeout: Optional[float] = None
    ) -> None:
        if timeout is None:
            timeout = self.settings.publish_timeout

        if not self.is_connected:
            raise PublishError(f"cannot publish to {topic}: not connected to {self.endpoint}")

        try:
            routing_key = to_routing_key(topic)
        except ValueError as e:
            raise PublishError(str(e)) from e

        # Persistent delivery for at-least-once, transient otherwise.
        properties = pika.BasicProperties(delivery_mode=2 if qos else 1)

        def send():
            self._channel.basic_publish(
                exchange=self.settings.exchange,
                routing_key=routing_key,
                body=payload,
                properties=properties,
                mandatory=True,
            )

        with self._inflight_lock:
            self._inflight += 1

        try:
            self._call(send, timeout)
        except TimeoutError as e:
            raise PublishError(
                f"publish to {topic}: no broker confirmation in {timeout:.2f} sec"
            ) from e
        except pika.exceptions.UnroutableError as e:
            raise PublishError(f"publish to {topic}: no queue bound to {routing_key}") from e
        except pika.exceptions.NackError as e:
            raise PublishError(f"publish to {topic}: rejected by the broker") from e
        except (pika.exceptions.AMQPError, ConnectError) as e:
            raise PublishError(f"publish to {topic} failed: {e!r}") from e
        finally:
            with self._inflight_lock:
                self._inflight -= 1

    def matches(self, subscription: str, topic: str) -> bool:
        return _filter_matches(subscription.split("/"), topic.split("/"))

    # --- connection thread ---

    def _call(self, function: Callable, timeout: Optional[float]):
        connection = self._connection
        if connection is None:
            raise ConnectError(f"not connected to {self.endpoint}")

        pending = _Pending(function)
        try:
            connection.add_callback_threadsafe(pending.run)
        except pika.exceptions.ConnectionWrongStateError as e:
            raise ConnectError(f"connection to {self.endpoint} is closed") from e

        if not pending.wait(timeout):
            raise TimeoutError(f"no reply from the connection thread in {timeout:.2f} sec")

        if pending.error is not None:
            raise pending.error
        return pending.result

    def _run(self) -> None:
        try:
            connection = pika.BlockingConnection(self._parameters())
            channel = connection.channel()
            channel.exchange_declare(
                exchange=self.settings.exchange, exchange_type="topic", durable=False
            )
            channel.confirm_delivery()
        except (pika.exceptions.AMQPError, OSError) as e:
            self._connect_error = ConnectError(
                f"cannot connect to AMQP broker at {self.endpoint}: {e!r}"
            )
            self._ready.set()
            return

        self._connection = connection
        self._channel = channel
        self.on_connect()
        self._ready.set()

        lost = None

        try:
            while not self._closing:
                connection.process_data_events(time_limit=self.loop_timeout)
        except (pika.exceptions.AMQPError, OSError) as e:
            lost = e
        finally:
            if connection.is_open:
                try:
                    connection.close()
                except pika.exceptions.AMQPError:
                    logger.debug("Ignoring error while closing AMQP connection", exc_info=True)
            self._connection = None
            self._channel = None

        if lost is not None and not self._closing:
            self.on_connection_lost(
                ConnectionLostError(f"connection to {self.endpoint} lost: {lost!r}")
            )

    def _on_delivery(self, channel, method, _properties, body: bytes) -> None:
        try:
            self.on_message(from_routing_key(method.routing_key), body)
        finally:
            # Auto-acknowledged consumers (QoS 0) must never be acked.
            if method.consumer_tag in self._manual_ack and channel.is_open:
                channel.basic_ack(method.delivery_tag)


def _filter_matches(levels, topic_levels) -> bool:
    for index, level in enumerate(levels):
        if level == "#":
            return True
        if index >= len(topic_levels):
            return False
        if level != "+" and level != topic_levels[index]:
            return False
    return len(levels) == len(topic_levels)
