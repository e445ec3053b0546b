"""MQTT transport backed by paho-mqtt."""

from __future__ import annotations

import threading
import time
from typing import Dict, Optional, Set

import paho.mqtt.client as mqtt

from ..errors import ConfigurationError, ConnectError, ConnectionLostError, PublishError
from ..logconfig import get_logger
from .base import Transport

logger = get_logger("transport.mqtt")


class MqttTransport(Transport):
    """MQTT v3.1.1 session, TLS by default.

    The network loop runs on a dedicated daemon thread that calls
    :meth:`paho.mqtt.client.Client.loop` until the session ends. paho's
    own automatic reconnect is not used; when the socket drops the thread
    exits and :attr:`on_connection_lost` fires.
    """

    name = "mqtt"
    loop_timeout = 1.0

    def __init__(self, settings, client: Optional[mqtt.Client] = None):
        super().__init__(settings)

        if client is None:
            client = self._build_client()

        self._client = client
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.on_subscribe = self._on_subscribe

        self._thread: Optional[threading.Thread] = None
        self._handshake = threading.Event()
        self._connected = threading.Event()
        self._connect_error: Optional[ConnectError] = None
        self._closing = False

        self._inflight: Set[mqtt.MQTTMessageInfo] = set()
        self._inflight_lock = threading.Lock()

        self._subacks: Dict[int, list] = {}
        self._abandoned: Set[int] = set()
        self._subacks_cond = threading.Condition()

    def _build_client(self) -> mqtt.Client:
        settings = self.settings

        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=settings.client_id or "",
            protocol=mqtt.MQTTv311,
        )

        if settings.username:
            client.username_pw_set(settings.username, settings.password)

        if settings.tls:
            # Uses the system CA store unless ca_certs is given.
            try:
                client.tls_set(ca_certs=settings.ca_certs)
            except (OSError, ValueError) as e:
                raise ConfigurationError(f"cannot set up TLS: {e}") from e
            if settings.tls_insecure:
                client.tls_insecure_set(True)

        return client

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def connect(self, timeout: Optional[float] = None) -> None:
        if timeout is None:
            timeout = self.settings.connect_timeout

        self._join_loop(timeout)

        self._handshake.clear()
        self._connected.clear()
        self._connect_error = None
        self._closing = False

        host = self.settings.host
        port = self.settings.port

        try:
            self._client.connect(host, port, keepalive=self.settings.keepalive)
        except (OSError, ValueError) as e:
            raise ConnectError(f"cannot reach broker at {host}:{port}: {e}") from e

        self._thread = threading.Thread(
            target=self._run, name="mqrelay-mqtt", daemon=True
        )
        self._thread.start()

        if not self._handshake.wait(timeout):
            self._closing = True
            self._client.disconnect()
            raise ConnectError(
                f"no CONNACK from {host}:{port} in {timeout:.2f} sec"
            )

        if self._connect_error is not None:
            self._closing = True
            raise self._connect_error

    def disconnect(self, grace_period: Optional[float] = None) -> None:
        if grace_period is None:
            grace_period = self.settings.grace_period

        deadline = time.monotonic() + grace_period
        while time.monotonic() < deadline:
            with self._inflight_lock:
                pending = [info for info in self._inflight if not info.is_published()]
            if not pending:
                break
            time.sleep(0.01)

        self._closing = True
        self._client.disconnect()
        self._join_loop(grace_period + self.loop_timeout)
        self._connected.clear()

    def subscribe(self, topic: str, qos: int) -> None:
        if not self.is_connected:
            raise ConnectError(f"cannot subscribe to {topic}: not connected")

        # SUBACKs are recorded by mid even if they arrive before the wait below.

        result, mid = self._client.subscribe(topic, qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectError(
                f"subscribe to {topic} failed: {mqtt.error_string(result)}"
            )

        timeout = self.settings.connect_timeout

        with self._subacks_cond:
            acked = self._subacks_cond.wait_for(
                lambda: mid in self._subacks, timeout
            )
            if not acked:
                # A SUBACK arriving after this point is discarded on receipt.
                self._abandoned.add(mid)
                raise ConnectError(f"no SUBACK for {topic} in {timeout:.2f} sec")

            reason_codes = self._subacks.pop(mid)

        for reason_code in reason_codes:
            if reason_code.is_failure:
                raise ConnectError(f"broker refused subscription to {topic}: {reason_code}")

        logger.debug(f"Subscribed to {topic} at QoS {qos}")

    def publish(
        self, topic: str, payload: bytes, qos: int, timeout: Optional[float] = None
    ) -> None:
        if timeout is None:
            timeout = self.settings.publish_timeout

        if not self.is_connected:
            raise PublishError(f"cannot publish to {topic}: not connected to {self.endpoint}")

        info = self._client.publish(topic, payload, qos=qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(f"publish to {topic} failed: {mqtt.error_string(info.rc)}")

        with self._inflight_lock:
            self._inflight.add(info)

        try:
            info.wait_for_publish(timeout)
        except (ValueError, RuntimeError) as e:
            raise PublishError(f"publish to {topic} failed: {e}") from e
        finally:
            with self._inflight_lock:
                self._inflight.discard(info)

        if not info.is_published():
            raise PublishError(
                f"publish to {topic}: no acknowledgment in {timeout:.2f} sec"
            )

    def matches(self, subscription: str, topic: str) -> bool:
        return mqtt.topic_matches_sub(subscription, topic)

    # --- network thread ---

    def _run(self) -> None:
        while not self._closing:
            rc = self._client.loop(timeout=self.loop_timeout)
            if rc != mqtt.MQTT_ERR_SUCCESS:
                break

    def _join_loop(self, timeout: float) -> None:
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout)
        self._thread = None

    def _on_connect(self, _client, _userdata, _flags, reason_code, _properties) -> None:
        if reason_code.is_failure:
            self._connect_error = ConnectError(
                f"broker at {self.endpoint} refused connection: {reason_code}"
            )
            self._handshake.set()
            return

        self._connected.set()
        self.on_connect()
        self._handshake.set()

    def _on_disconnect(self, _client, _userdata, _flags, reason_code, _properties) -> None:
        was_connected = self._connected.is_set()
        self._connected.clear()

        if self._closing or not was_connected:
            return

        self.on_connection_lost(
            ConnectionLostError(f"connection to {self.endpoint} lost: {reason_code}")
        )

    def _on_message(self, _client, _userdata, message) -> None:
        self.on_message(message.topic, message.payload)

    def _on_subscribe(self, _client, _userdata, mid, reason_codes, _properties) -> None:
        with self._subacks_cond:
            if mid in self._abandoned:
                self._abandoned.discard(mid)
                return
            self._subacks[mid] = list(reason_codes)
            self._subacks_cond.notify_all()
