import threading
import types

import paho.mqtt.client as mqtt
import pytest

import mqrelay
from mqrelay.errors import ConfigurationError, ConnectError, ConnectionLostError, PublishError
from mqrelay.transport.mqtt import MqttTransport


success = types.SimpleNamespace(is_failure=False, value=0)
refused = types.SimpleNamespace(is_failure=True, value=135)


class FakeInfo:

    def __init__(self, rc=mqtt.MQTT_ERR_SUCCESS, published=True):
        self.rc = rc
        self.published = published

    def wait_for_publish(self, timeout=None):
        pass

    def is_published(self):
        return self.published


class FakeClient:
    """ Just enough of paho's Client to drive MqttTransport. The first call
        to loop() completes the handshake with *reason_code*.
    """

    def __init__(self, reason_code=success, publish_info=None, suback=True):
        self.reason_code = reason_code
        self.suback = suback
        self.publish_info = publish_info
        self.handshake_done = False
        self.connected = False
        self.published = list()
        self.subscribed = list()
        self.disconnected = threading.Event()
        self.lost = threading.Event()

        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None
        self.on_subscribe = None

    def connect(self, host, port, keepalive=60):
        self.endpoint = (host, port, keepalive)
        self.handshake_done = False
        self.disconnected.clear()

    def loop(self, timeout=1.0):
        if self.disconnected.is_set():
            return mqtt.MQTT_ERR_NO_CONN

        if self.lost.is_set():
            self.lost.clear()
            self.on_disconnect(self, None, None, refused, None)
            return mqtt.MQTT_ERR_CONN_LOST

        if not self.handshake_done:
            self.handshake_done = True
            self.on_connect(self, None, None, self.reason_code, None)
            if self.reason_code.is_failure:
                return mqtt.MQTT_ERR_CONN_REFUSED

        self.disconnected.wait(0.01)
        return mqtt.MQTT_ERR_SUCCESS

    def disconnect(self):
        self.disconnected.set()
        return mqtt.MQTT_ERR_SUCCESS

    def subscribe(self, topic, qos):
        self.subscribed.append((topic, qos))
        mid = len(self.subscribed)
        if self.suback:
            self.on_subscribe(self, None, mid, [success], None)
        return mqtt.MQTT_ERR_SUCCESS, mid

    def publish(self, topic, payload, qos=0):
        self.published.append((topic, payload, qos))
        if self.publish_info is not None:
            return self.publish_info
        return FakeInfo()


def test_connect_and_publish(settings):

    client = FakeClient()
    transport = MqttTransport(settings, client=client)

    connected = list()
    transport.on_connect = lambda: connected.append(True)

    transport.connect(1)

    assert transport.is_connected
    assert connected == [True]
    assert client.endpoint == ('broker.example.com', 8883, 60)

    transport.subscribe('topic/test', 1)
    assert client.subscribed == [('topic/test', 1)]

    transport.publish('topic/test', b'hello', 1)
    assert client.published == [('topic/test', b'hello', 1)]

    transport.disconnect(0)

    assert not transport.is_connected
    assert client.disconnected.is_set()


def test_refused(settings):

    transport = MqttTransport(settings, client=FakeClient(reason_code=refused))

    with pytest.raises(ConnectError):
        transport.connect(1)

    assert not transport.is_connected


def test_publish_failures(settings):

    client = FakeClient(publish_info=FakeInfo(rc=mqtt.MQTT_ERR_NO_CONN))
    transport = MqttTransport(settings, client=client)

    with pytest.raises(PublishError):
        transport.publish('topic/test', b'before connect', 1)

    transport.connect(1)

    with pytest.raises(PublishError):
        transport.publish('topic/test', b'rejected', 1)

    client.publish_info = FakeInfo(published=False)

    with pytest.raises(PublishError):
        transport.publish('topic/test', b'unacknowledged', 1, timeout=0.01)

    transport.disconnect(0)


def test_connection_lost(settings):

    client = FakeClient()
    transport = MqttTransport(settings, client=client)

    lost = list()
    transport.on_connection_lost = lost.append

    transport.connect(1)
    client.lost.set()
    transport._thread.join(1)

    assert not transport.is_connected
    assert len(lost) == 1
    assert isinstance(lost[0], ConnectionLostError)

    # An intentional disconnect is not reported as a loss.

    transport.connect(1)
    transport.disconnect(0)
    client.on_disconnect(client, None, None, success, None)

    assert len(lost) == 1


def test_messages(settings):

    client = FakeClient()
    transport = MqttTransport(settings, client=client)

    received = list()
    transport.on_message = lambda topic, payload: received.append((topic, payload))

    message = types.SimpleNamespace(topic='topic/test', payload=b'inbound')
    client.on_message(client, None, message)

    assert received == [('topic/test', b'inbound')]


def test_matches(settings):

    transport = MqttTransport(settings, client=FakeClient())

    assert transport.matches('topic/test', 'topic/test')
    assert transport.matches('topic/+', 'topic/test')
    assert transport.matches('#', 'topic/test')
    assert not transport.matches('topic/other', 'topic/test')


def test_build_client(settings):

    settings.update(dict(client_id='relay-1', tls=False))
    transport = MqttTransport(settings)

    assert isinstance(transport._client, mqtt.Client)
    assert transport.endpoint == 'broker.example.com:8883'


def test_create(settings):
    assert isinstance(mqrelay.transport.create(settings), MqttTransport)


def test_late_suback_discarded(settings):

    settings.connect_timeout = 0.05

    client = FakeClient(suback=False)
    transport = MqttTransport(settings, client=client)
    transport.connect(1)

    with pytest.raises(ConnectError):
        transport.subscribe('topic/test', 1)

    # The broker answers after the subscriber gave up.

    client.on_subscribe(client, None, 1, [success], None)

    assert transport._subacks == {}
    assert transport._abandoned == set()

    transport.disconnect(0)


def test_missing_ca_bundle(settings, tmp_path):

    settings.update(dict(tls=True, ca_certs=str(tmp_path / 'nope.pem')))

    with pytest.raises(ConfigurationError):
        MqttTransport(settings)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
