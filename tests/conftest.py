import threading

import pytest

import mqrelay
from mqrelay.errors import ConnectError, ConnectionLostError, PublishError
from mqrelay.transport import Transport


class LoopbackTransport(Transport):
    """ In-memory stand-in for a broker. Published messages are recorded and,
        if *loopback* is True, delivered straight back to any subscriber the
        way a real broker echoes messages to the publishing client.
    """

    name = 'loopback'

    def __init__(self, settings, loopback=False):
        Transport.__init__(self, settings)

        self.loopback = loopback
        self.connected = False
        self.connects = 0
        self.disconnects = 0
        self.subscriptions = list()
        self.published = list()

        self.fail_connect = 0
        self.fail_publish = None
        self.lock = threading.Lock()


    @property
    def is_connected(self):
        return self.connected


    def connect(self, timeout=None):
        self.connects += 1

        if self.fail_connect:
            self.fail_connect -= 1
            raise ConnectError('connection refused by loopback broker')

        self.connected = True
        self.on_connect()


    def disconnect(self, grace_period=None):
        self.disconnects += 1
        self.connected = False


    def subscribe(self, topic, qos):
        if not self.connected:
            raise ConnectError('not connected')
        self.subscriptions.append((topic, qos))


    def publish(self, topic, payload, qos, timeout=None):
        if self.fail_publish is not None:
            raise self.fail_publish

        if not self.connected:
            raise PublishError('not connected')

        with self.lock:
            self.published.append((topic, payload, qos))

        if self.loopback:
            self.deliver(topic, payload)


    def deliver(self, topic, payload):
        """ Simulate an inbound message from the broker.
        """
        self.on_message(topic, payload)


    def drop(self, reason='keepalive timeout'):
        """ Simulate the broker connection going away.
        """
        self.connected = False
        self.on_connection_lost(ConnectionLostError('connection lost: ' + reason))


@pytest.fixture
def settings():
    return mqrelay.Settings(
        host='broker.example.com',
        topic='topic/test',
        username='relay',
        password='secret',
        tls=False,
        grace_period=0,
        reconnect_delay=0.01,
    )


@pytest.fixture
def transport(settings):
    return LoopbackTransport(settings)


@pytest.fixture
def bridge(settings, transport):
    bridge = mqrelay.Bridge(settings, transport)
    bridge.start()

    yield bridge

    bridge.stop()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
