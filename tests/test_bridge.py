import logging

import pytest

import mqrelay
from mqrelay.errors import ConnectError, ValidationError
from mqrelay.transport import ConnectionState


def test_start(bridge, transport):

    assert bridge.connection.state == ConnectionState.CONNECTED
    assert transport.subscriptions == [('topic/test', 1)]
    assert bridge.snapshot() == []


def test_end_to_end(bridge, transport):

    for payload in (b'a', b'b', b'c'):
        transport.deliver('topic/test', payload)

    records = bridge.snapshot()

    assert [(record.sequence, record.body) for record in records] == [(1, 'a'), (2, 'b'), (3, 'c')]
    assert records[0].received_at < records[1].received_at < records[2].received_at


def test_submit_round_trip(bridge, transport):
    """ A submitted message reaches the log only through the broker. With
        no echo from the broker the log stays empty.
    """

    bridge.submit('not echoed')

    assert transport.published == [('topic/test', b'not echoed', 1)]
    assert bridge.snapshot() == []

    transport.loopback = True
    bridge.submit('echoed')

    assert [record.body for record in bridge.snapshot()] == ['echoed']


def test_submit_empty(bridge, transport):

    with pytest.raises(ValidationError):
        bridge.submit('')

    assert transport.published == []


def test_banner(settings, transport, caplog):

    bridge = mqrelay.Bridge(settings, transport)

    with caplog.at_level(logging.INFO, logger='mqrelay'):
        bridge.start()

    assert 'Successfully connected' in caplog.text
    assert 'Subscribed to topic: topic/test' in caplog.text
    assert 'broker.example.com:8883' in caplog.text
    assert 'POST request to /messages' in caplog.text

    # Reconnects get a short note rather than the whole banner again.

    caplog.clear()
    with caplog.at_level(logging.INFO, logger='mqrelay'):
        transport.drop()
        bridge.connection.connect()

    assert 'Reconnected to broker.example.com:8883' in caplog.text
    assert 'Successfully connected' not in caplog.text

    bridge.stop()


def test_health(bridge, transport):

    transport.deliver('topic/test', b'ok')
    transport.deliver('topic/test', b'\xff')

    report = bridge.health()

    assert report['status'] == 'healthy'
    assert report['state'] == 'connected'
    assert report['topic'] == 'topic/test'
    assert report['records'] == 1
    assert report['received'] == 2
    assert report['dropped'] == 1

    transport.drop()

    report = bridge.health()
    assert report['status'] == 'degraded'
    assert report['state'] == 'disconnected'


def test_start_failure(settings, transport):

    transport.fail_connect = 1
    bridge = mqrelay.Bridge(settings, transport)

    with pytest.raises(ConnectError):
        bridge.start()

    assert transport.subscriptions == []


def test_context_manager(settings, transport):

    with mqrelay.Bridge(settings, transport) as bridge:
        assert bridge.connection.state == ConnectionState.CONNECTED

    assert bridge.connection.state == ConnectionState.DISCONNECTED
    assert transport.disconnects == 1

    # Stopping again does nothing.

    bridge.stop()
    assert transport.disconnects == 1


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
