""" The :class:`Bridge` ties the relay together: one instance, constructed
    once at startup, owns the retained log, the connection manager, the
    ingestion sink and the publish gateway. The HTTP layer and the broker
    callbacks both work through it; there is no module-level state.
"""

import threading

from .connection import ConnectionManager
from .gateway import PublishGateway
from .log import RetainedLog
from .logconfig import get_logger
from .sink import IngestionSink
from .transport import ConnectionState

logger = get_logger('bridge')


class Bridge:
    """ Relay between one broker topic and a population of synchronous
        callers. Inbound messages on the topic are appended to the retained
        log by the ingestion sink; :func:`submit` publishes new messages to
        the same topic.

        The *transport* argument is optional; by default the transport is
        selected by the *transport* setting. Supplying one is mostly useful
        for testing.
    """

    def __init__(self, settings, transport=None):

        self.settings = settings
        self.topic = settings.topic

        self.log = RetainedLog()
        self.connection = ConnectionManager(settings, transport)
        self.sink = IngestionSink(self.log)
        self.gateway = PublishGateway(self.connection, self.topic)

        self._announced = False
        self._stopped = threading.Event()

        self.connection.add_listener(on_connect=self._on_connect)


    def __enter__(self):
        self.start()
        return self


    def __exit__(self, *exception):
        self.stop()


    def __repr__(self):
        return 'bridge.Bridge: %s on %s, %d records' % (self.topic, self.connection.endpoint, len(self.log))


    def start(self):
        """ Connect to the broker and subscribe the ingestion sink to the
            configured topic. A :class:`mqrelay.errors.ConnectError` here is
            fatal; the caller is expected to exit.
        """

        self._stopped.clear()
        self.connection.connect()
        self.connection.subscribe(self.topic, self.sink)


    def stop(self, grace_period=None):
        """ Disconnect from the broker. Safe to call more than once; only
            the first call after :func:`start` does anything.
        """

        if self._stopped.is_set():
            return

        self._stopped.set()
        self.connection.disconnect(grace_period)


    def snapshot(self, since=0):
        return self.log.snapshot(since)


    def submit(self, body):
        self.gateway.submit(body)


    def health(self):
        """ Return a dictionary describing the current state of the relay.
        """

        state = self.connection.state

        if state == ConnectionState.CONNECTED:
            status = 'healthy'
        else:
            status = 'degraded'

        report = dict()
        report['status'] = status
        report['state'] = state.value
        report['topic'] = self.topic
        report['records'] = len(self.log)
        report['received'] = self.sink.received
        report['dropped'] = self.sink.dropped

        return report


    def banner(self):
        """ Return the operator-facing status banner as a list of lines.
        """

        settings = self.settings
        rule = '=' * 35

        lines = list()
        lines.append('Successfully connected')
        lines.append('Broker: ' + self.connection.endpoint)
        lines.append('Subscribed to topic: ' + self.topic)
        lines.append('HTTP server listening on port: %d' % (settings.http_port))
        lines.append(rule)
        lines.append('to publish a message, send a POST request to /messages')
        lines.append('the request body should be a JSON object with the following structure:')
        lines.append('{')
        lines.append('  "message": "your message"')
        lines.append('}')
        lines.append(rule)
        lines.append('to get all messages, send a GET request to /messages')
        lines.append(rule)
        lines.append('to exit the application, press CTRL+C')
        lines.append(rule)

        return lines


    def _on_connect(self):

        # The full banner only makes sense once; reconnects get a short note.

        if self._announced:
            logger.info(f"Reconnected to {self.connection.endpoint}")
            return

        self._announced = True

        for line in self.banner():
            logger.info(line)


# end of class Bridge


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
