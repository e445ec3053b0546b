""" The :class:`ConnectionManager` owns the broker session: connecting,
    disconnecting, the lifecycle callbacks, and dispatching inbound messages
    to registered handlers. It is the only component allowed to change the
    :class:`mqrelay.transport.ConnectionState`.
"""

import threading

from . import transport as transport_module
from .errors import ConnectError, PublishError
from .logconfig import get_logger
from .transport import ConnectionState

logger = get_logger('connection')


class ConnectionManager:
    """ Mediate between a :class:`mqrelay.transport.Transport` and the rest
        of the relay. Inbound messages arrive on the transport's network
        thread and are handed to every handler registered via
        :func:`subscribe` whose topic filter matches; handlers should be
        lightweight, as there is a single thread delivering all messages.

        Loss of an established session is logged and reported to listeners.
        By default nothing further happens: no reconnect, no resubscribe. If
        the *reconnect_attempts* setting is greater than zero a background
        thread retries the connection with exponential backoff and, once it
        succeeds, re-issues every subscription.
    """

    def __init__(self, settings, transport=None):

        if transport is None:
            transport = transport_module.create(settings)

        self.settings = settings
        self.transport = transport
        self.qos = settings.qos

        self._state = ConnectionState.DISCONNECTED
        self._state_lock = threading.Lock()

        self._subscriptions = list()
        self._subscriptions_lock = threading.Lock()

        self._listeners = list()
        self._reconnecting = None
        self._shutdown = threading.Event()

        transport.on_connect = self._on_connect
        transport.on_connection_lost = self._on_connection_lost
        transport.on_message = self._on_message


    def __repr__(self):
        return 'connection.ConnectionManager: %s %s' % (self.endpoint, self.state.value)


    @property
    def endpoint(self):
        return self.transport.endpoint


    @property
    def state(self):
        with self._state_lock:
            return self._state


    def _transition(self, new_state):

        with self._state_lock:
            old_state = self._state
            self._state = new_state

        if old_state != new_state:
            logger.debug(f"{old_state.value} -> {new_state.value}")

        return old_state


    def add_listener(self, on_connect=None, on_connection_lost=None):
        """ Register callables to be invoked on lifecycle events. The
            *on_connect* callable takes no arguments; *on_connection_lost*
            receives the :class:`mqrelay.errors.ConnectionLostError`. Both
            are invoked on the transport's network thread.
        """

        self._listeners.append((on_connect, on_connection_lost))


    def connect(self):
        """ Establish the broker session, blocking until the handshake is
            complete. There is no retry: a failure raises
            :class:`mqrelay.errors.ConnectError` and leaves the manager
            disconnected. Returns this instance, so that the caller can
            treat the return value as a handle.
        """

        if self.state == ConnectionState.CONNECTED:
            return self

        self._shutdown.clear()
        self._transition(ConnectionState.CONNECTING)

        logger.info(f"Connecting to {self.transport.name} broker at {self.endpoint}")

        try:
            self.transport.connect(self.settings.connect_timeout)
        except ConnectError:
            self._transition(ConnectionState.DISCONNECTED)
            raise
        except Exception as e:
            self._transition(ConnectionState.DISCONNECTED)
            raise ConnectError(f"cannot connect to {self.endpoint}: {e!r}") from e

        return self


    def disconnect(self, grace_period=None):
        """ Tear down the session, waiting up to *grace_period* seconds for
            in-flight acknowledgments first. Any pending reconnection is
            cancelled. Calling this method more than once is harmless.
        """

        if grace_period is None:
            grace_period = self.settings.grace_period

        self._shutdown.set()

        reconnecting = self._reconnecting
        if reconnecting is not None and reconnecting is not threading.current_thread():
            reconnecting.join(self.settings.connect_timeout + grace_period)

        old_state = self._transition(ConnectionState.DISCONNECTED)
        self.transport.disconnect(grace_period)

        if old_state != ConnectionState.DISCONNECTED:
            logger.info(f"Disconnected from {self.endpoint}")


    def publish(self, topic, payload):
        """ Publish *payload* (bytes) to *topic*, blocking until the broker
            acknowledges receipt or the publish timeout expires. Any failure
            is raised as :class:`mqrelay.errors.PublishError`.
        """

        if self.state != ConnectionState.CONNECTED:
            raise PublishError(f"cannot publish to {topic}: not connected to {self.endpoint}")

        try:
            self.transport.publish(topic, payload, self.qos, self.settings.publish_timeout)
        except PublishError:
            raise
        except Exception as e:
            raise PublishError(f"publish to {topic} failed: {e!r}") from e

        logger.debug(f"Published {len(payload)} bytes to {topic}")


    def subscribe(self, topic, handler):
        """ Invoke *handler* as ``handler(topic, payload)`` for every message
            arriving on *topic*. The subscription is issued to the broker at
            the configured quality-of-service level, the same level used for
            :func:`publish`.
        """

        if not callable(handler):
            raise TypeError('handler must be callable')

        with self._subscriptions_lock:
            known = set(existing for existing, _handler in self._subscriptions)
            self._subscriptions.append((topic, handler))

        if topic in known:
            return

        try:
            self.transport.subscribe(topic, self.qos)
        except Exception:
            with self._subscriptions_lock:
                self._subscriptions.remove((topic, handler))
            raise

        logger.info(f"Subscribed to topic {topic} at QoS {self.qos}")


    def topics(self):
        """ Return the distinct topic filters currently registered.
        """

        with self._subscriptions_lock:
            topics = list()
            for topic, _handler in self._subscriptions:
                if topic not in topics:
                    topics.append(topic)

        return topics


    def _on_connect(self):

        self._transition(ConnectionState.CONNECTED)
        logger.info(f"Connected to {self.endpoint}")

        for on_connect, _on_lost in self._listeners:
            if on_connect is None:
                continue
            try:
                on_connect()
            except Exception:
                logger.exception('on-connect listener failed')


    def _on_connection_lost(self, error):

        self._transition(ConnectionState.DISCONNECTED)
        logger.error(f"Connection lost: {error}")

        for _on_connect, on_lost in self._listeners:
            if on_lost is None:
                continue
            try:
                on_lost(error)
            except Exception:
                logger.exception('on-connection-lost listener failed')

        if self.settings.reconnect_attempts <= 0 or self._shutdown.is_set():
            return

        # One reconnecting thread at a time; a loss during resubscription is
        # picked up by the thread already running.

        reconnecting = self._reconnecting
        if reconnecting is not None and reconnecting.is_alive():
            logger.debug('Reconnect already in progress')
            return

        self._reconnecting = threading.Thread(
            target=self._reconnect, name='mqrelay-reconnect', daemon=True)
        self._reconnecting.start()


    def _on_message(self, topic, payload):

        with self._subscriptions_lock:
            handlers = list()
            for subscription, handler in self._subscriptions:
                if self.transport.matches(subscription, topic):
                    handlers.append(handler)

        for handler in handlers:
            try:
                handler(topic, payload)
            except Exception:
                logger.exception(f"handler for {topic} failed")
                continue


    def _reconnect(self):
        """ Bounded reconnection with exponential backoff. Runs on its own
            thread, started when an established session is lost.
        """

        attempts = self.settings.reconnect_attempts
        delay = self.settings.reconnect_delay

        for attempt in range(1, attempts + 1):
            if self._shutdown.wait(delay):
                return

            self._transition(ConnectionState.CONNECTING)
            logger.info(f"Reconnect attempt {attempt}/{attempts} to {self.endpoint}")

            try:
                self.transport.connect(self.settings.connect_timeout)
            except Exception as e:
                self._transition(ConnectionState.DISCONNECTED)
                logger.warning(f"Reconnect attempt {attempt} failed: {e}")
                delay = min(delay * 2, self.settings.reconnect_max_delay)
                continue

            if self._shutdown.is_set():
                return

            for topic in self.topics():
                try:
                    self.transport.subscribe(topic, self.qos)
                except Exception as e:
                    logger.error(f"Resubscribe to {topic} failed: {e}")
                else:
                    logger.info(f"Resubscribed to topic {topic}")

            if self.state == ConnectionState.CONNECTED:
                return

            logger.warning(f"Connection to {self.endpoint} lost again after attempt {attempt}")
            delay = min(delay * 2, self.settings.reconnect_max_delay)

        logger.error(f"Giving up on {self.endpoint} after {attempts} reconnect attempts")


# end of class ConnectionManager


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
