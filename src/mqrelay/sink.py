""" The ingestion sink is the single entry point for broker-pushed data: it
    turns each inbound payload into a :class:`mqrelay.record.Record` in the
    retained log.
"""

import threading

from .errors import DecodeError
from .logconfig import get_logger

logger = get_logger('sink')


class IngestionSink:
    """ Callable registered with :func:`mqrelay.connection.ConnectionManager.subscribe`.
        It is invoked on the transport's network thread, never on a thread
        servicing HTTP requests.

        Payloads are decoded as UTF-8 text with no further validation; an
        empty payload is a valid, empty message. A payload that cannot be
        decoded, or any other failure, is logged and the message is dropped.
        Nothing is ever reported back to the broker, and nothing is retried.
    """

    encoding = 'utf-8'

    def __init__(self, log):

        self.log = log
        self.received = 0
        self.dropped = 0
        self._counter_lock = threading.Lock()


    def __call__(self, topic, payload):

        with self._counter_lock:
            self.received += 1

        try:
            body = self.decode(payload)
            sequence = self.log.append(body, topic)
        except DecodeError as e:
            self._drop()
            logger.warning(f"Dropped message from {topic}: {e}")
            return
        except Exception:
            self._drop()
            logger.exception(f"Dropped message from {topic}")
            return

        logger.debug(f"Received message {sequence} from topic {topic}: {body[:60]!r}")


    def _drop(self):
        with self._counter_lock:
            self.dropped += 1


    def decode(self, payload):
        """ Return the text form of *payload*. Strings pass through as-is;
            anything else is treated as bytes.
        """

        if isinstance(payload, str):
            return payload

        try:
            return bytes(payload).decode(self.encoding)
        except (UnicodeDecodeError, TypeError) as e:
            raise DecodeError(f"payload is not valid {self.encoding} text", {'length': _length(payload)}) from e


# end of class IngestionSink



def _length(payload):

    try:
        return len(payload)
    except TypeError:
        return None


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
