""" The retained log is the single authoritative in-memory store for every
    message observed on the subscribed topic. It is shared between the
    broker's network thread, which appends, and the HTTP worker threads,
    which read; all access goes through one lock.
"""

import threading
import time

from .record import Record


class RetainedLog:
    """ An append-only, thread-safe ordered sequence of :class:`Record`
        instances. Records are never modified or removed once appended; there
        is no size cap, the log lives as long as the process does.

        Sequence numbers start at 1 and increase by exactly one for each
        append. Timestamps are strictly increasing in sequence order: if the
        clock has not advanced since the previous append, the new record is
        stamped one microsecond after its predecessor.
    """

    resolution = 1e-6

    def __init__(self, clock=time.time):

        self.clock = clock
        self._records = list()
        self._records_lock = threading.Lock()


    def __len__(self):
        with self._records_lock:
            return len(self._records)


    def __repr__(self):
        return 'log.RetainedLog: %d records' % (len(self))


    def append(self, body, topic=None):
        """ Append a new record containing *body* and return its sequence
            number. The sequence number and the arrival timestamp are both
            assigned while the lock is held, so no two records can observe
            the same length.
        """

        with self._records_lock:
            sequence = len(self._records) + 1
            received_at = self.clock()

            if self._records:
                previous = self._records[-1].received_at
                if received_at <= previous:
                    received_at = previous + self.resolution

            record = Record(sequence, body, received_at, topic)
            self._records.append(record)

        return sequence


    @property
    def last_sequence(self):
        """ The sequence number of the most recent record, or zero if the
            log is empty.
        """

        with self._records_lock:
            return len(self._records)


    def snapshot(self, since=0):
        """ Return a list of the retained records in insertion order. If
            *since* is specified only records with a sequence number greater
            than *since* are included. The returned list is a copy; the
            records themselves are immutable.
        """

        since = int(since)

        if since < 0:
            raise ValueError('since must be zero or a positive sequence number')

        # Sequence numbers are gap-free and start at 1, so the record with
        # sequence N is always at index N - 1.

        with self._records_lock:
            return self._records[since:]


# end of class RetainedLog


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
