""" The :class:`Record` is the unit stored in the retained log and returned
    to HTTP callers: one broker message, with the sequence number and arrival
    time assigned when it entered the log.
"""


class Record:
    """ An immutable representation of one retained message. The *sequence*
        and *received_at* fields are assigned by :class:`mqrelay.log.RetainedLog`
        at append time; callers never choose them.

        :ivar sequence: Position in the log, starting with 1, gap-free.
        :ivar body: The message text.
        :ivar received_at: A UNIX epoch timestamp for when the record entered
                           the log.
        :ivar topic: The broker topic the message arrived on, if known.
    """

    __slots__ = ('sequence', 'body', 'received_at', 'topic')

    def __init__(self, sequence, body, received_at, topic=None):

        object.__setattr__(self, 'sequence', int(sequence))
        object.__setattr__(self, 'body', body)
        object.__setattr__(self, 'received_at', float(received_at))
        object.__setattr__(self, 'topic', topic)


    def __setattr__(self, name, value):
        raise AttributeError('Record instances are immutable')


    def __delattr__(self, name):
        raise AttributeError('Record instances are immutable')


    def __eq__(self, other):

        if isinstance(other, Record):
            pass
        else:
            return NotImplemented

        return self.to_tuple() == other.to_tuple()


    def __hash__(self):
        return hash(self.to_tuple())


    def __repr__(self):
        return 'Record(%d, %r, %f)' % (self.sequence, self.body, self.received_at)


    def to_dict(self):
        """ Return a dictionary suitable for JSON serialization.
        """

        record = dict()
        record['sequence'] = self.sequence
        record['body'] = self.body
        record['received_at'] = self.received_at
        record['topic'] = self.topic

        return record


    def to_tuple(self):
        return (self.sequence, self.body, self.received_at, self.topic)


# end of class Record


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
