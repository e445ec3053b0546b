""" The publish gateway carries a caller-submitted message to the broker.
"""

from .errors import ValidationError
from .logconfig import get_logger

logger = get_logger('gateway')


class PublishGateway:
    """ Validate a message body from a synchronous caller and publish it to
        *topic* via the :class:`mqrelay.connection.ConnectionManager`.

        The gateway does not append anything to the retained log. A submitted
        message shows up there only once the broker delivers it back through
        the subscription, like any other message on the topic.
    """

    encoding = 'utf-8'

    def __init__(self, connection, topic):

        self.connection = connection
        self.topic = topic


    def submit(self, body):
        """ Publish *body*, blocking until the broker acknowledges it. An
            empty or non-string *body* raises
            :class:`mqrelay.errors.ValidationError` without touching the
            broker; a broker-side failure raises
            :class:`mqrelay.errors.PublishError`.
        """

        if isinstance(body, str):
            pass
        else:
            raise ValidationError('message must be a string, not ' + type(body).__name__)

        if body == '':
            raise ValidationError('message must not be empty')

        try:
            payload = body.encode(self.encoding)
        except UnicodeEncodeError as e:
            raise ValidationError('message is not valid utf-8 text') from e

        self.connection.publish(self.topic, payload)

        logger.info(f"Published message to {self.topic}")


# end of class PublishGateway


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
