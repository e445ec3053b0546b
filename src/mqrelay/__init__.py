""" Python implementation of mqrelay: a relay that subscribes to one broker
    topic, retains every message it receives, serves that log over HTTP,
    and republishes messages submitted over HTTP onto the same topic.
"""

from .version import __version__

# Utility components.

from . import errors
from . import logconfig
from . import config

# Broker plumbing.

from . import transport
from .connection import ConnectionManager

# Primary public-facing interfaces.

from .record import Record
from .log import RetainedLog
from .sink import IngestionSink
from .gateway import PublishGateway
from .bridge import Bridge
from .config import Settings

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
