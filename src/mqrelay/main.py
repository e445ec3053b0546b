""" Command-line entry point: load the settings, connect the bridge, and
    serve the HTTP interface until the process is asked to stop.
"""

import argparse
import signal
import sys

from . import config
from .bridge import Bridge
from .errors import ConfigurationError, ConnectError
from .http import create_app, run_server
from .logconfig import get_logger, setup_logging
from .version import __version__

logger = get_logger('main')


def parse_arguments(argv=None):

    parser = argparse.ArgumentParser(
        prog='mqrelay',
        description='Relay messages between a broker topic and HTTP clients.')

    parser.add_argument('--version', action='version', version='%(prog)s ' + __version__)
    parser.add_argument('--config', metavar='PATH',
        help='JSON configuration file (default: $MQRELAY_HOME/relay.json)')

    broker = parser.add_argument_group('broker')
    broker.add_argument('--host', help='broker hostname')
    broker.add_argument('--port', type=int, help='broker port (default: 8883)')
    broker.add_argument('--topic', help='topic to subscribe and publish to')
    broker.add_argument('--username', help='broker username')
    broker.add_argument('--client-id', dest='client_id', help='client identifier')
    broker.add_argument('--transport', choices=('mqtt', 'amqp'),
        help='broker protocol (default: mqtt)')
    broker.add_argument('--qos', type=int, choices=(0, 1),
        help='quality-of-service level for publish and subscribe (default: 1)')
    broker.add_argument('--no-tls', dest='tls', action='store_const', const=False,
        help='connect without TLS')
    broker.add_argument('--ca-certs', dest='ca_certs', metavar='PATH',
        help='CA bundle for verifying the broker certificate')
    broker.add_argument('--tls-insecure', dest='tls_insecure', action='store_const', const=True,
        help='do not verify the broker hostname')
    broker.add_argument('--grace-period', dest='grace_period', type=float,
        help='seconds to wait for in-flight acknowledgments on shutdown')
    broker.add_argument('--reconnect-attempts', dest='reconnect_attempts', type=int,
        help='reconnect attempts after a lost connection (default: 0)')

    http = parser.add_argument_group('http')
    http.add_argument('--http-host', dest='http_host', help='listen address (default: 0.0.0.0)')
    http.add_argument('--http-port', dest='http_port', type=int, help='listen port (default: 8080)')

    parser.add_argument('--debug', action='store_const', const=True, help='enable debug logging')
    parser.add_argument('--log-file', dest='log_file', metavar='PATH', help='also log to this file')
    parser.add_argument('--no-prompt', dest='prompt', action='store_false',
        help='fail instead of prompting for missing settings')

    return parser.parse_args(argv)



def overrides(arguments):
    """ Translate the parsed *arguments* into a dictionary of settings,
        omitting anything that was not specified on the command line.
    """

    found = dict()

    for key in config.defaults.keys():
        value = getattr(arguments, key, None)
        if value is not None:
            found[key] = value

    return found



def _terminate(signum, frame):
    raise SystemExit(128 + signum)



def main(argv=None):

    arguments = parse_arguments(argv)
    setup_logging(arguments.debug, arguments.log_file)

    try:
        settings = config.load(arguments.config, overrides(arguments), prompt=arguments.prompt)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except (EOFError, KeyboardInterrupt):
        logger.error('Configuration prompt aborted')
        return 2

    setup_logging(settings.debug, settings.log_file)

    # uvicorn installs its own handlers while serving; this one covers the
    # window before and after, so that SIGTERM still unwinds through the
    # finally clause below.

    signal.signal(signal.SIGTERM, _terminate)

    try:
        bridge = Bridge(settings)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    try:
        try:
            bridge.start()
        except ConnectError as e:
            logger.error(f"Cannot connect to broker: {e}")
            return 1

        app = create_app(bridge)
        run_server(app, settings.http_host, settings.http_port, settings.debug)
    finally:
        bridge.stop(settings.grace_period)

    return 0


if __name__ == '__main__':
    sys.exit(main())


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
