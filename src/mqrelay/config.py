""" Configuration handling for the relay. Settings are layered: built-in
    defaults, then a JSON configuration file, then ``MQRELAY_*`` environment
    variables, then explicit overrides (typically command-line arguments),
    and finally interactive prompts for any required value still missing.
"""

import getpass
import json
import os

from .errors import ConfigurationError


defaults = dict()
defaults['host'] = None
defaults['port'] = 8883
defaults['topic'] = None
defaults['username'] = None
defaults['password'] = None
defaults['client_id'] = None
defaults['transport'] = 'mqtt'
defaults['qos'] = 1
defaults['tls'] = True
defaults['ca_certs'] = None
defaults['tls_insecure'] = False
defaults['keepalive'] = 60
defaults['vhost'] = '/'
defaults['exchange'] = 'mqrelay'
defaults['connect_timeout'] = 10.0
defaults['publish_timeout'] = 10.0
defaults['grace_period'] = 0.25
defaults['reconnect_attempts'] = 0
defaults['reconnect_delay'] = 1.0
defaults['reconnect_max_delay'] = 30.0
defaults['http_host'] = '0.0.0.0'
defaults['http_port'] = 8080
defaults['debug'] = False
defaults['log_file'] = None

required = ('host', 'topic', 'username', 'password')

prompts = dict()
prompts['host'] = 'Enter the hostname of your broker (e.g. broker.hivemq.com): '
prompts['topic'] = 'Enter the topic you want to subscribe to (e.g. topic/test): '
prompts['username'] = 'Enter the username for your broker: '
prompts['password'] = 'Enter the password for your broker: '

secret = set(('password',))

filename = 'relay.json'


def _to_bool(value):

    if isinstance(value, bool):
        return value

    value = str(value).strip().lower()

    if value in ('true', '1', 'yes', 'on'):
        return True
    if value in ('false', '0', 'no', 'off', ''):
        return False

    raise ValueError('not a boolean: ' + repr(value))


def _to_optional_str(value):

    if value is None:
        return None
    return str(value)


converters = dict()
converters['port'] = int
converters['qos'] = int
converters['keepalive'] = int
converters['reconnect_attempts'] = int
converters['http_port'] = int
converters['connect_timeout'] = float
converters['publish_timeout'] = float
converters['grace_period'] = float
converters['reconnect_delay'] = float
converters['reconnect_max_delay'] = float
converters['tls'] = _to_bool
converters['tls_insecure'] = _to_bool
converters['debug'] = _to_bool



class Settings:
    """ The :class:`Settings` instance carries every value the relay needs
        at startup: the broker endpoint and credentials, the topic, the
        transport options, and the HTTP listener address. Attribute names
        match the keys in :data:`defaults`; values are converted to their
        proper types on assignment through :func:`update`.
    """

    def __init__(self, **values):

        for key, value in defaults.items():
            object.__setattr__(self, key, value)

        self.update(values)


    def __repr__(self):

        shown = list()
        for key in defaults.keys():
            value = getattr(self, key)
            if key in secret and value is not None:
                value = '***'
            shown.append('%s=%r' % (key, value))

        return 'Settings(' + ', '.join(shown) + ')'


    def __setattr__(self, name, value):
        self.update({name: value})


    @property
    def endpoint(self):
        return '%s:%d' % (self.host, self.port)


    def missing(self):
        """ Return a list of required settings that do not yet have a value.
        """

        absent = list()

        for key in required:
            if getattr(self, key) is None:
                absent.append(key)

        return absent


    def to_dict(self):
        return dict((key, getattr(self, key)) for key in defaults.keys())


    def update(self, values):
        """ Apply the supplied dictionary of *values*, converting each one to
            the type appropriate for its key. A None value leaves the current
            setting untouched. Unknown keys and unconvertible values raise
            :class:`mqrelay.errors.ConfigurationError`.
        """

        for key, value in values.items():
            if key not in defaults:
                raise ConfigurationError('unknown setting: ' + repr(key))

            if value is None:
                continue

            converter = converters.get(key, _to_optional_str)

            try:
                value = converter(value)
            except (TypeError, ValueError) as e:
                raise ConfigurationError('invalid value for %s: %r' % (key, value)) from e

            object.__setattr__(self, key, value)


    def validate(self):
        """ Raise :class:`mqrelay.errors.ConfigurationError` if any required
            setting is missing or any value is out of range.
        """

        absent = self.missing()
        if absent:
            raise ConfigurationError('missing required settings: ' + ', '.join(absent))

        for key in ('host', 'topic'):
            if getattr(self, key).strip() == '':
                raise ConfigurationError('the %s must not be empty' % (key))

        if self.qos not in (0, 1):
            raise ConfigurationError('qos must be 0 or 1, not %d' % (self.qos))

        if self.transport not in ('mqtt', 'amqp'):
            raise ConfigurationError('unknown transport backend: ' + repr(self.transport))

        for key in ('port', 'http_port'):
            port = getattr(self, key)
            if port < 0 or port > 65535:
                raise ConfigurationError('%s out of range: %d' % (key, port))

        for key in ('connect_timeout', 'publish_timeout', 'grace_period',
                    'reconnect_delay', 'reconnect_max_delay'):
            if getattr(self, key) < 0:
                raise ConfigurationError(key + ' must not be negative')

        if self.reconnect_attempts < 0:
            raise ConfigurationError('reconnect_attempts must not be negative')

        if self.tls and self.ca_certs and not os.path.isfile(self.ca_certs):
            raise ConfigurationError('CA bundle not found: ' + self.ca_certs)

        # AMQP routing keys use '.' as the level separator.

        if self.transport == 'amqp' and '.' in self.topic:
            raise ConfigurationError("the amqp transport cannot carry topics containing '.': " + self.topic)


# end of class Settings



def directory(environ=None):
    """ Return the directory where the default configuration file lives.
        This defaults to ``$HOME/.mqrelay``, but can be overridden by setting
        the ``MQRELAY_HOME`` environment variable.
    """

    if environ is None:
        environ = os.environ

    try:
        found = environ['MQRELAY_HOME']
    except KeyError:
        pass
    else:
        return os.path.expanduser(found)

    try:
        home = environ['HOME']
    except KeyError:
        raise ConfigurationError('MQRELAY_HOME and HOME environment variables not set, cannot determine configuration directory')

    return os.path.join(home, '.mqrelay')



def from_environment(environ=None):
    """ Return a dictionary of settings found in ``MQRELAY_<KEY>`` environment
        variables, for example ``MQRELAY_HOST`` or ``MQRELAY_PASSWORD``.
    """

    if environ is None:
        environ = os.environ

    found = dict()

    for key in defaults.keys():
        name = 'MQRELAY_' + key.upper()
        try:
            found[key] = environ[name]
        except KeyError:
            continue

    return found



def from_file(path):
    """ Load a JSON configuration file. The file must contain a single object
        whose keys are setting names.
    """

    try:
        with open(path, 'r') as contents:
            loaded = json.load(contents)
    except OSError as e:
        raise ConfigurationError('cannot read configuration file %s: %s' % (path, e)) from e
    except ValueError as e:
        raise ConfigurationError('invalid JSON in %s: %s' % (path, e)) from e

    if isinstance(loaded, dict):
        pass
    else:
        raise ConfigurationError('configuration file %s must contain a JSON object' % (path))

    return loaded



def load(path=None, overrides=None, environ=None, prompt=True,
         input=input, getpass=getpass.getpass):
    """ Assemble a validated :class:`Settings` instance. If *path* is None
        the default file in :func:`directory` is used if it exists; an
        explicit *path* must exist. *overrides* is a dictionary, typically
        built from command-line arguments, where None values are ignored.

        If *prompt* is True any required value still missing is requested
        interactively via *input*, or *getpass* for the password. The
        *input* and *getpass* arguments exist so that callers can supply
        their own prompting functions.
    """

    if environ is None:
        environ = os.environ

    settings = Settings()

    if path is None:
        default_path = os.path.join(directory(environ), filename)
        if os.path.exists(default_path):
            settings.update(from_file(default_path))
    else:
        settings.update(from_file(path))

    settings.update(from_environment(environ))

    if overrides:
        settings.update(overrides)

    if prompt:
        ask(settings, input, getpass)

    settings.validate()
    return settings



def ask(settings, input=input, getpass=getpass.getpass):
    """ Prompt for every required setting that is still missing. Secrets are
        read without echo.
    """

    for key in settings.missing():
        if key in secret:
            value = getpass(prompts[key])
        else:
            value = input(prompts[key]).strip()

        settings.update({key: value})


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
