import json

import pytest

import mqrelay
from mqrelay import config
from mqrelay.errors import ConfigurationError


def never(prompt):
    raise AssertionError('unexpected prompt: ' + prompt)


complete = dict()
complete['MQRELAY_HOST'] = 'env.example.com'
complete['MQRELAY_TOPIC'] = 'env/topic'
complete['MQRELAY_USERNAME'] = 'env-user'
complete['MQRELAY_PASSWORD'] = 'env-secret'


def test_defaults():

    settings = mqrelay.Settings()

    assert settings.port == 8883
    assert settings.qos == 1
    assert settings.transport == 'mqtt'
    assert settings.tls is True
    assert settings.grace_period == 0.25
    assert settings.reconnect_attempts == 0
    assert settings.http_port == 8080
    assert settings.missing() == ['host', 'topic', 'username', 'password']


def test_conversion():

    settings = mqrelay.Settings(port='1883', qos='0', tls='false', grace_period='1.5')

    assert settings.port == 1883
    assert settings.qos == 0
    assert settings.tls is False
    assert settings.grace_period == 1.5

    settings.tls = 'yes'
    assert settings.tls is True

    with pytest.raises(ConfigurationError):
        mqrelay.Settings(port='eighty')

    with pytest.raises(ConfigurationError):
        mqrelay.Settings(tls='maybe')

    with pytest.raises(ConfigurationError):
        mqrelay.Settings(colour='blue')


def test_validate():

    settings = mqrelay.Settings(host='h', topic='t', username='u', password='p')
    settings.validate()

    for bad in (dict(qos=2), dict(transport='carrier-pigeon'), dict(port=70000),
                dict(grace_period=-1), dict(reconnect_attempts=-1), dict(topic=' '),
                dict(ca_certs='/nonexistent/ca.pem'),
                dict(transport='amqp', topic='sensors.v1/temp')):
        settings = mqrelay.Settings(host='h', topic='t', username='u', password='p')
        settings.update(bad)
        with pytest.raises(ConfigurationError):
            settings.validate()

    with pytest.raises(ConfigurationError):
        mqrelay.Settings(host='h').validate()


def test_repr_hides_password():

    settings = mqrelay.Settings(password='hunter2')

    assert 'hunter2' not in repr(settings)


def test_directory():

    assert config.directory({'MQRELAY_HOME': '/opt/relay'}) == '/opt/relay'
    assert config.directory({'HOME': '/home/someone'}) == '/home/someone/.mqrelay'

    with pytest.raises(ConfigurationError):
        config.directory({})


def test_environment(tmp_path):

    environ = dict(complete)
    environ['HOME'] = str(tmp_path)
    environ['MQRELAY_PORT'] = '1883'
    environ['MQRELAY_TLS'] = 'false'

    settings = config.load(environ=environ, input=never, getpass=never)

    assert settings.host == 'env.example.com'
    assert settings.topic == 'env/topic'
    assert settings.port == 1883
    assert settings.tls is False


def test_precedence(tmp_path):
    """ Defaults, then the file, then the environment, then overrides.
    """

    home = tmp_path / 'home'
    home.mkdir()

    contents = dict(host='file.example.com', port=1884, topic='file/topic', qos=0)
    (home / 'relay.json').write_text(json.dumps(contents))

    environ = dict(complete)
    environ['MQRELAY_HOME'] = str(home)
    del environ['MQRELAY_HOST']
    environ['MQRELAY_TOPIC'] = 'env/topic'

    overrides = dict(port=1999, client_id=None)

    settings = config.load(overrides=overrides, environ=environ, input=never, getpass=never)

    assert settings.host == 'file.example.com'
    assert settings.topic == 'env/topic'
    assert settings.port == 1999
    assert settings.qos == 0
    assert settings.client_id is None


def test_explicit_file(tmp_path):

    path = tmp_path / 'custom.json'
    path.write_text(json.dumps(dict(host='custom', topic='t', username='u', password='p')))

    settings = config.load(str(path), environ={'HOME': str(tmp_path)}, prompt=False)
    assert settings.host == 'custom'

    with pytest.raises(ConfigurationError):
        config.load(str(tmp_path / 'absent.json'), environ={'HOME': str(tmp_path)}, prompt=False)


def test_bad_file(tmp_path):

    path = tmp_path / 'broken.json'

    path.write_text('{"host": ')
    with pytest.raises(ConfigurationError):
        config.load(str(path), environ={'HOME': str(tmp_path)}, prompt=False)

    path.write_text('["not", "an", "object"]')
    with pytest.raises(ConfigurationError):
        config.load(str(path), environ={'HOME': str(tmp_path)}, prompt=False)


def test_prompts(tmp_path):
    """ Only missing values are prompted for; the password goes through
        getpass, never through the echoing prompt.
    """

    asked = list()
    hidden = list()

    def fake_input(prompt):
        asked.append(prompt)
        return '  prompted.example.com  '

    def fake_getpass(prompt):
        hidden.append(prompt)
        return 'typed-secret'

    environ = dict(complete)
    environ['HOME'] = str(tmp_path)
    del environ['MQRELAY_HOST']
    del environ['MQRELAY_PASSWORD']

    settings = config.load(environ=environ, input=fake_input, getpass=fake_getpass)

    assert settings.host == 'prompted.example.com'
    assert settings.password == 'typed-secret'
    assert len(asked) == 1
    assert 'hostname' in asked[0]
    assert len(hidden) == 1
    assert 'password' in hidden[0]


def test_no_prompt(tmp_path):

    environ = dict(complete)
    environ['HOME'] = str(tmp_path)
    del environ['MQRELAY_TOPIC']

    with pytest.raises(ConfigurationError) as caught:
        config.load(environ=environ, prompt=False)

    assert 'topic' in str(caught.value)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
