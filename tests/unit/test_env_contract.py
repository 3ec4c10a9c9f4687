import os
import pytest
from larastack.PARSERS.compose_parser import ComposeParser
from larastack.PARSERS.env_parser import EnvParser
from larastack.VALIDATORS.config_validator import Severity
from larastack.VALIDATORS.env_contract import EnvContract, is_loopback
from larastack.DIAGNOSTICS.connection_errors import fix_env_text

DEPLOY_DIR = os.path.join(os.path.dirname(__file__), '..', '..', 'deploy')

GOOD_ENV = {
    'DB_CONNECTION': 'pgsql',
    'DB_HOST': 'postgres',
    'DB_PORT': '5432',
    'DB_DATABASE': 'my_laravel_db',
    'DB_USERNAME': 'myuser',
    'DB_PASSWORD': 'mypassword',
}

@pytest.fixture
def contract():
    config = ComposeParser(context={}).parse(os.path.join(DEPLOY_DIR, 'docker-compose.yml'))
    return EnvContract(config)

def codes(issues):
    return [i.code for i in issues]

def test_shipped_env_example_passes(contract):
    env = EnvParser.parse(os.path.join(DEPLOY_DIR, '.env.example'))
    assert contract.check(env) == []

def test_expected_environment(contract):
    assert contract.db.name == 'postgres'
    assert contract.expected_environment() == {
        'DB_HOST': 'postgres',
        'DB_CONNECTION': 'pgsql',
        'DB_PORT': '5432',
        'DB_DATABASE': 'my_laravel_db',
        'DB_USERNAME': 'myuser',
        'DB_PASSWORD': 'mypassword',
    }

@pytest.mark.parametrize('host', ['127.0.0.1', 'localhost', '::1', '[::1]', '0.0.0.0', '127.0.1.1'])
def test_loopback_host_is_rejected(contract, host):
    issues = contract.check(dict(GOOD_ENV, DB_HOST=host))
    assert codes(issues) == ['loopback-db-host']
    assert issues[0].remediation == 'set DB_HOST=postgres'

def test_is_loopback():
    assert is_loopback('127.0.0.1')
    assert is_loopback('LOCALHOST')
    assert not is_loopback('postgres')
    assert not is_loopback('10.0.0.5')

def test_missing_keys(contract):
    env = dict(GOOD_ENV)
    del env['DB_PASSWORD']
    env['DB_PORT'] = ''
    assert sorted(codes(contract.check(env))) == ['missing-env', 'missing-env']

def test_mismatched_credentials(contract):
    issues = contract.check(dict(GOOD_ENV, DB_PASSWORD='secret', DB_CONNECTION='mysql'))
    assert codes(issues) == ['env-mismatch', 'env-mismatch']
    assert 'DB_CONNECTION=mysql' in issues[0].message
    assert issues[1].remediation == 'set DB_PASSWORD=mypassword'

def test_unknown_host_is_a_warning(contract):
    issues = contract.check(dict(GOOD_ENV, DB_HOST='db.example.com'))
    assert codes(issues) == ['unknown-db-host']
    assert issues[0].severity == Severity.WARNING

def test_no_database_service():
    config = ComposeParser(context={}).parse_from_string("services:\n  web:\n    image: nginx\n")
    assert 'no-database-service' in codes(EnvContract(config).check(GOOD_ENV))

def test_documented_fix_resolves_loopback(contract):
    broken = "APP_NAME=Laravel\nDB_CONNECTION=pgsql\nDB_HOST=127.0.0.1\nDB_PORT=5432\n" \
             "DB_DATABASE=my_laravel_db\nDB_USERNAME=myuser\nDB_PASSWORD=mypassword\n"
    assert codes(contract.check(EnvParser.parse_from_string(broken))) == ['loopback-db-host']

    fixed = fix_env_text(broken, 'postgres')
    assert contract.check(EnvParser.parse_from_string(fixed)) == []
