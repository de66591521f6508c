import json
import logging

import pytest

from conftest import b64, encrypted, readers

SECRET = 'application.secrets.env'


def users(**keys):
    return json.dumps({'users': [
        {'login': login, 'gpg_keys_base64': [b64(k) for k in texts]}
        for login, texts in keys.items()]})


@pytest.fixture()
def secret(repository):
    return encrypted(repository / 'apps' / 'web' / SECRET, 'PRIMARY')


def test_rekey(invoke, secret, engine, store):
    result = invoke(['rekey'], INPUT_PRIVATE_KEY=b64('PRIMARY'), INPUT_PUBLIC_KEYS=users(alice=['ALICE']))

    assert result.exit_code == 0, result.output
    assert 'Found 1 public keys' in result.output
    assert 'Found 1 secret file(s)' in result.output
    assert 'Success: 1' in result.output
    assert 'Errors' not in result.output
    assert readers(secret) == ['PRIMARY', 'ALICE']

    engine.private = {'ALICE'}
    engine.decrypt(secret, store)


def test_rekey_with_service_key(invoke, secret):
    result = invoke(['rekey', '--private-key', b64('PRIMARY'), '--service-key', b64('FLUX')])
    assert result.exit_code == 0, result.output
    assert readers(secret) == ['PRIMARY', 'FLUX']


def test_rekey_skips_bad_public_keys(invoke, secret):
    result = invoke(['rekey'], INPUT_PRIVATE_KEY=b64('PRIMARY'), INPUT_PUBLIC_KEYS=json.dumps(
        {'users': [{'login': 'alice', 'gpg_keys_base64': ['???', b64('ALICE')]}]}))
    assert result.exit_code == 0, result.output
    assert readers(secret) == ['PRIMARY', 'ALICE']


def test_rekey_without_files(invoke):
    result = invoke(['rekey'], INPUT_PRIVATE_KEY=b64('PRIMARY'))
    assert result.exit_code == 0, result.output
    assert f'No secret files found matching pattern: **/{SECRET}' in result.output


def test_rekey_partial_failure(invoke, repository, secret):
    broken = encrypted(repository / 'apps' / 'api' / SECRET, 'SOMEONE ELSE')
    before = broken.read_bytes()

    result = invoke(['rekey'], INPUT_PRIVATE_KEY=b64('PRIMARY'))

    assert result.exit_code == 1
    assert 'Success: 1' in result.output
    assert 'Errors: 1' in result.output
    assert broken.read_bytes() == before
    assert readers(secret) == ['PRIMARY']


def test_rekey_requires_private_key(invoke, secret, engine):
    result = invoke(['rekey'])
    assert result.exit_code == 2
    assert engine.calls == []


@pytest.mark.parametrize('private_key', ['', 'not base64!'])
def test_rekey_invalid_private_key(invoke, secret, engine, private_key):
    result = invoke(['rekey', '--private-key', private_key])
    assert result.exit_code == 1
    assert 'Error:' in result.output
    assert engine.calls == []


def test_rekey_rejected_private_key(invoke, secret, engine, keyring):
    keyring.rejected.add('PRIMARY')
    result = invoke(['rekey'], INPUT_PRIVATE_KEY=b64('PRIMARY'))
    assert result.exit_code == 1
    assert 'Failed to import private key' in result.output
    assert engine.calls == []


def test_rekey_malformed_roster(invoke, secret, engine):
    result = invoke(['rekey'], INPUT_PRIVATE_KEY=b64('PRIMARY'), INPUT_PUBLIC_KEYS='{"users": 1}')
    assert result.exit_code == 1
    assert 'Failed to parse users data' in result.output
    assert engine.calls == []


def test_rekey_malformed_pattern(invoke, secret, engine):
    result = invoke(['rekey', '--pattern', ''], INPUT_PRIVATE_KEY=b64('PRIMARY'))
    assert result.exit_code == 1
    assert engine.calls == []


def test_rekey_sops_version_mismatch_is_advisory(invoke, secret, caplog):
    with caplog.at_level(logging.WARNING):
        result = invoke(['rekey', '--sops-version', '3.9.0'], INPUT_PRIVATE_KEY=b64('PRIMARY'))
    assert result.exit_code == 0, result.output
    assert 'Expected sops 3.9.0 but found 3.10.2' in caplog.text


def test_gnupghome_help_warns_about_recipients(invoke):
    result = invoke(['--help'])
    assert result.exit_code == 0, result.output
    assert 'every usable public key' in ' '.join(result.output.split())


def test_ls(invoke, secret, repository):
    (repository / 'other' / SECRET).mkdir(parents=True)
    result = invoke(['ls'])
    assert result.exit_code == 0, result.output
    assert len(result.output.splitlines()) == 1
    assert result.output.strip().endswith(f'apps/web/{SECRET}')


def test_keys(invoke):
    result = invoke(['keys'], INPUT_PUBLIC_KEYS=users(alice=['A1', 'A2']), INPUT_FLUX_KEY=b64('FLUX'))
    assert result.output.splitlines() == ['user\talice', 'user\talice', 'service\tservice']


def test_version(invoke):
    assert invoke(['version']).output.startswith('sops-rekey ')
