#!/usr/bin/env python3
"""
Tests for credential lookup conventions.
"""

import pytest

from mlops_pipeline.execution.credentials import (
    EnvironmentCredentialStore,
    StaticCredentialStore,
    UsernamePassword,
    credential_env_key,
)
from mlops_pipeline.shared.exceptions import CredentialNotFoundError


class TestEnvironmentCredentialStore:
    """Test the CI environment variable conventions."""

    def test_env_key(self):
        assert credential_env_key('docker-registry') == 'DOCKER_REGISTRY'
        assert credential_env_key('github.token') == 'GITHUB_TOKEN'

    def test_username_password(self):
        store = EnvironmentCredentialStore({'DOCKER_REGISTRY_USR': 'bot', 'DOCKER_REGISTRY_PSW': 'pw'})

        creds = store.username_password('docker-registry')

        assert creds == UsernamePassword('bot', 'pw')
        assert 'pw' not in repr(creds)

    def test_missing_password(self):
        store = EnvironmentCredentialStore({'DOCKER_REGISTRY_USR': 'bot'})

        with pytest.raises(CredentialNotFoundError, match='DOCKER_REGISTRY_PSW'):
            store.username_password('docker-registry')

    def test_secret_text(self):
        store = EnvironmentCredentialStore({'GITHUB_TOKEN': 'ghp_x'})
        assert store.secret_text('github-token') == 'ghp_x'

    def test_secret_file_must_exist(self, tmp_path):
        kubeconfig = tmp_path / 'kubeconfig'
        kubeconfig.write_text('apiVersion: v1\n')

        store = EnvironmentCredentialStore({'KUBECONFIG': str(kubeconfig)})
        assert store.secret_file('kubeconfig') == str(kubeconfig)

        missing = EnvironmentCredentialStore({'KUBECONFIG': str(tmp_path / 'nope')})
        with pytest.raises(CredentialNotFoundError, match='does not exist'):
            missing.secret_file('kubeconfig')


class TestStaticCredentialStore:

    def test_pairs_and_text(self):
        store = StaticCredentialStore({'registry': ('u', 'p'), 'token': 't'})

        assert store.username_password('registry').password == 'p'
        assert store.secret_text('token') == 't'

    def test_unknown_id(self):
        with pytest.raises(CredentialNotFoundError):
            StaticCredentialStore().secret_text('missing')

    def test_wrong_kind(self):
        store = StaticCredentialStore({'token': 't', 'registry': ('u', 'p')})

        with pytest.raises(CredentialNotFoundError):
            store.username_password('token')
        with pytest.raises(CredentialNotFoundError):
            store.secret_text('registry')
