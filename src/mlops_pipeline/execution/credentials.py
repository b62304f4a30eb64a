#!/usr/bin/env python3
"""
Credential lookup by id.
EnvironmentCredentialStore follows the CI convention for bound credentials:
secret text and secret files under ``<ID>``, username/password pairs under
``<ID>_USR`` and ``<ID>_PSW``, where ``<ID>`` is the credentials id
upper-cased with non-alphanumerics replaced by underscores.
"""

import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from mlops_pipeline.shared.exceptions import CredentialNotFoundError


@dataclass(frozen=True)
class UsernamePassword:
    username: str
    password: str

    def __repr__(self) -> str:
        return f"UsernamePassword(username={self.username!r}, password='****')"


class CredentialStore(ABC):
    """Resolves named secrets into process-local material."""

    @abstractmethod
    def username_password(self, credentials_id: str) -> UsernamePassword:
        ...

    @abstractmethod
    def secret_text(self, credentials_id: str) -> str:
        ...

    @abstractmethod
    def secret_file(self, credentials_id: str) -> str:
        """Return a filesystem path holding the secret (e.g. a kubeconfig)."""


def credential_env_key(credentials_id: str) -> str:
    return re.sub(r'[^A-Za-z0-9]', '_', credentials_id).upper()


class EnvironmentCredentialStore(CredentialStore):

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ

    def _lookup(self, credentials_id: str, suffix: str = '') -> str:
        key = credential_env_key(credentials_id) + suffix
        value = self.environ.get(key)
        if not value:
            raise CredentialNotFoundError(credentials_id, f"environment variable {key} is not set")
        return value

    def username_password(self, credentials_id: str) -> UsernamePassword:
        return UsernamePassword(
            username=self._lookup(credentials_id, '_USR'),
            password=self._lookup(credentials_id, '_PSW'),
        )

    def secret_text(self, credentials_id: str) -> str:
        return self._lookup(credentials_id)

    def secret_file(self, credentials_id: str) -> str:
        path = self._lookup(credentials_id)
        if not Path(path).is_file():
            raise CredentialNotFoundError(credentials_id, f"file {path} does not exist")
        return path


class StaticCredentialStore(CredentialStore):
    """In-memory store, for programmatic use and tests.

    Values are strings (secret text / file path) or (username, password) pairs.
    """

    def __init__(self, secrets: Optional[Dict[str, Any]] = None):
        self.secrets = dict(secrets or {})

    def _get(self, credentials_id: str) -> Any:
        try:
            return self.secrets[credentials_id]
        except KeyError:
            raise CredentialNotFoundError(credentials_id) from None

    def username_password(self, credentials_id: str) -> UsernamePassword:
        value = self._get(credentials_id)
        if isinstance(value, UsernamePassword):
            return value
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return UsernamePassword(username=str(value[0]), password=str(value[1]))
        raise CredentialNotFoundError(credentials_id, "not a username/password credential")

    def secret_text(self, credentials_id: str) -> str:
        value = self._get(credentials_id)
        if not isinstance(value, str):
            raise CredentialNotFoundError(credentials_id, "not a secret text credential")
        return value

    def secret_file(self, credentials_id: str) -> str:
        return self.secret_text(credentials_id)
