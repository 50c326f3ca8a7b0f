"""Shared fixtures and an in-memory stand-in for the GitHub client"""

import base64
import threading
from collections import Counter

import pytest
from nacl.public import PrivateKey

from secrets_migrator.errors import APIError
from secrets_migrator.models import Repository, Secret


class FakeGitHubClient:
    """Records calls and serves canned data instead of talking to GitHub"""

    def __init__(self, secrets=None, selected=None, repositories=None, public_key=None):
        self.secrets = secrets or []
        self.selected = selected or {}
        self.repositories = repositories or {}
        self.public_key = public_key
        self.stored = {}
        self.calls = Counter()
        self.repository_errors = {}
        self.put_errors = {}
        self.public_key_error = None
        self._lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.calls['close'] += 1

    def _count(self, name):
        with self._lock:
            self.calls[name] += 1

    def list_org_secrets(self, org):
        self._count('list_org_secrets')
        secrets = [Secret.from_api(org, data) for data in self.secrets]
        return secrets, len(secrets)

    def list_secret_repositories(self, ref):
        self._count('list_secret_repositories')
        names = self.selected[ref.secret_name]
        if isinstance(names, Exception):
            raise names
        return [Repository(id=9000 + i, name=name, full_name=f"{ref.organization}/{name}")
                for i, name in enumerate(names)]

    def get_repository(self, owner, name):
        self._count('get_repository')
        error = self.repository_errors.get(name)
        if error is not None:
            raise error
        repo_id = self.repositories.get(name)
        if repo_id is None:
            return None
        return Repository(id=repo_id, name=name, full_name=f"{owner}/{name}")

    def get_org_public_key(self, org):
        self._count('get_org_public_key')
        if self.public_key_error is not None:
            raise self.public_key_error
        return self.public_key

    def put_org_secret(self, org, name, payload):
        self._count('put_org_secret')
        error = self.put_errors.get(name)
        if error is not None:
            raise error
        key = (org, name.upper())
        with self._lock:
            created = key not in self.stored
            self.stored[key] = payload
        return created


@pytest.fixture
def key_pair():
    """Private key held by the test and the API-shaped public key payload"""
    private_key = PrivateKey.generate()
    payload = {
        'key_id': '568250167242549743',
        'key': base64.b64encode(bytes(private_key.public_key)).decode('utf-8'),
    }
    return private_key, payload


@pytest.fixture
def fake_client(key_pair):
    return FakeGitHubClient(public_key=key_pair[1])


@pytest.fixture
def api_error():
    return APIError("403 - Forbidden", status_code=403)
