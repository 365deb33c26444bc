"""Shared test fixtures."""

import asyncio
import os
from typing import Dict, List, Optional, Tuple
from unittest.mock import Mock

import pytest

from repo_migrate.git.operations import GitCommandError
from repo_migrate.models.repository import RemoteEndpoint, RepositoryIdentifier


class FakeGitRunner:
    """Stands in for GitRunner: records calls and fails on demand.

    ``mirror_clone`` creates the bare repository directory so that
    workspace handling can be checked on disk.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: List[Tuple[str, str]] = []
        self.rules: List[Tuple[str, str, List[Exception]]] = []
        self.active = 0
        self.max_active = 0
        self.workspaces: List[str] = []

    def fail(self, method: str, url_fragment: str, *errors: Exception) -> None:
        """Raise ``errors`` in turn from ``method`` calls whose URL contains the fragment."""
        self.rules.append((method, url_fragment, list(errors)))

    async def _call(self, method: str, url: str) -> None:
        self.calls.append((method, url))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            for rule_method, fragment, errors in self.rules:
                if rule_method == method and fragment in url and errors:
                    raise errors.pop(0)
        finally:
            self.active -= 1

    async def mirror_clone(self, source: RemoteEndpoint, repo_path: str) -> None:
        self.workspaces.append(os.path.dirname(repo_path))
        await self._call('mirror_clone', source.url)
        os.makedirs(repo_path)
        with open(os.path.join(repo_path, 'HEAD'), 'w') as f:
            f.write('ref: refs/heads/main\n')

    async def add_remote(self, repo_path: str, name: str, destination: RemoteEndpoint) -> None:
        await self._call('add_remote', destination.url)

    async def push_all(self, repo_path: str, remote: str, destination: RemoteEndpoint) -> None:
        await self._call('push_all', destination.url)

    async def push_tags(self, repo_path: str, remote: str, destination: RemoteEndpoint) -> None:
        await self._call('push_tags', destination.url)

    async def version(self) -> Optional[str]:
        return 'git version 2.43.0'

    def methods(self, url_fragment: str = '') -> List[str]:
        return [method for method, url in self.calls if url_fragment in url]


class FakeSource:
    """Stands in for GitHubSource."""

    def __init__(self, identifiers: Optional[List[RepositoryIdentifier]] = None):
        self.identifiers = identifiers or []

    def list_repositories(self, policy=None) -> List[RepositoryIdentifier]:
        return list(self.identifiers)

    def clone_endpoint(self, identifier: RepositoryIdentifier) -> RemoteEndpoint:
        return RemoteEndpoint(
            url=f'https://github.com/{identifier.full_name}.git',
            auth_header='Basic c291cmNl',
        )

    def test_connection(self) -> bool:
        return True

    def close(self) -> None:
        pass


class FakeProvisioner:
    """Stands in for DestinationProvisioner with scripted failures."""

    def __init__(self):
        self.calls: List[str] = []
        self.errors: Dict[str, List[Exception]] = {}

    async def ensure(self, identifier: RepositoryIdentifier) -> RemoteEndpoint:
        self.calls.append(identifier.full_name)
        errors = self.errors.get(identifier.full_name)
        if errors:
            raise errors.pop(0)
        return RemoteEndpoint(
            url=f'https://dev.azure.com/contoso/Platform/_git/{identifier.name}',
            auth_header='Basic ZGVzdA==',
        )


def not_found_error() -> GitCommandError:
    return GitCommandError(
        'clone', 128, "remote: Repository not found.\nfatal: repository 'x' not found"
    )


def network_error() -> GitCommandError:
    return GitCommandError(
        'push', 128, 'fatal: unable to access: Could not resolve host: dev.azure.com'
    )


@pytest.fixture
def git_runner():
    return FakeGitRunner()


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def provisioner():
    return FakeProvisioner()


@pytest.fixture
def endpoints():
    source_endpoint = RemoteEndpoint(
        url='https://github.com/acme/api.git', auth_header='Basic c291cmNl'
    )
    destination_endpoint = RemoteEndpoint(
        url='https://dev.azure.com/contoso/Platform/_git/api', auth_header='Basic ZGVzdA=='
    )
    return source_endpoint, destination_endpoint


@pytest.fixture
def mock_destination():
    """A Mock standing in for AzureDevOpsDestination."""
    destination = Mock()
    destination.project = 'Platform'
    destination.credentials.destination_auth_header.return_value = 'Basic ZGVzdA=='
    destination.predicted_remote_url.side_effect = (
        lambda name: f'https://dev.azure.com/contoso/Platform/_git/{name}'
    )
    return destination
