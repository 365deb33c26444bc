"""Tests for destination provisioning."""

from unittest.mock import AsyncMock

import pytest

from repo_migrate.api.exceptions import HostAPIError, HostAuthenticationError, HostNotFoundError
from repo_migrate.exceptions import ProvisionError
from repo_migrate.migration.provisioner import DestinationProvisioner, strip_userinfo
from repo_migrate.models.repository import RepositoryIdentifier

IDENTIFIER = RepositoryIdentifier(owner='acme', name='api')
REMOTE_URL = 'https://contoso@dev.azure.com/contoso/Platform/_git/api'
CLEAN_URL = 'https://dev.azure.com/contoso/Platform/_git/api'


def already_exists() -> HostAPIError:
    return HostAPIError(
        'TF400948: A Git repository with the name api already exists.',
        status_code=409,
        response_data={'typeKey': 'GitRepositoryNameAlreadyExistsException'},
    )


class TestStripUserinfo:
    def test_strips_user(self):
        assert strip_userinfo(REMOTE_URL) == CLEAN_URL

    def test_strips_user_and_password(self):
        assert strip_userinfo('https://u:p@host/x?y=1') == 'https://host/x?y=1'

    def test_plain_url_unchanged(self):
        assert strip_userinfo(CLEAN_URL) == CLEAN_URL


class TestDestinationProvisioner:
    """Test create-or-reuse behaviour."""

    @pytest.fixture(autouse=True)
    def _setup(self, mock_destination):
        self.destination = mock_destination
        self.destination.create_repository = AsyncMock(
            return_value={'name': 'api', 'remoteUrl': REMOTE_URL}
        )
        self.destination.get_repository = AsyncMock(
            return_value={'name': 'api', 'remoteUrl': REMOTE_URL}
        )
        self.provisioner = DestinationProvisioner(self.destination)

    @pytest.mark.asyncio
    async def test_create(self):
        endpoint = await self.provisioner.ensure(IDENTIFIER)

        assert endpoint.url == CLEAN_URL
        assert endpoint.auth_header == 'Basic ZGVzdA=='
        self.destination.create_repository.assert_awaited_once_with('api')
        self.destination.get_repository.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_already_exists_resolves_existing(self):
        self.destination.create_repository.side_effect = already_exists()

        endpoint = await self.provisioner.ensure(IDENTIFIER)

        assert endpoint.url == CLEAN_URL
        self.destination.get_repository.assert_awaited_once_with('api')

    @pytest.mark.asyncio
    async def test_ensure_twice_is_idempotent(self):
        """The second call finds the repository made by the first."""
        self.destination.create_repository.side_effect = [
            {'name': 'api', 'remoteUrl': REMOTE_URL},
            already_exists(),
        ]

        first = await self.provisioner.ensure(IDENTIFIER)
        second = await self.provisioner.ensure(IDENTIFIER)

        assert first.url == second.url == CLEAN_URL

    @pytest.mark.asyncio
    async def test_other_error_raises_provision_error(self):
        self.destination.create_repository.side_effect = HostAuthenticationError(
            'Authentication failed', status_code=401
        )

        with pytest.raises(ProvisionError) as exc_info:
            await self.provisioner.ensure(IDENTIFIER)

        assert exc_info.value.status_code == 401
        assert exc_info.value.transient is False
        self.destination.get_repository.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        self.destination.create_repository.side_effect = HostAPIError(
            'Service Unavailable', status_code=503
        )

        with pytest.raises(ProvisionError) as exc_info:
            await self.provisioner.ensure(IDENTIFIER)

        assert exc_info.value.transient is True
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_existing_repository_lookup_fails(self):
        self.destination.create_repository.side_effect = already_exists()
        self.destination.get_repository.side_effect = HostNotFoundError(
            'Resource not found', status_code=404
        )

        with pytest.raises(ProvisionError) as exc_info:
            await self.provisioner.ensure(IDENTIFIER)

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_remote_url(self):
        self.destination.create_repository.return_value = {'name': 'api'}

        with pytest.raises(ProvisionError):
            await self.provisioner.ensure(IDENTIFIER)

    @pytest.mark.asyncio
    async def test_error_message_redacted(self):
        self.destination.create_repository.side_effect = HostAPIError(
            'bad request for pat topsecret', status_code=400, response_data={}
        )
        provisioner = DestinationProvisioner(
            self.destination, redactor=lambda m: m.replace('topsecret', '***')
        )

        with pytest.raises(ProvisionError) as exc_info:
            await provisioner.ensure(IDENTIFIER)

        assert 'topsecret' not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_dry_run_makes_no_calls(self):
        provisioner = DestinationProvisioner(self.destination, dry_run=True)

        endpoint = await provisioner.ensure(IDENTIFIER)

        assert endpoint.url == CLEAN_URL
        self.destination.create_repository.assert_not_awaited()
