"""Tests for hosting provider API clients."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
import requests

from repo_migrate.api.azure_devops import AzureDevOpsDestination, is_already_exists
from repo_migrate.api.client import APIResponse, HostClient
from repo_migrate.api.exceptions import (
    HostAPIError,
    HostAuthenticationError,
    HostNotFoundError,
    HostRateLimitError,
    HostTimeoutError,
)
from repo_migrate.api.github import GitHubSource
from repo_migrate.config.config import DestinationHostConfig, SourceHostConfig
from repo_migrate.config.credentials import CredentialStore
from repo_migrate.models.repository import RepositoryIdentifier
from repo_migrate.utils.retry import BackoffPolicy


def make_response(status_code=200, data=None, headers=None, next_url=None):
    """Build a mocked requests response."""
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = data
    response.content = b'x' if data is not None else b''
    response.text = str(data)
    response.links = {'next': {'url': next_url}} if next_url else {}
    return response


class TestAPIResponse:
    """Test API response model."""

    def test_api_response_creation(self):
        response = APIResponse(
            status_code=200,
            data={'id': 1},
            headers={'Content-Type': 'application/json'},
            success=True,
        )

        assert response.data == {'id': 1}
        assert response.next_url is None


class TestHostAPIErrors:
    """Test transient classification of API errors."""

    def test_transient_classification(self):
        assert HostAPIError('network', status_code=None).transient is True
        assert HostAPIError('server', status_code=503).transient is True
        assert HostAPIError('unprocessable', status_code=422).transient is False
        assert HostRateLimitError('slow down', status_code=429).transient is True
        assert HostTimeoutError('timeout').transient is True
        assert HostAuthenticationError('nope', status_code=401).transient is False
        assert HostNotFoundError('gone', status_code=404).transient is False


class TestHostClient:
    """Test the REST client."""

    def setup_method(self):
        self.client = HostClient('https://api.example.com/', 'Bearer secret-token')

    def test_client_initialization(self):
        assert self.client.base_url == 'https://api.example.com'
        assert self.client.session.headers['Authorization'] == 'Bearer secret-token'

    def test_client_initialization_no_auth(self):
        with pytest.raises(HostAuthenticationError):
            HostClient('https://api.example.com', '')

    def test_build_url(self):
        assert self.client._build_url('/user') == 'https://api.example.com/user'
        assert self.client._build_url('user/repos') == 'https://api.example.com/user/repos'
        assert (
            self.client._build_url('https://api.example.com/user?page=2')
            == 'https://api.example.com/user?page=2'
        )

    def test_get_success(self):
        with patch.object(
            self.client.session, 'request', return_value=make_response(data={'login': 'me'})
        ) as mock_request:
            response = self.client.get('/user')

        assert response.success is True
        assert response.data == {'login': 'me'}
        mock_request.assert_called_once_with(
            'GET', 'https://api.example.com/user', params=None, timeout=30
        )

    @pytest.mark.parametrize(
        'status_code,headers,expected',
        [
            (401, {}, HostAuthenticationError),
            (403, {}, HostAuthenticationError),
            (403, {'X-RateLimit-Remaining': '0'}, HostRateLimitError),
            (429, {'Retry-After': '7'}, HostRateLimitError),
            (404, {}, HostNotFoundError),
            (500, {}, HostAPIError),
        ],
    )
    def test_error_mapping(self, status_code, headers, expected):
        response = make_response(status_code, {'message': 'boom'}, headers)

        with patch.object(self.client.session, 'request', return_value=response):
            with pytest.raises(expected) as exc_info:
                self.client.get('/user')

        assert exc_info.value.status_code == status_code

    def test_rate_limit_retry_after(self):
        response = make_response(429, {'message': 'slow'}, {'Retry-After': '7'})

        with patch.object(self.client.session, 'request', return_value=response):
            with pytest.raises(HostRateLimitError) as exc_info:
                self.client.get('/user')

        assert exc_info.value.retry_after == 7

    def test_error_keeps_response_data(self):
        response = make_response(400, {'message': 'bad', 'typeKey': 'SomeException'})

        with patch.object(self.client.session, 'request', return_value=response):
            with pytest.raises(HostAPIError) as exc_info:
                self.client.post('/things', {'name': 'x'})

        assert exc_info.value.response_data['typeKey'] == 'SomeException'

    def test_timeout(self):
        with patch.object(
            self.client.session, 'request', side_effect=requests.Timeout('slow')
        ):
            with pytest.raises(HostTimeoutError):
                self.client.get('/user')

    def test_network_error(self):
        with patch.object(
            self.client.session,
            'request',
            side_effect=requests.ConnectionError('refused'),
        ):
            with pytest.raises(HostAPIError) as exc_info:
                self.client.get('/user')

        assert exc_info.value.transient is True

    def test_get_paginated_follows_next_link(self):
        pages = [
            make_response(data=[{'id': 1}, {'id': 2}], next_url='https://api.example.com/x?page=2'),
            make_response(data=[{'id': 3}]),
        ]

        with patch.object(self.client.session, 'request', side_effect=pages) as mock_request:
            items = self.client.get_paginated('/x', params={'type': 'all'})

        assert [item['id'] for item in items] == [1, 2, 3]
        first, second = mock_request.call_args_list
        assert first.kwargs['params'] == {'type': 'all', 'per_page': 100}
        assert second.args[1] == 'https://api.example.com/x?page=2'
        assert second.kwargs['params'] is None

    def test_get_paginated_retries_transient(self):
        pages = [
            make_response(502, {'message': 'bad gateway'}),
            make_response(data=[{'id': 1}]),
        ]
        policy = BackoffPolicy(attempts=3, base_delay=0)

        with patch.object(self.client.session, 'request', side_effect=pages):
            items = self.client.get_paginated('/x', policy=policy)

        assert items == [{'id': 1}]

    def test_get_paginated_auth_error_not_retried(self):
        policy = BackoffPolicy(attempts=3, base_delay=0)

        with patch.object(
            self.client.session, 'request', return_value=make_response(401, {})
        ) as mock_request:
            with pytest.raises(HostAuthenticationError):
                self.client.get_paginated('/x', policy=policy)

        assert mock_request.call_count == 1

    def test_test_connection(self):
        with patch.object(self.client.session, 'request', return_value=make_response(data={})):
            assert self.client.test_connection('/user') is True

        with patch.object(self.client.session, 'request', return_value=make_response(401, {})):
            assert self.client.test_connection('/user') is False


class TestGitHubSource:
    """Test the GitHub source collaborator."""

    def setup_method(self):
        self.credentials = CredentialStore('ghp_token', 'pat')
        self.client = Mock()

    def test_list_org_repositories(self):
        self.client.get_paginated.return_value = [
            {'full_name': 'acme/api'},
            {'name': 'web', 'owner': {'login': 'acme'}},
        ]
        source = GitHubSource(SourceHostConfig(org='acme'), self.credentials, self.client)

        identifiers = source.list_repositories()

        assert [str(i) for i in identifiers] == ['acme/api', 'acme/web']
        assert self.client.get_paginated.call_args.args[0] == '/orgs/acme/repos'

    def test_list_user_repositories(self):
        self.client.get_paginated.return_value = []
        source = GitHubSource(SourceHostConfig(), self.credentials, self.client)

        assert source.list_repositories() == []
        assert self.client.get_paginated.call_args.args[0] == '/user/repos'

    def test_clone_endpoint_has_no_credentials_in_url(self):
        source = GitHubSource(SourceHostConfig(), self.credentials, self.client)

        endpoint = source.clone_endpoint(RepositoryIdentifier(owner='acme', name='api'))

        assert endpoint.url == 'https://github.com/acme/api.git'
        assert 'ghp_token' not in endpoint.url
        assert endpoint.auth_header.startswith('Basic ')
        assert 'Basic' not in repr(endpoint)

    def test_enterprise_git_base_url(self):
        config = SourceHostConfig(api_url='https://git.example.com/api/v3')
        source = GitHubSource(config, self.credentials, self.client)

        assert source.git_base_url() == 'https://git.example.com'


class TestAzureDevOpsDestination:
    """Test the Azure DevOps destination collaborator."""

    def setup_method(self):
        self.credentials = CredentialStore('ghp_token', 'pat')
        self.client = Mock()
        self.client.post_async = AsyncMock()
        self.client.get_async = AsyncMock()
        self.destination = AzureDevOpsDestination(
            DestinationHostConfig(org='contoso', project='My Project'),
            self.credentials,
            self.client,
        )

    @pytest.mark.asyncio
    async def test_create_repository(self):
        self.client.post_async.return_value = APIResponse(
            status_code=201,
            data={'name': 'api', 'remoteUrl': 'https://contoso@dev.azure.com/contoso/My%20Project/_git/api'},
            headers={},
            success=True,
        )

        repository = await self.destination.create_repository('api')

        assert repository['name'] == 'api'
        endpoint = self.client.post_async.call_args.args[0]
        assert endpoint == '/My%20Project/_apis/git/repositories?api-version=7.0'
        assert self.client.post_async.call_args.kwargs['data'] == {'name': 'api'}

    @pytest.mark.asyncio
    async def test_get_repository(self):
        self.client.get_async.return_value = APIResponse(
            status_code=200, data={'name': 'api'}, headers={}, success=True
        )

        await self.destination.get_repository('api')

        assert self.client.get_async.call_args.args[0] == (
            '/My%20Project/_apis/git/repositories/api?api-version=7.0'
        )

    def test_predicted_remote_url(self):
        assert self.destination.predicted_remote_url('api') == (
            'https://dev.azure.com/contoso/My%20Project/_git/api'
        )

    def test_is_already_exists(self):
        by_type = HostAPIError(
            'exists',
            status_code=400,
            response_data={'typeKey': 'GitRepositoryNameAlreadyExistsException'},
        )
        by_status = HostAPIError('conflict', status_code=409)
        other = HostAPIError('bad request', status_code=400, response_data={})

        assert is_already_exists(by_type) is True
        assert is_already_exists(by_status) is True
        assert is_already_exists(other) is False
