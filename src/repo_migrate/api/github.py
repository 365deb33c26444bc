"""GitHub source host collaborator."""

from typing import List, Optional
from urllib.parse import urlparse

from loguru import logger

from ..config.config import SourceHostConfig
from ..config.credentials import CredentialStore
from ..models.repository import RemoteEndpoint, RepositoryIdentifier
from ..utils.retry import BackoffPolicy
from .client import HostClient

GITHUB_API_HEADERS = {
    'Accept': 'application/vnd.github+json',
    'X-GitHub-Api-Version': '2022-11-28',
}


class GitHubSource:
    """Lists repositories on GitHub and builds their clone endpoints."""

    def __init__(
        self,
        config: SourceHostConfig,
        credentials: CredentialStore,
        client: Optional[HostClient] = None,
    ):
        self.config = config
        self.credentials = credentials
        self.client = client or HostClient(
            config.api_url,
            credentials.source_auth_header(),
            timeout=config.timeout,
            headers=GITHUB_API_HEADERS,
        )
        self.logger = logger.bind(component='GitHubSource')

    def list_repositories(
        self, policy: Optional[BackoffPolicy] = None
    ) -> List[RepositoryIdentifier]:
        """List every repository in the configured org, or the token owner's.

        Raises:
            HostAPIError: If a page cannot be fetched
        """
        if self.config.org:
            endpoint = f'/orgs/{self.config.org}/repos'
            params = {'type': 'all'}
        else:
            endpoint = '/user/repos'
            params = {'affiliation': 'owner,collaborator,organization_member'}

        self.logger.info(f'Listing repositories from {endpoint}')
        items = self.client.get_paginated(
            endpoint, params=params, per_page=self.config.per_page, policy=policy
        )

        identifiers = []
        for item in items:
            full_name = item.get('full_name')
            if full_name:
                identifiers.append(RepositoryIdentifier.parse(full_name))
            else:
                identifiers.append(
                    RepositoryIdentifier(
                        owner=item['owner']['login'], name=item['name']
                    )
                )
        return identifiers

    def git_base_url(self) -> str:
        """Return base URL for git operations derived from the API endpoint."""
        parsed = urlparse(self.config.api_url)
        if parsed.netloc == 'api.github.com':
            return 'https://github.com'

        base_path = parsed.path.rstrip('/')
        if base_path.endswith('/api/v3'):
            base_path = base_path[: -len('/api/v3')]
        return f'{parsed.scheme}://{parsed.netloc}{base_path}'

    def clone_endpoint(self, identifier: RepositoryIdentifier) -> RemoteEndpoint:
        """Credential-free clone URL plus the header that authenticates it."""
        return RemoteEndpoint(
            url=f'{self.git_base_url()}/{identifier.full_name}.git',
            auth_header=self.credentials.source_git_auth_header(),
        )

    def test_connection(self) -> bool:
        return self.client.test_connection('/user')

    def close(self) -> None:
        self.client.close()
