"""Azure DevOps destination host collaborator."""

from typing import Any, Dict, Optional
from urllib.parse import quote

from loguru import logger

from ..config.config import DestinationHostConfig
from ..config.credentials import CredentialStore
from .client import HostClient
from .exceptions import HostAPIError

ALREADY_EXISTS_TYPE_KEY = 'GitRepositoryNameAlreadyExistsException'


def is_already_exists(error: HostAPIError) -> bool:
    """Whether a create call failed only because the repository exists."""
    data = error.response_data or {}
    if data.get('typeKey') == ALREADY_EXISTS_TYPE_KEY:
        return True
    return error.status_code == 409


class AzureDevOpsDestination:
    """Creates and looks up git repositories in one Azure DevOps project."""

    def __init__(
        self,
        config: DestinationHostConfig,
        credentials: CredentialStore,
        client: Optional[HostClient] = None,
    ):
        self.config = config
        self.credentials = credentials
        self.client = client or HostClient(
            config.org_url,
            credentials.destination_auth_header(),
            timeout=config.timeout,
        )
        self.logger = logger.bind(component='AzureDevOpsDestination')

    @property
    def project(self) -> str:
        return self.config.project

    def _repositories_endpoint(self, name: Optional[str] = None) -> str:
        endpoint = f'/{quote(self.config.project)}/_apis/git/repositories'
        if name:
            endpoint += f'/{quote(name)}'
        return f'{endpoint}?api-version={self.config.api_version}'

    async def create_repository(self, name: str) -> Dict[str, Any]:
        """Create a repository in the project.

        Returns:
            Repository resource, including ``remoteUrl``

        Raises:
            HostAPIError: If creation fails, including when the name is taken
        """
        self.logger.debug(f'Creating repository {name} in {self.config.project}')
        response = await self.client.post_async(
            self._repositories_endpoint(), data={'name': name}
        )
        return response.data or {}

    async def get_repository(self, name: str) -> Dict[str, Any]:
        """Fetch an existing repository by name.

        Raises:
            HostNotFoundError: If the repository does not exist
        """
        response = await self.client.get_async(self._repositories_endpoint(name))
        return response.data or {}

    def predicted_remote_url(self, name: str) -> str:
        """The remote URL Azure DevOps assigns to a repository of this name."""
        return f'{self.config.org_url}/{quote(self.config.project)}/_git/{quote(name)}'

    def test_connection(self) -> bool:
        return self.client.test_connection(
            f'/_apis/projects/{quote(self.config.project)}?api-version={self.config.api_version}'
        )

    def close(self) -> None:
        self.client.close()
