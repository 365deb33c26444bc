"""Destination repository provisioning."""

from typing import Any, Callable, Dict
from urllib.parse import urlsplit, urlunsplit

from loguru import logger

from ..api.azure_devops import AzureDevOpsDestination, is_already_exists
from ..api.exceptions import HostAPIError
from ..exceptions import ProvisionError
from ..models.repository import RemoteEndpoint, RepositoryIdentifier
from ..utils.redaction import redact


def strip_userinfo(url: str) -> str:
    """Drop any ``user[:password]@`` part from a URL."""
    parts = urlsplit(url)
    if '@' not in parts.netloc:
        return url
    host = parts.netloc.rsplit('@', 1)[1]
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


class DestinationProvisioner:
    """Makes sure a destination repository exists and says how to push to it.

    Creating a repository that already exists is not an error: the existing
    repository is looked up instead, so re-running a migration is safe.
    """

    def __init__(
        self,
        destination: AzureDevOpsDestination,
        dry_run: bool = False,
        redactor: Callable[[str], str] = redact,
    ):
        self.destination = destination
        self.dry_run = dry_run
        self.redactor = redactor
        self.logger = logger.bind(component='DestinationProvisioner')

    async def ensure(self, identifier: RepositoryIdentifier) -> RemoteEndpoint:
        """Create (or find) the destination repository for ``identifier``.

        Returns:
            Credential-free push URL paired with the destination auth header

        Raises:
            ProvisionError: If the repository can be neither created nor found
        """
        name = identifier.name
        auth_header = self.destination.credentials.destination_auth_header()

        if self.dry_run:
            self.logger.info(f'[DRY RUN] Would create repository {name}')
            return RemoteEndpoint(
                url=self.destination.predicted_remote_url(name), auth_header=auth_header
            )

        try:
            repository = await self.destination.create_repository(name)
            self.logger.info(
                f'Created repository {name} in {self.destination.project}'
            )
        except HostAPIError as e:
            if not is_already_exists(e):
                raise self._provision_error(name, e) from None
            self.logger.info(f'Repository {name} already exists, reusing it')
            repository = await self._existing(name)

        return RemoteEndpoint(
            url=self._remote_url(name, repository), auth_header=auth_header
        )

    async def _existing(self, name: str) -> Dict[str, Any]:
        try:
            return await self.destination.get_repository(name)
        except HostAPIError as e:
            raise self._provision_error(name, e) from None

    def _remote_url(self, name: str, repository: Dict[str, Any]) -> str:
        remote_url = repository.get('remoteUrl')
        if not remote_url:
            raise ProvisionError(
                f'Destination returned no remote URL for {name}', transient=False
            )
        return strip_userinfo(remote_url)

    def _provision_error(self, name: str, error: HostAPIError) -> ProvisionError:
        message = self.redactor(f'Failed to provision {name}: {error}')
        self.logger.error(message)
        return ProvisionError(
            message, status_code=error.status_code, transient=error.transient
        )
