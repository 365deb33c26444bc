"""Credential resolution for the source and destination hosts."""

import base64
import os
from typing import List, Optional

from ..exceptions import ConfigError
from ..utils.redaction import redact

SOURCE_TOKEN_VARS = ('SOURCE_TOKEN', 'GITHUB_TOKEN')
DEST_TOKEN_VARS = ('DEST_TOKEN', 'AZURE_DEVOPS_PAT')


def _first_env(names) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value and value.strip():
            return value.strip()
    return None


class CredentialStore:
    """Holds the access tokens for both hosts and scrubs them from text."""

    def __init__(self, source_token: str, destination_token: str):
        if not source_token:
            raise ConfigError('Source token is required')
        if not destination_token:
            raise ConfigError('Destination token is required')
        self._source_token = source_token
        self._destination_token = destination_token

    @classmethod
    def resolve(
        cls,
        source_token: Optional[str] = None,
        destination_token: Optional[str] = None,
    ) -> 'CredentialStore':
        """Resolve tokens from explicit values, falling back to the environment.

        Raises:
            ConfigError: If either token cannot be found
        """
        source = source_token or _first_env(SOURCE_TOKEN_VARS)
        destination = destination_token or _first_env(DEST_TOKEN_VARS)

        if not source:
            raise ConfigError(
                'Source token not provided (set SOURCE_TOKEN or GITHUB_TOKEN)'
            )
        if not destination:
            raise ConfigError(
                'Destination token not provided (set DEST_TOKEN or AZURE_DEVOPS_PAT)'
            )
        return cls(source, destination)

    def source_auth_header(self) -> str:
        """Authorization header value for the GitHub REST API."""
        return f'Bearer {self._source_token}'

    def source_git_auth_header(self) -> str:
        """Authorization header value for git smart-HTTP requests to GitHub."""
        return self._basic(f'x-access-token:{self._source_token}')

    def destination_auth_header(self) -> str:
        """Azure DevOps accepts a PAT as Basic auth with an empty user name."""
        return self._basic(f':{self._destination_token}')

    @property
    def secrets(self) -> List[str]:
        """Every form in which a credential may appear in output."""
        return [
            self._source_token,
            self._destination_token,
            self.source_git_auth_header().split(' ', 1)[1],
            self.destination_auth_header().split(' ', 1)[1],
        ]

    def redact(self, message: str) -> str:
        """Strip both tokens (and their encoded forms) from a message."""
        return redact(message, self.secrets)

    def __repr__(self) -> str:
        return 'CredentialStore(source=***, destination=***)'

    @staticmethod
    def _basic(userpass: str) -> str:
        encoded = base64.b64encode(userpass.encode('utf-8')).decode('ascii')
        return f'Basic {encoded}'
