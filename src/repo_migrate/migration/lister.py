"""Enumeration of the repositories to migrate."""

from typing import Iterable, List, Optional

from loguru import logger

from ..api.exceptions import HostAPIError
from ..api.github import GitHubSource
from ..exceptions import ConfigError, SourceListError
from ..models.repository import RepositoryIdentifier
from ..utils.retry import BackoffPolicy


class RepoLister:
    """Produces a deduplicated, order-preserving list of repositories."""

    def __init__(
        self,
        source: GitHubSource,
        default_owner: Optional[str] = None,
        policy: Optional[BackoffPolicy] = None,
    ):
        """Initialize repository lister.

        Args:
            source: Source host collaborator, queried when no explicit list is given
            default_owner: Owner assumed for bare names in an explicit list
            policy: Backoff policy for transient listing failures
        """
        self.source = source
        self.default_owner = default_owner
        self.policy = policy or BackoffPolicy()
        self.logger = logger.bind(component='RepoLister')

    def list_repositories(
        self, explicit: Optional[Iterable[str]] = None
    ) -> List[RepositoryIdentifier]:
        """Return the repositories to migrate.

        An explicit list is used as given, without calling the source host;
        one holding only blank entries yields an empty batch.

        Raises:
            ConfigError: If an explicit entry is not a valid repository
            SourceListError: If the source host cannot be listed
        """
        if explicit is not None:
            entries = [entry.strip() for entry in explicit]
            return self._from_explicit([entry for entry in entries if entry])

        try:
            identifiers = self.source.list_repositories(policy=self.policy)
        except HostAPIError as e:
            raise SourceListError(
                f'Failed to list source repositories: {e}', e.status_code
            ) from e
        except ValueError as e:
            raise SourceListError(f'Source returned an invalid repository: {e}') from e

        result = _dedupe(identifiers)
        self.logger.info(f'Found {len(result)} repositories on the source host')
        return result

    def _from_explicit(self, entries: List[str]) -> List[RepositoryIdentifier]:
        identifiers = []
        for entry in entries:
            try:
                identifiers.append(
                    RepositoryIdentifier.parse(entry, default_owner=self.default_owner)
                )
            except ValueError as e:
                raise ConfigError(f'Invalid repository {entry!r}: {e}') from e

        result = _dedupe(identifiers)
        if len(result) < len(identifiers):
            self.logger.debug(
                f'Dropped {len(identifiers) - len(result)} duplicate repositories'
            )
        return result


def _dedupe(identifiers: Iterable[RepositoryIdentifier]) -> List[RepositoryIdentifier]:
    seen = set()
    result = []
    for identifier in identifiers:
        if identifier in seen:
            continue
        seen.add(identifier)
        result.append(identifier)
    return result
