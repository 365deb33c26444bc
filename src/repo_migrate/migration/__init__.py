"""Migration engine and its components."""

from .engine import MigrationEngine
from .lister import RepoLister
from .provisioner import DestinationProvisioner
from .report import MigrationReport
from .scheduler import MigrationScheduler, default_concurrency

__all__ = [
    'MigrationEngine',
    'RepoLister',
    'DestinationProvisioner',
    'MigrationReport',
    'MigrationScheduler',
    'default_concurrency',
]
