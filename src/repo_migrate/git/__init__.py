"""Git operations module for repository migration."""

from .operations import GitCommandError, GitRunner
from .transfer import MirrorTransfer

__all__ = ['GitCommandError', 'GitRunner', 'MirrorTransfer']
