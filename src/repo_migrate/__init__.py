"""Repository Migration Tool

Mirrors git repositories from a GitHub account or organization into an
Azure DevOps project, with bounded concurrency, retries and a per-repository
migration report.
"""

__version__ = '0.1.0'

from .cli import main

__all__ = ['main']
