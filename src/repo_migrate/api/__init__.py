"""Hosting provider API clients."""

from .azure_devops import AzureDevOpsDestination
from .client import APIResponse, HostClient
from .github import GitHubSource

__all__ = ['APIResponse', 'AzureDevOpsDestination', 'GitHubSource', 'HostClient']
