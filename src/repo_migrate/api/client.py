"""Hosting provider REST client."""

import asyncio
import json
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel

from ..utils.retry import BackoffPolicy, retry_sync
from .exceptions import (
    HostAPIError,
    HostAuthenticationError,
    HostNotFoundError,
    HostRateLimitError,
    HostTimeoutError,
)

USER_AGENT = 'repo-migrate/0.1.0'


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool
    next_url: Optional[str] = None


def _error_message(error_data: Any, status_code: int) -> str:
    if isinstance(error_data, dict):
        return str(error_data.get('message') or f'HTTP {status_code}')
    if error_data:
        return f'HTTP {status_code}: {error_data}'
    return f'HTTP {status_code}'


def _raise_for_status(
    status_code: int, headers: Dict[str, str], error_data: Any
) -> None:
    """Map an HTTP error status to the matching exception."""
    if status_code < 400:
        return

    message = _error_message(error_data, status_code)
    response_data = error_data if isinstance(error_data, dict) else None

    # Handle rate limiting (GitHub signals it with 403 and an exhausted quota)
    if status_code == 429 or (
        status_code == 403 and headers.get('X-RateLimit-Remaining') == '0'
    ):
        retry_after = int(headers.get('Retry-After', 60))
        raise HostRateLimitError(
            f'Rate limit exceeded. Retry after {retry_after} seconds',
            retry_after=retry_after,
            status_code=status_code,
        )

    # Handle authentication errors
    if status_code in (401, 403):
        raise HostAuthenticationError(
            f'Authentication failed: {message}',
            status_code=status_code,
            response_data=response_data,
        )

    # Handle not found
    if status_code == 404:
        raise HostNotFoundError(
            'Resource not found', status_code=status_code, response_data=response_data
        )

    raise HostAPIError(
        f'API request failed: {message}',
        status_code=status_code,
        response_data=response_data,
    )


class HostClient:
    """REST client for one hosting provider, with header-based authentication."""

    def __init__(
        self,
        base_url: str,
        auth_header: str,
        timeout: int = 30,
        headers: Optional[Dict[str, str]] = None,
    ):
        """Initialize host client.

        Args:
            base_url: API base URL; relative endpoints are joined onto it
            auth_header: Value of the Authorization header
            timeout: Request timeout in seconds
            headers: Extra headers sent with every request
        """
        if not auth_header:
            raise HostAuthenticationError('No authentication credential provided')

        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._headers = {
            'Authorization': auth_header,
            'Content-Type': 'application/json',
            'User-Agent': USER_AGENT,
        }
        if headers:
            self._headers.update(headers)

        self.session = requests.Session()
        self.session.headers.update(self._headers)

        logger.debug(f'Initialized API client for {self.base_url}')

    def _build_url(self, endpoint: str) -> str:
        """Build full API URL from endpoint.

        Args:
            endpoint: API endpoint path, or an absolute URL (pagination links)

        Returns:
            Full API URL
        """
        if endpoint.startswith(('http://', 'https://')):
            return endpoint
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    def _handle_response(self, response: requests.Response) -> APIResponse:
        """Handle API response and convert to standard format.

        Raises:
            HostAPIError: For various API errors
        """
        headers = dict(response.headers)

        if response.status_code >= 400:
            try:
                error_data = response.json()
            except ValueError:
                error_data = response.text
            _raise_for_status(response.status_code, headers, error_data)

        # Parse response data
        try:
            data = response.json() if response.content else None
        except ValueError:
            data = response.text

        next_link = (response.links or {}).get('next', {})

        return APIResponse(
            status_code=response.status_code,
            data=data,
            headers=headers,
            success=200 <= response.status_code < 300,
            next_url=next_link.get('url'),
        )

    def _request(self, method: str, endpoint: str, **kwargs) -> APIResponse:
        url = self._build_url(endpoint)
        kwargs.setdefault('timeout', self.timeout)

        try:
            response = self.session.request(method, url, **kwargs)
            return self._handle_response(response)
        except requests.Timeout as e:
            logger.warning(f'{method} {url} timed out after {self.timeout}s')
            raise HostTimeoutError(f'Request timed out: {e}')
        except requests.RequestException as e:
            logger.error(f'Network error during {method} request: {e}')
            raise HostAPIError(f'Network error: {e}')

    def get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make GET request."""
        return self._request('GET', endpoint, params=params, **kwargs)

    def post(
        self, endpoint: str, data: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make POST request."""
        return self._request('POST', endpoint, json=data, **kwargs)

    def get_paginated(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        per_page: int = 100,
        policy: Optional[BackoffPolicy] = None,
    ) -> List[Dict[str, Any]]:
        """Get all pages of a paginated endpoint.

        Pages are followed through the ``Link: rel="next"`` header. Each page
        request is retried on transient failures when a policy is given.

        Args:
            endpoint: API endpoint
            params: Query parameters
            per_page: Items per page
            policy: Backoff policy for transient failures

        Returns:
            List of all items from all pages
        """
        all_items: List[Dict[str, Any]] = []
        params = dict(params or {})
        params['per_page'] = per_page
        policy = policy or BackoffPolicy(attempts=1)

        url: Optional[str] = endpoint
        page_params: Optional[Dict[str, Any]] = params
        page = 1

        while url:
            current_url, current_params = url, page_params
            response = retry_sync(
                lambda: self.get(current_url, params=current_params),
                policy,
                description=f'GET {endpoint} page {page}',
            )

            items = response.data
            if not items:
                break
            if not isinstance(items, list):
                raise HostAPIError(
                    f'Expected a list from {endpoint}, got {type(items).__name__}',
                    status_code=response.status_code,
                )

            all_items.extend(items)

            # The next link already carries the query string
            url = response.next_url
            page_params = None
            page += 1

        logger.debug(f'Retrieved {len(all_items)} items from {endpoint}')
        return all_items

    async def _make_request_async(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> APIResponse:
        """Make asynchronous API request.

        Args:
            method: HTTP method
            endpoint: API endpoint
            params: Query parameters
            data: Request body data
            **kwargs: Additional request arguments

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(headers=self._headers, timeout=timeout) as session:
            try:
                async with session.request(
                    method=method, url=url, params=params, json=data, **kwargs
                ) as response:
                    response_headers = dict(response.headers)

                    response_text = await response.text()
                    try:
                        response_data = json.loads(response_text) if response_text else None
                    except ValueError:
                        response_data = response_text

                    _raise_for_status(response.status, response_headers, response_data)

                    return APIResponse(
                        status_code=response.status,
                        data=response_data,
                        headers=response_headers,
                        success=200 <= response.status < 300,
                    )

            except asyncio.TimeoutError:
                logger.warning(f'{method} {url} timed out after {self.timeout}s')
                raise HostTimeoutError(f'Request timed out after {self.timeout}s')
            except aiohttp.ClientError as e:
                logger.error(f'Network error during API request: {e}')
                raise HostAPIError(f'Network error: {e}')

    async def get_async(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous GET request."""
        return await self._make_request_async('GET', endpoint, params=params, **kwargs)

    async def post_async(
        self, endpoint: str, data: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous POST request."""
        return await self._make_request_async('POST', endpoint, data=data, **kwargs)

    def test_connection(self, endpoint: str) -> bool:
        """Test that the credential is accepted by the host.

        Args:
            endpoint: Cheap authenticated endpoint to probe

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = self.get(endpoint)
            return response.success
        except HostAPIError as e:
            logger.error(f'Connection test failed: {e}')
            return False

    def close(self):
        """Close the client session."""
        self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def __repr__(self) -> str:
        return f'HostClient({self.base_url!r})'
