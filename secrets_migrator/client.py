import logging
import random
import threading
import time
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import APIError, AuthenticationError, IncompleteListingError, TransientAPIError
from .models import Repository, Secret, SelectedRepositoriesRef

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
PER_PAGE = 100
# Pause when fewer requests than this remain in the current window
RATE_LIMIT_THRESHOLD = 10
MAX_BACKOFF = 60.0


class Endpoints:
    """Builds GitHub REST URLs from typed arguments"""

    def __init__(self, base_url: str = DEFAULT_API_URL):
        self.base_url = base_url.rstrip('/')

    def _url(self, *segments: str) -> str:
        return '/'.join([self.base_url] + [quote(str(s), safe='') for s in segments])

    def org_secrets(self, org: str) -> str:
        return self._url('orgs', org, 'actions', 'secrets')

    def org_secret(self, org: str, name: str) -> str:
        return self._url('orgs', org, 'actions', 'secrets', name)

    def org_public_key(self, org: str) -> str:
        return self._url('orgs', org, 'actions', 'secrets', 'public-key')

    def secret_repositories(self, ref: SelectedRepositoriesRef) -> str:
        return self._url('orgs', ref.organization, 'actions', 'secrets', ref.secret_name, 'repositories')

    def repository(self, owner: str, name: str) -> str:
        return self._url('repos', owner, name)


class GitHubClient:
    """Thin GitHub REST client for organization Actions secrets.

    One client wraps one token. Server errors and 429 responses are retried by
    the urllib3 ``Retry`` mounted on the session; 403 rate-limit responses are
    retried here with exponential backoff and jitter. Responses are mapped to
    the error types in :mod:`secrets_migrator.errors`.
    """

    def __init__(self, token: str, base_url: str = DEFAULT_API_URL, max_retries: int = 3,
                 timeout: float = 30.0, user_agent: str = 'GitHub-Secrets-Migrator/1.0'):
        self.endpoints = Endpoints(base_url)
        self.max_retries = max_retries
        self.timeout = timeout
        self.session = self._create_session(token, user_agent)

        # Rate limiting
        self.rate_limit_remaining: Optional[int] = None
        self.rate_limit_reset: Optional[int] = None
        self._rate_lock = threading.Lock()

    def _create_session(self, token: str, user_agent: str) -> requests.Session:
        """Create a requests session with retry strategy and authentication"""
        session = requests.Session()

        # Setup retry strategy
        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=1,
            backoff_jitter=1.0,
            status_forcelist=[429, 500, 502, 503, 504],
            respect_retry_after_header=True,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        # Setup headers
        session.headers.update({
            'Authorization': f'token {token}',
            'Accept': 'application/vnd.github+json',
            'X-GitHub-Api-Version': API_VERSION,
            'User-Agent': user_agent,
        })
        return session

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> 'GitHubClient':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _handle_rate_limit(self, response: requests.Response) -> None:
        """Track the rate limit window and pause when it is nearly used up"""
        remaining = response.headers.get('X-RateLimit-Remaining')
        reset = response.headers.get('X-RateLimit-Reset')
        if remaining is None or reset is None:
            return

        with self._rate_lock:
            self.rate_limit_remaining = int(remaining)
            self.rate_limit_reset = int(reset)
            if self.rate_limit_remaining >= RATE_LIMIT_THRESHOLD:
                return
            wait_time = self.rate_limit_reset - time.time() + 1
            if wait_time > 0:
                logger.warning(f"Rate limit nearly exhausted ({self.rate_limit_remaining} left). "
                               f"Waiting {wait_time:.0f} seconds")
                time.sleep(wait_time)

    @staticmethod
    def _is_rate_limited(response: requests.Response) -> bool:
        if response.status_code != 403:
            return False
        if response.headers.get('X-RateLimit-Remaining') == '0' or 'Retry-After' in response.headers:
            return True
        return 'rate limit' in (response.text or '').lower()

    @staticmethod
    def _backoff_delay(attempt: int, response: requests.Response) -> float:
        retry_after = response.headers.get('Retry-After')
        if retry_after is not None:
            delay = float(retry_after)
        elif response.headers.get('X-RateLimit-Remaining') == '0' and response.headers.get('X-RateLimit-Reset'):
            delay = max(int(response.headers['X-RateLimit-Reset']) - time.time(), 1.0)
        else:
            delay = min(2.0 ** attempt, MAX_BACKOFF)
        return delay + random.uniform(0, 1)

    def _make_request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Make an API request, backing off on rate-limit responses"""
        kwargs.setdefault('timeout', self.timeout)
        attempt = 0
        while True:
            try:
                response = self.session.request(method, url, **kwargs)
            except requests.exceptions.RequestException as e:
                logger.error(f"Request failed for {url}: {e}")
                raise TransientAPIError(f"Request failed for {url}: {e}", url=url) from e

            self._handle_rate_limit(response)
            if not self._is_rate_limited(response):
                return response
            if attempt >= self.max_retries:
                raise TransientAPIError(f"Rate limit still exceeded after {attempt + 1} attempts: {url}",
                                        status_code=response.status_code, url=url)
            delay = self._backoff_delay(attempt, response)
            logger.warning(f"Rate limited on {url}. Retrying in {delay:.1f} seconds")
            time.sleep(delay)
            attempt += 1

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            return response.json().get('message', 'Unknown error')
        except (ValueError, AttributeError):
            return response.text

    def _check(self, response: requests.Response, url: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        message = f"{status} - {self._error_detail(response)} ({url})"
        if status == 401:
            raise AuthenticationError(f"Authentication failed: {message}", status_code=status, url=url)
        if status == 429 or status >= 500:
            raise TransientAPIError(message, status_code=status, url=url)
        raise APIError(message, status_code=status, url=url)

    @staticmethod
    def _json(response: requests.Response, url: str) -> Dict:
        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"Invalid JSON from {url}: {e}", status_code=response.status_code, url=url) from e

    def _get_json(self, url: str, params: Optional[Dict] = None) -> Dict:
        response = self._make_request('GET', url, params=params)
        self._check(response, url)
        return self._json(response, url)

    def _get_paginated_data(self, url: str, items_key: str) -> Tuple[List[Dict], Optional[int]]:
        """Fetch all pages of a ``{total_count, <items_key>: [...]}`` listing"""
        all_data: List[Dict] = []
        total_count: Optional[int] = None
        page = 1

        while True:
            data = self._get_json(url, params={'page': page, 'per_page': PER_PAGE})
            items = data.get(items_key, [])
            if data.get('total_count') is not None:
                total_count = data['total_count']
            all_data.extend(items)
            logger.debug(f"Fetched page {page} of {url}, total items so far: {len(all_data)}")

            if len(items) < PER_PAGE:
                break
            if total_count is not None and len(all_data) >= total_count:
                break
            page += 1

        if total_count is not None and len(all_data) < total_count:
            raise IncompleteListingError(
                f"Listing {url} returned {len(all_data)} of {total_count} {items_key}")
        return all_data, total_count

    def list_org_secrets(self, org: str) -> Tuple[List[Secret], int]:
        """Return every Actions secret of an organization and the reported total_count"""
        items, total_count = self._get_paginated_data(self.endpoints.org_secrets(org), 'secrets')
        secrets = [Secret.from_api(org, item) for item in items]
        return secrets, total_count if total_count is not None else len(secrets)

    def list_secret_repositories(self, ref: SelectedRepositoriesRef) -> List[Repository]:
        items, _ = self._get_paginated_data(self.endpoints.secret_repositories(ref), 'repositories')
        return [Repository.from_api(item) for item in items]

    def get_repository(self, owner: str, name: str) -> Optional[Repository]:
        """Look up ``owner/name``; ``None`` when it does not exist"""
        url = self.endpoints.repository(owner, name)
        response = self._make_request('GET', url)
        if response.status_code == 404:
            return None
        self._check(response, url)
        return Repository.from_api(self._json(response, url))

    def get_org_public_key(self, org: str) -> Dict:
        return self._get_json(self.endpoints.org_public_key(org))

    def put_org_secret(self, org: str, name: str, payload: Dict) -> bool:
        """Create or update an organization secret. Returns True when it was created."""
        url = self.endpoints.org_secret(org, name)
        response = self._make_request('PUT', url, json=payload)
        self._check(response, url)
        return response.status_code == 201
