import logging
import threading
from concurrent.futures import Future
from typing import Dict, Optional, Tuple

from .client import GitHubClient

logger = logging.getLogger(__name__)


class RepositoryResolver:
    """Maps a repository name to its id inside a destination organization.

    Results, including "does not exist", are cached for the lifetime of the
    resolver (one migration run). Errors are never cached. Concurrent callers
    asking for the same repository share a single remote lookup.
    """

    def __init__(self, client: GitHubClient):
        self.client = client
        self.lookups = 0
        self._cache: Dict[Tuple[str, str], Optional[int]] = {}
        self._pending: Dict[Tuple[str, str], Future] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(org: str, name: str) -> Tuple[str, str]:
        return org.lower(), name.lower()

    def resolve(self, org: str, name: str) -> Optional[int]:
        if not org or not name:
            raise ValueError("Organization and repository name must not be empty")

        key = self._key(org, name)
        with self._lock:
            if key in self._cache:
                return self._cache[key]
            pending = self._pending.get(key)
            if pending is None:
                # Reserve the lookup for this thread
                reservation: Future = Future()
                self._pending[key] = reservation
                self.lookups += 1

        if pending is not None:
            return pending.result()

        try:
            logger.info(f"Getting id of repository {org}/{name}")
            repo = self.client.get_repository(org, name)
        except BaseException as e:
            with self._lock:
                del self._pending[key]
            reservation.set_exception(e)
            raise

        repo_id = repo.id if repo is not None else None
        if repo_id is None:
            logger.info(f"Repository {org}/{name} not found")
        with self._lock:
            self._cache[key] = repo_id
            del self._pending[key]
        reservation.set_result(repo_id)
        return repo_id

    def __len__(self) -> int:
        return len(self._cache)
