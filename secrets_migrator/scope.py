import logging
from dataclasses import dataclass, field
from typing import List

from .client import GitHubClient
from .errors import APIError, AuthenticationError, IncompleteListingError, ScopeResolutionError
from .models import Repository, SelectedRepositoriesRef
from .resolver import RepositoryResolver

logger = logging.getLogger(__name__)


@dataclass
class ScopeTranslation:
    repository_ids: List[int] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)


class ScopeTranslator:
    """Translates a secret's selected repositories into destination repository ids"""

    def __init__(self, source_client: GitHubClient, resolver: RepositoryResolver):
        self.source_client = source_client
        self.resolver = resolver

    def source_repositories(self, ref: SelectedRepositoriesRef) -> List[Repository]:
        """Every repository the secret is shared with in the source organization"""
        return self.source_client.list_secret_repositories(ref)

    def translate(self, destination_org: str, ref: SelectedRepositoriesRef) -> ScopeTranslation:
        """Resolve the source list against ``destination_org``, keeping source order.

        Repositories missing from the destination are dropped and reported in
        ``dropped``. Any other failure raises ScopeResolutionError, except
        authentication failures which are left to abort the run.
        """
        try:
            repositories = self.source_repositories(ref)
            logger.info(f"Secret {ref.secret_name} applies to {len(repositories)} repositories")

            translation = ScopeTranslation()
            for repo in repositories:
                repo_id = self.resolver.resolve(destination_org, repo.name)
                if repo_id is None:
                    translation.dropped.append(repo.name)
                else:
                    translation.repository_ids.append(repo_id)
        except AuthenticationError:
            raise
        except (APIError, IncompleteListingError) as e:
            raise ScopeResolutionError(f"Could not resolve repositories for secret {ref.secret_name}: {e}") from e

        if translation.dropped:
            logger.warning(f"Secret {ref.secret_name}: {len(translation.dropped)} repositories not found "
                           f"in {destination_org}: {', '.join(translation.dropped)}")
        return translation
