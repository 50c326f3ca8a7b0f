import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class Visibility(str, Enum):
    ALL = 'all'
    PRIVATE = 'private'
    SELECTED = 'selected'


class SecretState(str, Enum):
    """Lifecycle of one secret during a migration run"""
    DISCOVERED = 'discovered'
    SCOPE_RESOLVED = 'scope_resolved'
    ENCRYPTED = 'encrypted'
    UPSERTED = 'upserted'
    FAILED = 'failed'


@dataclass
class Repository:
    """Repository as seen from one organization"""
    id: int
    name: str
    full_name: str = ''

    @classmethod
    def from_api(cls, data: Dict) -> 'Repository':
        return cls(id=data['id'], name=data['name'], full_name=data.get('full_name', ''))


@dataclass(frozen=True)
class SelectedRepositoriesRef:
    """Points at the repository list of a selected-visibility secret"""
    organization: str
    secret_name: str


@dataclass
class Secret:
    """Organization secret metadata. Plaintext values never live here."""
    name: str
    organization: str
    visibility: str = Visibility.ALL.value
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    selected_repositories: Optional[List[Repository]] = None

    @classmethod
    def from_api(cls, organization: str, data: Dict) -> 'Secret':
        return cls(
            name=data['name'],
            organization=organization,
            visibility=data.get('visibility', Visibility.ALL.value),
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at'),
        )

    @property
    def is_selected(self) -> bool:
        return self.visibility == Visibility.SELECTED.value

    @property
    def repositories_ref(self) -> Optional[SelectedRepositoriesRef]:
        if not self.is_selected:
            return None
        return SelectedRepositoriesRef(self.organization, self.name)

    def set_selected_repositories(self, repositories: List[Repository]) -> None:
        if not self.is_selected:
            raise ValueError(f"Secret {self.name} has visibility '{self.visibility}', not 'selected'")
        self.selected_repositories = list(repositories)

    @property
    def selected_repository_names(self) -> List[str]:
        return [repo.name for repo in self.selected_repositories or []]


@dataclass
class PublicKey:
    key_id: str
    raw: bytes
    fetched_at: float = field(default_factory=time.monotonic)

    def age(self) -> float:
        return time.monotonic() - self.fetched_at

    def __repr__(self) -> str:
        return f"PublicKey(key_id={self.key_id!r})"


@dataclass
class SecretOutcome:
    name: str
    state: SecretState = SecretState.DISCOVERED
    cause: Optional[str] = None
    selected_repository_ids: List[int] = field(default_factory=list)
    dropped_repositories: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == SecretState.UPSERTED

    def fail(self, cause: str) -> None:
        self.state = SecretState.FAILED
        self.cause = cause


@dataclass
class MigrationReport:
    """Aggregated result of one migration run"""
    source_org: str
    destination_org: str
    total_count: int = 0
    outcomes: List[SecretOutcome] = field(default_factory=list)
    fatal_error: Optional[str] = None
    interrupted: bool = False

    @property
    def succeeded(self) -> List[SecretOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> List[SecretOutcome]:
        return [o for o in self.outcomes if o.state == SecretState.FAILED]

    @property
    def exit_code(self) -> int:
        if self.interrupted:
            return 130
        if self.fatal_error:
            return 1
        if self.failed:
            return 2
        return 0
