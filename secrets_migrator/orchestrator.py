import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional

from .client import GitHubClient
from .crypto import DEFAULT_KEY_MAX_AGE, PublicKeyProvider, seal
from .errors import (
    FATAL_ERRORS,
    APIError,
    AuthenticationError,
    MissingValueError,
    SecretMigrationError,
    UpsertError,
)
from .models import MigrationReport, Secret, SecretOutcome, SecretState
from .resolver import RepositoryResolver
from .scope import ScopeTranslator
from .values import ValueSource

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4


class SecretMigrator:
    """Migrates every Actions secret of one organization into another.

    Each secret moves through DISCOVERED -> SCOPE_RESOLVED -> ENCRYPTED ->
    UPSERTED, or stops at FAILED. A failure of one secret never stops the
    others; only authentication, public key and listing errors abort the run.
    The repository cache and public key live for a single call to migrate().
    """

    def __init__(self, source_client: GitHubClient, target_client: GitHubClient,
                 source_org: str, destination_org: str, values: ValueSource,
                 workers: int = DEFAULT_WORKERS, key_max_age: float = DEFAULT_KEY_MAX_AGE):
        self.source_client = source_client
        self.target_client = target_client
        self.source_org = source_org
        self.destination_org = destination_org
        self.values = values
        self.workers = max(1, workers)
        self.key_max_age = key_max_age

        self.resolver: Optional[RepositoryResolver] = None
        self.translator: Optional[ScopeTranslator] = None
        self.key_provider: Optional[PublicKeyProvider] = None

    def _start_run(self) -> None:
        self.resolver = RepositoryResolver(self.target_client)
        self.translator = ScopeTranslator(self.source_client, self.resolver)
        self.key_provider = PublicKeyProvider(self.target_client, self.destination_org, self.key_max_age)

    def migrate(self) -> MigrationReport:
        """Run the migration and return the per-secret report"""
        report = MigrationReport(self.source_org, self.destination_org)
        self._start_run()
        logger.info(f"Migrating secrets from {self.source_org} to {self.destination_org}")

        try:
            secrets, report.total_count = self.source_client.list_org_secrets(self.source_org)
            logger.info(f"Found {report.total_count} secrets")
            if secrets:
                # Fail before touching any secret if the destination key is unusable
                self.key_provider.current()
                self._migrate_all(secrets, report)
        except SecretMigrationError as e:
            report.fatal_error = str(e)
            logger.error(f"Migration aborted: {e}")

        self._log_summary(report)
        return report

    def _migrate_all(self, secrets: List[Secret], report: MigrationReport) -> None:
        report.outcomes = [SecretOutcome(secret.name) for secret in secrets]
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix='secret-migration')
        futures: Dict[Future, SecretOutcome] = {
            executor.submit(self._migrate_secret, secret, outcome): outcome
            for secret, outcome in zip(secrets, report.outcomes)
        }

        try:
            for future in as_completed(futures):
                future.result()
        except FATAL_ERRORS as e:
            self._abort(executor, futures, f"aborted: {e}")
            raise
        except KeyboardInterrupt:
            logger.warning("Interrupted. Waiting for in-flight secrets to finish")
            report.interrupted = True
            self._abort(executor, futures, 'cancelled')
        else:
            executor.shutdown(wait=True)

    @staticmethod
    def _abort(executor: ThreadPoolExecutor, futures: Dict[Future, SecretOutcome], cause: str) -> None:
        executor.shutdown(wait=True, cancel_futures=True)
        for outcome in futures.values():
            if outcome.state not in (SecretState.UPSERTED, SecretState.FAILED):
                outcome.fail(cause)

    def _migrate_secret(self, secret: Secret, outcome: SecretOutcome) -> None:
        logger.info(f"Migrating secret {secret.name} (visibility: {secret.visibility})")
        try:
            value = self.values.get(secret.name)
            if value is None:
                raise MissingValueError(f"No plaintext value supplied for {secret.name}, nothing uploaded")

            payload = {'visibility': secret.visibility}
            if secret.is_selected:
                translation = self.translator.translate(self.destination_org, secret.repositories_ref)
                outcome.selected_repository_ids = translation.repository_ids
                outcome.dropped_repositories = translation.dropped
                payload['selected_repository_ids'] = translation.repository_ids
                if not translation.repository_ids:
                    logger.warning(f"Secret {secret.name} will not apply to any repository in {self.destination_org}")
            outcome.state = SecretState.SCOPE_RESOLVED

            key = self.key_provider.current()
            payload['encrypted_value'] = seal(value, key)
            payload['key_id'] = key.key_id
            outcome.state = SecretState.ENCRYPTED

            created = self._upsert(secret.name, payload)
            outcome.state = SecretState.UPSERTED
            action = "Created" if created else "Updated"
            logger.info(f"{action} secret {secret.name} in {self.destination_org}")
        except FATAL_ERRORS as e:
            outcome.fail(str(e))
            raise
        except SecretMigrationError as e:
            outcome.fail(str(e))
            logger.error(f"Failed to migrate secret {secret.name}: {e}")
        except Exception as e:
            outcome.fail(f"Unexpected error: {e}")
            logger.exception(f"Error migrating secret {secret.name}")

    def _upsert(self, name: str, payload: Dict) -> bool:
        try:
            return self.target_client.put_org_secret(self.destination_org, name, payload)
        except AuthenticationError:
            raise
        except APIError as e:
            raise UpsertError(f"Failed to upsert secret {name}: {e}") from e

    @staticmethod
    def _log_summary(report: MigrationReport) -> None:
        logger.info(f"Migration completed. Success: {len(report.succeeded)}, Errors: {len(report.failed)}, "
                    f"Total: {report.total_count}")
        for outcome in report.failed:
            logger.error(f"  {outcome.name}: {outcome.cause}")
        for outcome in report.succeeded:
            if outcome.dropped_repositories:
                logger.warning(f"  {outcome.name}: skipped missing repositories "
                               f"{', '.join(outcome.dropped_repositories)}")
