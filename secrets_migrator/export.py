import csv
import logging
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, TextIO

from .client import GitHubClient
from .models import MigrationReport, Secret

logger = logging.getLogger(__name__)

SECRETS_HEADER = ['organization', 'name', 'visibility', 'selected repositories', 'value']
REPORT_HEADER = ['name', 'state', 'selected repositories', 'dropped repositories', 'cause', 'migration_date']


@contextmanager
def _atomic_csv(filename: str) -> Iterator[TextIO]:
    """Write to a temporary file next to ``filename`` and move it into place on success"""
    directory = os.path.dirname(os.path.abspath(filename))
    fd, tmp_path = tempfile.mkstemp(prefix='.tmp-', suffix='.csv', dir=directory)
    try:
        with os.fdopen(fd, 'w', newline='', encoding='utf-8') as csvfile:
            yield csvfile
            csvfile.flush()
            os.fsync(csvfile.fileno())
        os.replace(tmp_path, filename)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def secret_row(organization: str, secret: Secret) -> List[str]:
    # The value column stays empty: GitHub never returns plaintext
    return [organization, secret.name, secret.visibility, ' '.join(secret.selected_repository_names), '']


def write_secrets_csv(filename: str, organization: str, secrets: List[Secret]) -> None:
    """Export secret metadata. A header-only file is written when there are no secrets."""
    logger.info(f"Exporting secrets to CSV: {filename}")
    with _atomic_csv(filename) as csvfile:
        writer = csv.writer(csvfile)
        writer.writerow(SECRETS_HEADER)
        for secret in secrets:
            writer.writerow(secret_row(organization, secret))
    logger.info(f"Exported {len(secrets)} secrets to {filename}")


def write_migration_report(filename: str, report: MigrationReport) -> None:
    """Write one row per migrated secret with its final state and failure cause"""
    logger.info(f"Generating CSV migration report at {filename}")
    migration_date = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    with _atomic_csv(filename) as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=REPORT_HEADER)
        writer.writeheader()
        for outcome in report.outcomes:
            writer.writerow({
                'name': outcome.name,
                'state': outcome.state.value,
                'selected repositories': ' '.join(str(i) for i in outcome.selected_repository_ids),
                'dropped repositories': ' '.join(outcome.dropped_repositories),
                'cause': outcome.cause or '',
                'migration_date': migration_date,
            })


class SecretExporter:
    """Lists an organization's secrets with their selected repositories and writes them to CSV"""

    def __init__(self, client: GitHubClient, organization: str, workers: int = 4):
        self.client = client
        self.organization = organization
        self.workers = max(1, workers)

    def collect(self) -> List[Secret]:
        logger.info(f"Exporting secrets from {self.organization}")
        secrets, total_count = self.client.list_org_secrets(self.organization)
        logger.info(f"Found {total_count} secrets")

        selected = [s for s in secrets if s.is_selected]
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix='secret-export') as executor:
            repository_lists = executor.map(
                lambda s: self.client.list_secret_repositories(s.repositories_ref), selected)
            for secret, repositories in zip(selected, repository_lists):
                secret.set_selected_repositories(repositories)
                logger.info(f"Secret {secret.name} applies to {len(repositories)} repositories")
        return secrets

    def run(self, output_file: str) -> List[Secret]:
        secrets = self.collect()
        write_secrets_csv(output_file, self.organization, secrets)
        return secrets
