"""Tests for the CSV export and migration report"""

import csv
from unittest.mock import patch

import pytest

from secrets_migrator.errors import TransientAPIError
from secrets_migrator.export import (
    SECRETS_HEADER,
    SecretExporter,
    write_migration_report,
    write_secrets_csv,
)
from secrets_migrator.models import MigrationReport, Repository, Secret, SecretOutcome, SecretState
from tests.conftest import FakeGitHubClient


def read_rows(path):
    with open(path, newline='', encoding='utf-8') as csvfile:
        return list(csv.reader(csvfile))


class TestWriteSecretsCsv:

    def test_no_secrets_writes_header_only(self, tmp_path):
        output = tmp_path / 'secrets.csv'
        write_secrets_csv(str(output), 'acme', [])
        assert read_rows(output) == [SECRETS_HEADER]

    def test_rows_never_contain_values(self, tmp_path):
        output = tmp_path / 'secrets.csv'
        selected = Secret(name='DEPLOY_KEY', organization='acme', visibility='selected')
        selected.set_selected_repositories([Repository(1, 'web'), Repository(2, 'api')])
        secrets = [Secret(name='NPM_TOKEN', organization='acme', visibility='all'), selected]

        write_secrets_csv(str(output), 'acme', secrets)

        rows = read_rows(output)
        assert rows[0] == ['organization', 'name', 'visibility', 'selected repositories', 'value']
        assert rows[1] == ['acme', 'NPM_TOKEN', 'all', '', '']
        assert rows[2] == ['acme', 'DEPLOY_KEY', 'selected', 'web api', '']

    def test_failed_write_leaves_no_partial_file(self, tmp_path):
        """An error while writing keeps the previous file and removes the temporary one"""
        output = tmp_path / 'secrets.csv'
        output.write_text('previous\n')

        with patch('secrets_migrator.export.secret_row', side_effect=KeyboardInterrupt):
            with pytest.raises(KeyboardInterrupt):
                write_secrets_csv(str(output), 'acme', [Secret(name='A', organization='acme')])

        assert output.read_text() == 'previous\n'
        assert [p.name for p in tmp_path.iterdir()] == ['secrets.csv']


class TestSecretExporter:

    def test_export_includes_source_repository_names(self, tmp_path):
        client = FakeGitHubClient(
            secrets=[{'name': 'A', 'visibility': 'selected'}, {'name': 'B', 'visibility': 'private'}],
            selected={'A': ['web', 'api']},
        )
        output = tmp_path / 'out.csv'

        secrets = SecretExporter(client, 'acme').run(str(output))

        assert len(secrets) == 2
        rows = read_rows(output)
        assert rows[1] == ['acme', 'A', 'selected', 'web api', '']
        assert rows[2] == ['acme', 'B', 'private', '', '']
        assert client.calls['list_secret_repositories'] == 1

    def test_export_with_no_secrets(self, tmp_path):
        output = tmp_path / 'out.csv'
        SecretExporter(FakeGitHubClient(), 'acme').run(str(output))
        assert read_rows(output) == [SECRETS_HEADER]

    def test_repository_listing_error_aborts_export(self, tmp_path):
        client = FakeGitHubClient(
            secrets=[{'name': 'A', 'visibility': 'selected'}],
            selected={'A': TransientAPIError("502 - Bad Gateway")},
        )
        output = tmp_path / 'out.csv'

        with pytest.raises(TransientAPIError):
            SecretExporter(client, 'acme').run(str(output))
        assert not output.exists()


class TestMigrationReport:

    def test_report_rows(self, tmp_path):
        report = MigrationReport('src', 'dest', total_count=2, outcomes=[
            SecretOutcome('A', SecretState.UPSERTED, selected_repository_ids=[1, 2], dropped_repositories=['gone']),
            SecretOutcome('B', SecretState.FAILED, cause='No plaintext value supplied for B'),
        ])
        output = tmp_path / 'report.csv'

        write_migration_report(str(output), report)

        with open(output, newline='', encoding='utf-8') as csvfile:
            rows = list(csv.DictReader(csvfile))
        assert rows[0]['name'] == 'A'
        assert rows[0]['state'] == 'upserted'
        assert rows[0]['selected repositories'] == '1 2'
        assert rows[0]['dropped repositories'] == 'gone'
        assert rows[1]['state'] == 'failed'
        assert rows[1]['cause'] == 'No plaintext value supplied for B'
