"""Tests for translating selected repositories between organizations"""

import logging

import pytest

from secrets_migrator.errors import AuthenticationError, ScopeResolutionError, TransientAPIError
from secrets_migrator.models import SelectedRepositoriesRef
from secrets_migrator.resolver import RepositoryResolver
from secrets_migrator.scope import ScopeTranslator
from tests.conftest import FakeGitHubClient

REF = SelectedRepositoriesRef('source', 'DEPLOY_KEY')


def make_translator(selected, destination_repos):
    source = FakeGitHubClient(selected={'DEPLOY_KEY': selected})
    target = FakeGitHubClient(repositories=destination_repos)
    return ScopeTranslator(source, RepositoryResolver(target)), source, target


class TestScopeTranslator:

    def test_missing_repositories_are_dropped_in_order(self, caplog):
        """N source repositories with M in the destination give M ids in source order"""
        translator, _, _ = make_translator(
            ['web', 'legacy', 'api', 'old-tools', 'worker'],
            {'worker': 3, 'web': 1, 'api': 2},
        )

        with caplog.at_level(logging.WARNING):
            translation = translator.translate('dest', REF)

        assert translation.repository_ids == [1, 2, 3]
        assert translation.dropped == ['legacy', 'old-tools']
        assert 'legacy' in caplog.text

    def test_all_repositories_present(self):
        translator, _, _ = make_translator(['a', 'b'], {'a': 10, 'b': 20})
        translation = translator.translate('dest', REF)
        assert translation.repository_ids == [10, 20]
        assert translation.dropped == []

    def test_empty_source_list(self):
        translator, _, target = make_translator([], {})
        translation = translator.translate('dest', REF)
        assert translation.repository_ids == []
        assert target.calls['get_repository'] == 0

    def test_source_listing_error_becomes_scope_failure(self):
        translator, _, _ = make_translator(TransientAPIError("503 - Service Unavailable"), {})
        with pytest.raises(ScopeResolutionError, match='DEPLOY_KEY'):
            translator.translate('dest', REF)

    def test_lookup_error_becomes_scope_failure(self):
        translator, _, target = make_translator(['api'], {'api': 1})
        target.repository_errors['api'] = TransientAPIError("502 - Bad Gateway")
        with pytest.raises(ScopeResolutionError):
            translator.translate('dest', REF)

    def test_authentication_error_is_not_wrapped(self):
        translator, _, target = make_translator(['api'], {'api': 1})
        target.repository_errors['api'] = AuthenticationError("401 - Bad credentials", status_code=401)
        with pytest.raises(AuthenticationError):
            translator.translate('dest', REF)

    def test_shared_repositories_resolved_once_across_secrets(self):
        """Two secrets sharing repositories reuse the run cache"""
        source = FakeGitHubClient(selected={'A': ['api', 'web'], 'B': ['web', 'api', 'gone']})
        target = FakeGitHubClient(repositories={'api': 1, 'web': 2})
        translator = ScopeTranslator(source, RepositoryResolver(target))

        first = translator.translate('dest', SelectedRepositoriesRef('source', 'A'))
        second = translator.translate('dest', SelectedRepositoriesRef('source', 'B'))

        assert first.repository_ids == [1, 2]
        assert second.repository_ids == [2, 1]
        assert target.calls['get_repository'] == 3
