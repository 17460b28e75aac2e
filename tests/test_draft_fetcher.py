"""Unit tests for SessionDraftFetcher."""
from unittest.mock import Mock

import requests

from processor.models import EntityType, PutOperation
from scraper.draft_fetcher import SessionDraftFetcher

BASE = 'https://datatracker.ietf.org'


def stored_session(store, **attributes):
    values = {'title': 'sec - tls - TLS', 'block_id': 'b1', 'url': '', 'starred': False,
              'generation_version': 1}
    values.update(attributes)
    store.apply_batch([PutOperation(EntityType.SESSION, '1001', values)])


def test_fetch_drafts_stores_and_returns_references(store):
    """Test a successful on-demand fetch."""
    stored_session(store, resource_uri='/api/v1/meeting/session/1001/')
    fetcher = Mock()
    fetcher.get_json.return_value = {'materials': [
        '/api/v1/doc/document/draft-ietf-tls-esni/',
        '/api/v1/doc/document/slides-121-tls-chairs/',
    ]}

    drafts = SessionDraftFetcher(fetcher, store, BASE).fetch_drafts('1001')

    assert drafts == [('draft-ietf-tls-esni', f'{BASE}/doc/draft-ietf-tls-esni/')]
    fetcher.get_json.assert_called_once_with(f'{BASE}/api/v1/meeting/session/1001/?format=json')
    assert store.get_session('1001')['drafts'] == (
        f'draft-ietf-tls-esni|||{BASE}/doc/draft-ietf-tls-esni/'
    )


def test_fetch_drafts_uses_stored_drafts(store):
    """Test that stored drafts avoid the network."""
    stored_session(store, drafts='draft-a|||https://example.com/doc/draft-a/',
                   resource_uri='/api/v1/meeting/session/1001/')
    fetcher = Mock()

    drafts = SessionDraftFetcher(fetcher, store, BASE).fetch_drafts('1001')

    assert drafts == [('draft-a', 'https://example.com/doc/draft-a/')]
    fetcher.get_json.assert_not_called()


def test_fetch_drafts_without_resource_uri(store):
    """Test that sessions without a detail path yield nothing."""
    stored_session(store)
    fetcher = Mock()

    assert SessionDraftFetcher(fetcher, store, BASE).fetch_drafts('1001') == []
    fetcher.get_json.assert_not_called()


def test_fetch_drafts_network_failure_degrades(store):
    """Test that fetch failures return an empty list and leave the session intact."""
    stored_session(store, resource_uri='/api/v1/meeting/session/1001/')
    fetcher = Mock()
    fetcher.get_json.side_effect = requests.ConnectionError('offline')

    assert SessionDraftFetcher(fetcher, store, BASE).fetch_drafts('1001') == []
    assert 'drafts' not in store.get_session('1001')


def test_fetch_drafts_unknown_session(store):
    """Test an unknown session id."""
    assert SessionDraftFetcher(Mock(), store, BASE).fetch_drafts('nope') == []
