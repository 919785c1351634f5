"""
Tests for the forge API clients.
"""

import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

import requests

from depsync.domain import RepositoryDescriptor
from depsync.exit_codes import ResolutionFailed, UnsupportedForge
from depsync.infra.forge_client import (
    ForgejoClient,
    GitHubClient,
    create_forge_client,
    parse_timestamp,
)


def make_response(payload=None, status=200, text=None):
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.text = text if text is not None else repr(payload)
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def make_session(*responses):
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = list(responses)
    return session


GITHUB = RepositoryDescriptor(name='foo', forge='github', host='github.com', owner='acme', repo='foo')
FORGEJO = RepositoryDescriptor(name='bar', forge='forgejo', host='codeberg.org', owner='someone', repo='bar')


class TestGitHubClient(unittest.TestCase):

    def test_latest_tag_request(self):
        session = make_session(make_response([
            {'name': 'v1.1.0', 'tarball_url': 'https://api.github.com/repos/acme/foo/tarball/refs/tags/v1.1.0'},
            {'name': 'v1.0.0', 'tarball_url': 'ignored'},
        ]))
        client = GitHubClient(token='secret', session=session)

        tag = client.latest_tag(GITHUB)

        self.assertEqual(tag.name, 'v1.1.0')
        self.assertEqual(tag.tarball_url, 'https://api.github.com/repos/acme/foo/tarball/refs/tags/v1.1.0')
        url = session.get.call_args.args[0]
        self.assertEqual(url, 'https://api.github.com/repos/acme/foo/tags?per_page=1')
        headers = session.get.call_args.kwargs['headers']
        self.assertEqual(headers['Authorization'], 'Bearer secret')

    def test_latest_tag_empty(self):
        client = GitHubClient(token='secret', session=make_session(make_response([])))
        self.assertIsNone(client.latest_tag(GITHUB))

    def test_latest_commit(self):
        session = make_session(make_response([
            {'sha': 'abc123', 'commit': {'committer': {'date': '2024-03-05T10:00:00Z'}}},
        ]))
        client = GitHubClient(token='secret', session=session)

        commit = client.latest_commit(GITHUB)

        self.assertEqual(commit.sha, 'abc123')
        self.assertEqual(commit.date, datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc))
        self.assertEqual(session.get.call_args.args[0],
                         'https://api.github.com/repos/acme/foo/commits?per_page=1')

    def test_latest_commit_without_date(self):
        client = GitHubClient(token='secret', session=make_session(make_response([{'sha': 'abc'}])))
        with self.assertRaises(ResolutionFailed) as ctx:
            client.latest_commit(GITHUB)
        self.assertIn('date', ctx.exception.message)
        self.assertIn('abc', ctx.exception.output)

    def test_no_commits(self):
        client = GitHubClient(token='secret', session=make_session(make_response([])))
        with self.assertRaises(ResolutionFailed) as ctx:
            client.latest_commit(GITHUB)
        self.assertEqual(ctx.exception.message, "there are no commits")

    def test_missing_token(self):
        session = make_session()
        client = GitHubClient(token=None, session=session)
        with self.assertRaises(ResolutionFailed):
            client.latest_tag(GITHUB)
        session.get.assert_not_called()

    def test_http_error_carries_body(self):
        session = make_session(make_response(status=403, text='{"message": "rate limited"}'))
        client = GitHubClient(token='secret', session=session)
        with self.assertRaises(ResolutionFailed) as ctx:
            client.latest_tag(GITHUB)
        self.assertIn('403', ctx.exception.message)
        self.assertEqual(ctx.exception.output, '{"message": "rate limited"}')

    def test_invalid_json(self):
        session = make_session(make_response(ValueError('bad'), text='<html>'))
        client = GitHubClient(token='secret', session=session)
        with self.assertRaises(ResolutionFailed) as ctx:
            client.latest_tag(GITHUB)
        self.assertEqual(ctx.exception.output, '<html>')

    def test_not_a_list(self):
        session = make_session(make_response({'message': 'Not Found'}))
        client = GitHubClient(token='secret', session=session)
        with self.assertRaises(ResolutionFailed):
            client.latest_tag(GITHUB)

    def test_network_error(self):
        session = make_session(requests.ConnectionError('connection refused'))
        client = GitHubClient(token='secret', session=session)
        with self.assertRaises(ResolutionFailed) as ctx:
            client.latest_tag(GITHUB)
        self.assertIn('connection refused', ctx.exception.output)

    def test_archive_url_and_source_root(self):
        client = GitHubClient(token='secret', session=make_session())
        self.assertEqual(client.archive_url(GITHUB, 'abc'), 'https://github.com/acme/foo/archive/abc.tar.gz')
        self.assertEqual(client.source_root(GITHUB, '1.0'), 'foo-1.0')

    def test_enterprise_host(self):
        descriptor = RepositoryDescriptor(name='x', forge='github', host='github.example.com', owner='o', repo='x')
        client = GitHubClient(token='secret', session=make_session())
        self.assertEqual(client.api_base(descriptor), 'https://api.github.example.com')


class TestForgejoClient(unittest.TestCase):

    def test_latest_tag_request_has_no_auth(self):
        session = make_session(make_response([
            {'name': 'v0.3.0', 'tarball_url': 'https://codeberg.org/someone/bar/archive/v0.3.0.tar.gz'},
        ]))
        client = ForgejoClient(session=session)

        tag = client.latest_tag(FORGEJO)

        self.assertEqual(tag.name, 'v0.3.0')
        self.assertEqual(session.get.call_args.args[0],
                         'https://codeberg.org/api/v1/repos/someone/bar/tags?limit=1')
        self.assertNotIn('Authorization', session.get.call_args.kwargs['headers'])

    def test_latest_commit_uses_created(self):
        session = make_session(make_response([
            {'sha': 'def456', 'created': '2024-03-05T23:30:00-02:00'},
        ]))
        commit = ForgejoClient(session=session).latest_commit(FORGEJO)

        self.assertEqual(commit.sha, 'def456')
        self.assertEqual(commit.date.astimezone(timezone.utc).day, 6)

    def test_source_root_is_name(self):
        client = ForgejoClient(session=make_session())
        self.assertEqual(client.source_root(FORGEJO, '1.0'), 'bar')


class TestCreateForgeClient(unittest.TestCase):

    def test_github_gets_token(self):
        client = create_forge_client('github', token='t', session=make_session())
        self.assertIsInstance(client, GitHubClient)
        self.assertEqual(client.token, 't')

    def test_forgejo_never_gets_token(self):
        client = create_forge_client('forgejo', token='t', session=make_session())
        self.assertIsInstance(client, ForgejoClient)
        self.assertIsNone(client.token)

    def test_unknown_forge(self):
        with self.assertRaises(UnsupportedForge) as ctx:
            create_forge_client('sourcehut')
        self.assertEqual(ctx.exception.forge, 'sourcehut')


class TestParseTimestamp(unittest.TestCase):

    def test_zulu(self):
        self.assertEqual(parse_timestamp('2024-03-05T10:00:00Z'),
                         datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc))

    def test_offset(self):
        self.assertEqual(parse_timestamp('2024-03-05T10:00:00+02:00').utcoffset().total_seconds(), 7200)


if __name__ == '__main__':
    unittest.main()
