"""
Tests for the depsync command line.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from depsync.cli import cli
from depsync.commands.sync import resolve_relative, run_sync
from depsync.config import get_default_config
from depsync.domain import PublishedVersionSet, Revision
from depsync.exit_codes import CONFIG_ERROR, NO_REPOS_FOUND, PARTIAL_SUCCESS, ConfigurationError, NoReposFoundError
from depsync.services.batch import BatchResult

TABLE = """\
name forge   host         owner repo path lang method live
foo  github  github.com   acme  foo  .    go   vendor false
bar  forgejo codeberg.org other bar  .    rust vendor true
"""

NO_CREDENTIALS = {
    'GITHUB_TOKEN': None,
    'GITLAB_TOKEN': None,
    'CI_JOB_TOKEN': None,
    'GITLAB_PROJECT_ID': None,
    'CI_PROJECT_ID': None,
}


@pytest.fixture
def repos_file(tmp_path):
    path = tmp_path / 'repos.csv'
    path.write_text(TABLE)
    return path


@pytest.fixture
def default_config():
    with patch('depsync.commands.sync.load_config', side_effect=get_default_config), \
            patch('depsync.commands.list.load_config', side_effect=get_default_config):
        yield


class TestHelp:

    def test_root_help(self):
        result = CliRunner().invoke(cli, ['--help'])
        assert result.exit_code == 0
        for command in ('sync', 'list', 'config'):
            assert command in result.output

    def test_sync_flags(self):
        result = CliRunner().invoke(cli, ['sync', '--help'])
        assert result.exit_code == 0
        for flag in ('--debug', '--ignore', '--name', '--publish', '-d', '-i', '-n', '-p'):
            assert flag in result.output


class TestSyncCommand:

    def test_missing_github_token(self, repos_file, default_config):
        result = CliRunner().invoke(
            cli, ['sync', '--repos-file', str(repos_file), '--ignore', '--dry-run'], env=NO_CREDENTIALS
        )
        assert result.exit_code == CONFIG_ERROR
        assert "`GITHUB_TOKEN` is unset" in result.output

    def test_missing_registry_credentials(self, repos_file, default_config):
        env = dict(NO_CREDENTIALS, GITHUB_TOKEN='gh')
        result = CliRunner().invoke(cli, ['sync', '--repos-file', str(repos_file), '--dry-run'], env=env)
        assert result.exit_code == CONFIG_ERROR
        assert "`GITLAB_TOKEN` is unset" in result.output

    def test_missing_table(self, tmp_path, default_config):
        result = CliRunner().invoke(cli, ['sync', '--repos-file', str(tmp_path / 'nope.csv')])
        assert result.exit_code == CONFIG_ERROR

    def test_unknown_name(self, repos_file, default_config):
        result = CliRunner().invoke(cli, ['sync', '--repos-file', str(repos_file), '-n', 'zzz'])
        assert result.exit_code == NO_REPOS_FOUND

    def test_failures_exit_zero_by_default(self, repos_file, default_config):
        with patch('depsync.commands.sync.run_sync', return_value=BatchResult(failed=['foo'])):
            result = CliRunner().invoke(cli, ['sync', '--repos-file', str(repos_file)])
        assert result.exit_code == 0

    def test_fail_on_error(self, repos_file, default_config):
        with patch('depsync.commands.sync.run_sync', return_value=BatchResult(packaged=['bar'], failed=['foo'])):
            result = CliRunner().invoke(cli, ['sync', '--repos-file', str(repos_file), '--fail-on-error'])
        assert result.exit_code == PARTIAL_SUCCESS

    def test_pretty_summary(self, repos_file, default_config):
        with patch('depsync.commands.sync.run_sync', return_value=BatchResult(skipped=['foo'])):
            result = CliRunner().invoke(cli, ['sync', '--repos-file', str(repos_file), '--pretty'])
        assert result.exit_code == 0
        assert "Sync Summary" in result.output

    def test_flags_forwarded(self, repos_file, default_config, tmp_path):
        with patch('depsync.commands.sync.run_sync', return_value=BatchResult()) as mock_run:
            CliRunner().invoke(cli, [
                'sync', '--repos-file', str(repos_file), '--output-dir', str(tmp_path / 'out'),
                '-i', '-p', '-n', 'foo', '--keep-temp',
            ])

        kwargs = mock_run.call_args.kwargs
        assert kwargs['ignore'] is True
        assert kwargs['publish'] is True
        assert kwargs['name_filter'] == 'foo'
        assert kwargs['keep_temp'] is True
        assert kwargs['output_dir'] == tmp_path / 'out'


class TestRunSync:

    ENV = {'GITHUB_TOKEN': 'gh', 'GITLAB_TOKEN': 'gl', 'GITLAB_PROJECT_ID': '42'}

    @pytest.fixture
    def resolver(self):
        resolver = MagicMock()
        resolver.resolve.side_effect = lambda d, log=None: Revision('1.0.0', f'https://x/{d.name}.tar.gz')
        with patch('depsync.commands.sync.RevisionResolver') as resolver_class:
            resolver_class.from_token.return_value = resolver
            yield resolver_class

    def test_ignore_never_queries_registry(self, repos_file, tmp_path, resolver):
        with patch('depsync.commands.sync.GitLabRegistryClient') as registry_class:
            result = run_sync(get_default_config(), repos_file, tmp_path, ignore=True, dry_run=True,
                              environ={'GITHUB_TOKEN': 'gh'})

        registry_class.assert_not_called()
        assert result.pending == ['foo', 'bar']

    def test_registry_queried_once(self, repos_file, tmp_path, resolver):
        with patch('depsync.commands.sync.GitLabRegistryClient') as registry_class:
            registry_class.return_value.fetch_published_versions.return_value = \
                PublishedVersionSet({'foo': ['1.0.0']})
            result = run_sync(get_default_config(), repos_file, tmp_path, dry_run=True, environ=self.ENV)

        registry_class.return_value.fetch_published_versions.assert_called_once_with()
        assert registry_class.call_args.kwargs['auth_header'] == {'PRIVATE-TOKEN': 'gl'}
        assert result.skipped == ['foo']
        assert result.pending == ['bar']

    def test_ignore_with_publish_still_needs_registry_credentials(self, repos_file, tmp_path, resolver):
        with patch('depsync.config.shutil.which', return_value='/usr/bin/go'):
            with pytest.raises(ConfigurationError):
                run_sync(get_default_config(), repos_file, tmp_path, ignore=True, publish=True,
                         environ={'GITHUB_TOKEN': 'gh'})

    def test_name_filter_selects_checks(self, repos_file, tmp_path, resolver):
        # Only the forgejo record is selected, so no GitHub token is needed
        with patch('depsync.commands.sync.GitLabRegistryClient'):
            result = run_sync(get_default_config(), repos_file, tmp_path, name_filter='bar',
                              ignore=True, dry_run=True, environ={})
        assert result.pending == ['bar']

    def test_unknown_name(self, repos_file, tmp_path):
        with pytest.raises(NoReposFoundError):
            run_sync(get_default_config(), repos_file, tmp_path, name_filter='zzz', environ=self.ENV)

    def test_invalid_timeout_fails_before_any_record(self, repos_file, tmp_path, resolver):
        config = get_default_config()
        config['http']['timeout_seconds'] = 'slow'
        with pytest.raises(ConfigurationError) as excinfo:
            run_sync(config, repos_file, tmp_path, ignore=True, dry_run=True, environ=self.ENV)
        assert excinfo.value.exit_code == CONFIG_ERROR
        resolver.from_token.assert_not_called()

    def test_fractional_timeout_reaches_resolver(self, repos_file, tmp_path, resolver):
        config = get_default_config()
        config['http']['timeout_seconds'] = '1.5'
        run_sync(config, repos_file, tmp_path, ignore=True, dry_run=True, environ=self.ENV)
        assert config['http']['timeout_seconds'] == 1.5
        assert resolver.from_token.call_args.kwargs['timeout'] == 1.5

    def test_prepare_dir_relative_to_table(self, repos_file, tmp_path, resolver):
        with patch('depsync.commands.sync.Packager') as packager_class:
            run_sync(get_default_config(), repos_file, tmp_path, ignore=True, dry_run=True,
                     environ={'GITHUB_TOKEN': 'gh'})
        assert packager_class.call_args.kwargs['prepare_dir'] == repos_file.parent / 'repos'


class TestResolveRelative:

    def test_relative(self, tmp_path):
        assert resolve_relative('repos', tmp_path) == tmp_path / 'repos'

    def test_absolute(self, tmp_path):
        assert resolve_relative(tmp_path / 'x', tmp_path / 'y') == tmp_path / 'x'


class TestListCommand:

    def test_table(self, repos_file, default_config):
        result = CliRunner().invoke(cli, ['list', '--repos-file', str(repos_file)])
        assert result.exit_code == 0
        assert 'foo' in result.output
        assert 'bar' in result.output

    def test_jsonl(self, repos_file, default_config):
        result = CliRunner().invoke(cli, ['list', '--repos-file', str(repos_file), '--json'])
        assert result.exit_code == 0
        records = [json.loads(line) for line in result.output.splitlines() if line.startswith('{')]
        assert [r['name'] for r in records] == ['foo', 'bar']
        assert records[1]['live'] is True

    def test_published(self, repos_file, default_config):
        env = {'GITLAB_TOKEN': 'gl', 'GITLAB_PROJECT_ID': '42'}
        with patch('depsync.commands.list.GitLabRegistryClient') as registry_class:
            registry_class.return_value.fetch_published_versions.return_value = \
                PublishedVersionSet({'foo': ['1.0.0', '0.9.0']})
            result = CliRunner().invoke(
                cli, ['list', '--repos-file', str(repos_file), '--json', '--published', '-n', 'foo'], env=env
            )

        assert result.exit_code == 0
        record = json.loads(result.output.strip().splitlines()[-1])
        assert record['published'] == ['0.9.0', '1.0.0']

    def test_published_without_credentials(self, repos_file, default_config):
        result = CliRunner().invoke(cli, ['list', '--repos-file', str(repos_file), '--published'],
                                    env=NO_CREDENTIALS)
        assert result.exit_code == CONFIG_ERROR


class TestConfigCommand:

    def test_show_path(self):
        result = CliRunner().invoke(cli, ['config', 'show', '--path'])
        assert result.exit_code == 0
        assert 'config_path' in json.loads(result.output)

    def test_init_writes_defaults(self, tmp_path):
        with patch('depsync.commands.config.Path.home', return_value=tmp_path):
            result = CliRunner().invoke(cli, ['config', 'init', '--format', 'toml'])
            assert result.exit_code == 0
            assert (tmp_path / '.depsync' / 'config.toml').exists()

            again = CliRunner().invoke(cli, ['config', 'init', '--format', 'toml'])
            assert again.exit_code == 1
