"""
CLI unit tests.

These tests verify the click commands' option handling, output and exit
codes. The build itself is mocked.
"""
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from pass_builder.cli import cli
from pass_builder.errors import AuthenticationError


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep dictConfig from binding handlers to the runner's streams."""
    with patch('pass_builder.cli.configure_logging') as mock_configure:
        yield mock_configure


@pytest.mark.unit
class TestBuildCommand:
    """Test `pass-builder build`."""

    def test_success(self, runner, clean_env, project_root, passphrase, no_logging_setup):
        """
        GIVEN a configured project
        WHEN running build
        THEN the output path is printed and the exit code is 0
        """
        clean_env.chdir(project_root)
        clean_env.setenv('PASS_CERT_PASSWORD', passphrase)
        output = project_root / 'dist' / 'card.pkpass'

        with patch('pass_builder.cli.BuildService') as mock_service:
            mock_service.return_value.build.return_value = output
            result = runner.invoke(cli, [
                'build', '--root', str(project_root), '--output', str(output),
                '--barcode-message', 'https://example.com/', '-v'
            ])

        assert result.exit_code == 0
        assert str(output) in result.output

        config = mock_service.call_args[0][0]
        assert config.output_path == Path(str(output))
        assert config.barcode_message == 'https://example.com/'
        assert config.root_dir == project_root.resolve()
        no_logging_setup.assert_called_once_with(verbose=True, log_file=None)

    def test_missing_passphrase(self, runner, clean_env, tmp_path):
        """
        GIVEN PASS_CERT_PASSWORD is not set
        WHEN running build
        THEN the error is reported and the exit code is 1
        """
        clean_env.chdir(tmp_path)

        result = runner.invoke(cli, ['build', '--root', str(tmp_path)])

        assert result.exit_code == 1
        assert 'Failed to build pass: Environment variable PASS_CERT_PASSWORD is not set.' in result.output

    def test_build_error(self, runner, clean_env, project_root, passphrase):
        clean_env.chdir(project_root)
        clean_env.setenv('PASS_CERT_PASSWORD', passphrase)

        with patch('pass_builder.cli.BuildService') as mock_service:
            mock_service.return_value.build.side_effect = AuthenticationError('Could not decrypt')
            result = runner.invoke(cli, ['build'])

        assert result.exit_code == 1
        assert 'Failed to build pass: Could not decrypt' in result.output

    def test_log_file_option(self, runner, clean_env, tmp_path, no_logging_setup):
        clean_env.chdir(tmp_path)
        log_file = str(tmp_path / 'logs' / 'build.log')

        runner.invoke(cli, ['build', '--log-file', log_file])

        no_logging_setup.assert_called_once_with(verbose=False, log_file=log_file)


@pytest.mark.unit
class TestCheckCommand:
    """Test `pass-builder check`."""

    def test_configured(self, runner, clean_env, project_root, passphrase):
        clean_env.chdir(project_root)
        clean_env.setenv('PASS_CERT_PASSWORD', passphrase)

        result = runner.invoke(cli, ['check', '--root', str(project_root)])

        assert result.exit_code == 0
        assert 'fully configured' in result.output
        assert passphrase not in result.output

    def test_reports_issues(self, runner, clean_env, tmp_path, passphrase):
        """
        GIVEN an empty project directory
        WHEN running check
        THEN missing inputs are listed and the exit code is 1
        """
        clean_env.chdir(tmp_path)
        clean_env.setenv('PASS_CERT_PASSWORD', passphrase)

        result = runner.invoke(cli, ['check'])

        assert result.exit_code == 1
        assert 'Issues found:' in result.output
        assert 'pass_certificate.p12' in result.output

    def test_missing_passphrase(self, runner, clean_env, tmp_path):
        clean_env.chdir(tmp_path)

        result = runner.invoke(cli, ['check'])

        assert result.exit_code == 1
        assert 'PASS_CERT_PASSWORD' in result.output
