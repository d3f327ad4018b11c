# pass_builder/cli.py

"""
Pass Builder CLI

Commands:
- build: build and sign the .pkpass
- check: report missing certificates, assets or template files
"""

import logging
import sys

import click

from .config import BuildConfig, validate_build_config, describe
from .log_config import configure_logging
from .services import BuildService

logger = logging.getLogger(__name__)


@click.group()
def cli():
    """Apple Wallet business card builder."""
    pass


@cli.command()
@click.option('--root', 'root_dir', type=click.Path(file_okay=False),
              help='Project directory (defaults to PASS_ROOT_DIR or the current directory).')
@click.option('--output', 'output_path', type=click.Path(dir_okay=False),
              help='Where to write the .pkpass.')
@click.option('--barcode-message', help='Payload of the QR code.')
@click.option('-v', '--verbose', is_flag=True, help='Enable debug logging.')
@click.option('--log-file', type=click.Path(dir_okay=False), help='Also log to this file.')
def build(root_dir, output_path, barcode_message, verbose, log_file):
    """Build the signed pass."""
    configure_logging(verbose=verbose, log_file=log_file)

    try:
        config = BuildConfig.from_env(
            root_dir=root_dir,
            output_path=output_path,
            barcode_message=barcode_message
        )
        logger.debug(f"Build configuration: {describe(config)}")
        output = BuildService(config).build()
    except Exception as e:
        logger.debug("Build failed", exc_info=True)
        click.echo(f"Failed to build pass: {e}", err=True)
        sys.exit(1)

    click.echo(str(output))


@cli.command()
@click.option('--root', 'root_dir', type=click.Path(file_okay=False),
              help='Project directory (defaults to PASS_ROOT_DIR or the current directory).')
def check(root_dir):
    """Check that every build input is in place."""
    configure_logging()

    try:
        config = BuildConfig.from_env(root_dir=root_dir)
    except Exception as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    status = validate_build_config(config)
    for key, value in describe(config).items():
        click.echo(f"{key}: {value}")

    if status['configured']:
        click.echo('Pass builder is fully configured.')
        return

    click.echo('Issues found:', err=True)
    for issue in status['issues']:
        click.echo(f"  - {issue}", err=True)
    sys.exit(1)


def main():
    cli()
