# pass_builder/config.py

"""
Build Configuration

Settings are read once from the environment (a ``.env`` file in the working
directory is loaded first, without overriding real variables) and passed
explicitly into every component.
"""

import os
from pathlib import Path
from typing import Dict, Any, Optional

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigurationError
from .identity import P12_LABEL, WWDR_LABEL

PASSPHRASE_ENV = 'PASS_CERT_PASSWORD'

DEFAULT_MODEL_NAME = 'business-card.pass'
DEFAULT_OUTPUT_NAME = 'hiro_business_card.pkpass'
DEFAULT_BARCODE_MESSAGE = 'https://minimalist-hiro-app.com/'
DEFAULT_BARCODE_FORMAT = 'PKBarcodeFormatQR'


def get_env_variable(var_name, default=None):
    return os.getenv(var_name, default)


def require_env(var_name: str) -> str:
    """Return a non-empty environment variable or raise ConfigurationError."""
    value = os.getenv(var_name)
    if not value:
        raise ConfigurationError(f"Environment variable {var_name} is not set.")
    return value


class BuildConfig:
    """Resolved settings for one pass build."""

    def __init__(
        self,
        passphrase: str,
        root_dir,
        template_dir=None,
        certs_dir=None,
        p12_path=None,
        wwdr_path=None,
        assets_dir=None,
        build_dir=None,
        model_name: str = DEFAULT_MODEL_NAME,
        output_path=None,
        barcode_message: str = DEFAULT_BARCODE_MESSAGE,
        barcode_format: str = DEFAULT_BARCODE_FORMAT,
    ):
        if not passphrase:
            raise ConfigurationError(f"Environment variable {PASSPHRASE_ENV} is not set.")

        self.passphrase = passphrase
        self.root_dir = Path(root_dir).resolve()
        self.template_dir = Path(template_dir) if template_dir else self.root_dir / 'pass'
        self.certs_dir = Path(certs_dir) if certs_dir else self.root_dir / 'certs'
        self.p12_path = Path(p12_path) if p12_path else self.certs_dir / 'pass_certificate.p12'
        self.wwdr_path = Path(wwdr_path) if wwdr_path else self.certs_dir / 'AppleWWDRCA.pem'
        self.assets_dir = Path(assets_dir) if assets_dir else self.root_dir / 'assets'
        self.build_dir = Path(build_dir) if build_dir else self.root_dir / '.pass-build'
        self.model_name = model_name
        self.output_path = (
            Path(output_path) if output_path
            else self.root_dir / 'output' / DEFAULT_OUTPUT_NAME
        )
        self.barcode_message = barcode_message
        self.barcode_format = barcode_format

        self.check_build_dir()

    def check_build_dir(self) -> None:
        """
        Refuse a scratch directory whose removal would take project inputs or
        the output with it.

        Raises:
            ConfigurationError: If build_dir equals or contains a protected directory
        """
        build_dir = self.build_dir.resolve()
        protected = {
            'root directory': self.root_dir,
            'template directory': self.template_dir,
            'certificates directory': self.certs_dir,
            'assets directory': self.assets_dir,
            'output directory': self.output_path.parent,
        }
        for label, path in protected.items():
            path = path.resolve()
            if path == build_dir or build_dir in path.parents:
                raise ConfigurationError(
                    f"Build directory {build_dir} would delete the {label} {path}; "
                    f"point PASS_BUILD_DIR at a dedicated scratch directory."
                )

    @property
    def model_dir(self) -> Path:
        return self.build_dir / self.model_name

    @property
    def icon_path(self) -> Path:
        return self.assets_dir / 'icon.png'

    @property
    def logo_path(self) -> Path:
        return self.assets_dir / 'logo.png'

    @classmethod
    def from_env(cls, root_dir=None, **overrides) -> 'BuildConfig':
        """
        Build a configuration from environment variables.

        Args:
            root_dir: Base directory for the relative defaults. Falls back to
                PASS_ROOT_DIR, then the current directory.
            **overrides: Explicit values that win over the environment
                (``None`` values are ignored).

        Returns:
            BuildConfig instance

        Raises:
            ConfigurationError: If PASS_CERT_PASSWORD is unset or empty
        """
        load_dotenv(find_dotenv(usecwd=True), override=False)

        settings = {
            'passphrase': require_env(PASSPHRASE_ENV),
            'root_dir': root_dir or get_env_variable('PASS_ROOT_DIR', os.getcwd()),
            'template_dir': get_env_variable('PASS_TEMPLATE_DIR'),
            'certs_dir': get_env_variable('PASS_CERTS_DIR'),
            'p12_path': get_env_variable('PASS_P12_PATH'),
            'wwdr_path': get_env_variable('PASS_WWDR_PATH'),
            'assets_dir': get_env_variable('PASS_ASSETS_DIR'),
            'build_dir': get_env_variable('PASS_BUILD_DIR'),
            'model_name': get_env_variable('PASS_MODEL_NAME', DEFAULT_MODEL_NAME),
            'output_path': get_env_variable('PASS_OUTPUT_PATH'),
            'barcode_message': get_env_variable('PASS_BARCODE_MESSAGE', DEFAULT_BARCODE_MESSAGE),
            'barcode_format': get_env_variable('PASS_BARCODE_FORMAT', DEFAULT_BARCODE_FORMAT),
        }
        settings.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**settings)

    def __repr__(self):
        return (
            f"BuildConfig(root_dir={str(self.root_dir)!r}, "
            f"output_path={str(self.output_path)!r}, passphrase='***')"
        )


def validate_build_config(config: BuildConfig) -> Dict[str, Any]:
    """
    Check that every input the build reads is in place.

    Returns:
        dict with 'configured' boolean and 'issues' list
    """
    issues = []

    for label, path in [
        (WWDR_LABEL, config.wwdr_path),
        (P12_LABEL, config.p12_path),
        ('icon.png', config.icon_path),
        ('logo.png', config.logo_path),
    ]:
        if not path.is_file():
            issues.append(f"{label} not found at {path}")

    if not config.template_dir.is_dir():
        issues.append(f"Template directory not found: {config.template_dir}")
    elif not (config.template_dir / 'pass.json').is_file():
        issues.append(f"Pass descriptor not found: {config.template_dir / 'pass.json'}")

    return {
        'configured': len(issues) == 0,
        'issues': issues
    }


def describe(config: Optional[BuildConfig]) -> Dict[str, str]:
    """Printable summary of a configuration, without the passphrase."""
    if config is None:
        return {}
    return {
        'template_dir': str(config.template_dir),
        'p12_path': str(config.p12_path),
        'wwdr_path': str(config.wwdr_path),
        'assets_dir': str(config.assets_dir),
        'build_dir': str(config.build_dir),
        'output_path': str(config.output_path),
        'barcode_message': config.barcode_message,
    }
