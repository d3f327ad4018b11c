# pass_builder/__init__.py

"""
Pass Builder

Builds a signed Apple Wallet business card (.pkpass) from a pass template,
a Pass Type ID certificate (.p12), the Apple WWDR certificate and two image
assets.
"""

from .config import BuildConfig, validate_build_config
from .errors import (
    PassBuildError, ConfigurationError, MissingAssetError, MalformedContainerError,
    AuthenticationError, MissingKeyError, MissingCertificateError,
    PackagingInitError, PackagingError
)
from .identity import SigningIdentity, TrustAnchor, extract_identity

__version__ = '1.0.0'

__all__ = [
    'BuildConfig',
    'validate_build_config',
    'SigningIdentity',
    'TrustAnchor',
    'extract_identity',
    'PassBuildError',
    'ConfigurationError',
    'MissingAssetError',
    'MalformedContainerError',
    'AuthenticationError',
    'MissingKeyError',
    'MissingCertificateError',
    'PackagingInitError',
    'PackagingError',
]
