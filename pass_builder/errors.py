# pass_builder/errors.py

"""
Pass Builder Errors

Every failure of a build is one of these. They propagate unhandled up to the
CLI, which logs them and exits with status 1.
"""

from typing import Optional


class PassBuildError(Exception):
    """Base exception for pass build errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(PassBuildError):
    """Raised when a required setting (e.g. the passphrase) is missing."""
    pass


class MissingAssetError(PassBuildError):
    """Raised when an expected input file is absent or empty."""

    def __init__(self, path, label: Optional[str] = None, message: Optional[str] = None):
        self.path = str(path)
        self.label = label or self.path
        super().__init__(message or f"{self.label} not found at {self.path}")


class MalformedContainerError(PassBuildError):
    """Raised when a PKCS#12 container cannot be decoded."""
    pass


class AuthenticationError(PassBuildError):
    """Raised when a PKCS#12 container cannot be decrypted with the passphrase."""
    pass


class MissingKeyError(PassBuildError):
    """Raised when a decoded container holds no private key bag."""
    pass


class MissingCertificateError(PassBuildError):
    """Raised when a decoded container holds no certificate bag."""
    pass


class PackagingInitError(PassBuildError):
    """Raised when a template directory cannot be loaded as a pass."""
    pass


class PackagingError(PassBuildError):
    """Raised when signing or archiving a pass fails."""
    pass
