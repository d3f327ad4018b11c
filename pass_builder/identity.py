# pass_builder/identity.py

"""
Signing Identity Extraction

Turns a PKCS#12 container (the Pass Type ID certificate exported from the
keychain) into the PEM certificate/key pair the pass signer needs, and loads
the Apple WWDR trust anchor.

The container is decoded twice:

1. Structurally, with pyasn1 and the RFC 7292 types, to enumerate the bags of
   every unencrypted safe in order and tell a malformed file apart from a
   wrong passphrase.
2. Cryptographically, with ``cryptography``'s PKCS#12 loader, which verifies
   the MAC and decrypts the password-encrypted safes.

Key and certificate are then picked by ordered lists of strategies; the first
strategy that returns something wins.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, TypeVar

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from pyasn1.codec.ber import decoder as ber_decoder
from pyasn1.error import PyAsn1Error
from pyasn1.type import univ
from pyasn1_modules import rfc7292

from .errors import (
    AuthenticationError, ConfigurationError, MalformedContainerError,
    MissingAssetError, MissingCertificateError, MissingKeyError
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

ID_DATA = univ.ObjectIdentifier('1.2.840.113549.1.7.1')
ID_ENCRYPTED_DATA = univ.ObjectIdentifier('1.2.840.113549.1.7.6')
ID_X509_CERTIFICATE = univ.ObjectIdentifier('1.2.840.113549.1.9.22.1')

WWDR_LABEL = 'Apple WWDR CA certificate (PEM)'
P12_LABEL = 'Pass Type ID certificate (.p12)'


@dataclass(frozen=True)
class SigningIdentity:
    """Signer certificate and private key, both PEM encoded."""
    certificate_pem: bytes
    private_key_pem: bytes = field(repr=False)

    def load_certificate(self) -> x509.Certificate:
        return x509.load_pem_x509_certificate(self.certificate_pem)

    def load_private_key(self):
        return serialization.load_pem_private_key(self.private_key_pem, password=None)

    def encrypted_private_key_pem(self, passphrase: str) -> bytes:
        """Return the key as an encrypted PKCS#8 PEM, for writing to disk."""
        return self.load_private_key().private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.BestAvailableEncryption(passphrase.encode('utf-8')),
        )


@dataclass(frozen=True)
class TrustAnchor:
    """Issuer certificate (PEM) the verifier chains the signer to."""
    pem: bytes
    path: Optional[str] = None

    def load_certificate(self) -> x509.Certificate:
        return x509.load_pem_x509_certificate(self.pem)


@dataclass(frozen=True)
class SafeBagEntry:
    """One bag found in an unencrypted safe."""
    bag_type: univ.ObjectIdentifier
    value: bytes


@dataclass
class ParsedContainer:
    """
    A PKCS#12 container after structural decoding and decryption.

    Attributes:
        bags: Bags of the unencrypted safes, in enumeration order
        encrypted_safes: Number of password-encrypted safes
        decrypted: cryptography's view of the whole container
        passphrase: Passphrase as bytes
    """
    bags: List[SafeBagEntry]
    encrypted_safes: int
    decrypted: pkcs12.PKCS12KeyAndCertificates
    passphrase: bytes

    def bags_of(self, bag_type: univ.ObjectIdentifier) -> List[SafeBagEntry]:
        return [bag for bag in self.bags if bag.bag_type == bag_type]


# =============================================================================
# Structural decoding
# =============================================================================

def _decode(substrate: bytes, spec):
    value, rest = ber_decoder.decode(substrate, asn1Spec=spec)
    if rest:
        raise MalformedContainerError(f"{len(rest)} trailing bytes after {spec.__class__.__name__}")
    return value


def _unwrap_data(content) -> bytes:
    """Return the OCTET STRING payload of a ``data`` ContentInfo."""
    return _decode(bytes(content), univ.OctetString()).asOctets()


def _collect_bags(safe_contents_der: bytes, bags: List[SafeBagEntry]) -> None:
    for bag in _decode(safe_contents_der, rfc7292.SafeContents()):
        bag_type = bag['bagId']
        value = bytes(bag['bagValue'])
        if bag_type == rfc7292.id_safeContentsBag:
            _collect_bags(value, bags)
        else:
            bags.append(SafeBagEntry(bag_type=bag_type, value=value))


def decode_container_structure(container: bytes):
    """
    Decode the PFX envelope and list the bags of its unencrypted safes.

    Returns:
        Tuple of (bags, number of encrypted safes)

    Raises:
        MalformedContainerError: If the bytes are not a password-integrity PFX
    """
    try:
        pfx = _decode(container, rfc7292.PFX())
        auth_safe = pfx['authSafe']
        if auth_safe['contentType'] != ID_DATA:
            raise MalformedContainerError(
                f"Unsupported PKCS#12 integrity mode: {auth_safe['contentType']}"
            )

        safes = _decode(_unwrap_data(auth_safe['content']), rfc7292.AuthenticatedSafe())

        bags: List[SafeBagEntry] = []
        encrypted_safes = 0
        for content_info in safes:
            content_type = content_info['contentType']
            if content_type == ID_DATA:
                _collect_bags(_unwrap_data(content_info['content']), bags)
            elif content_type == ID_ENCRYPTED_DATA:
                encrypted_safes += 1
            else:
                logger.warning(f"Skipping PKCS#12 safe of unsupported type {content_type}")
    except (PyAsn1Error, ValueError) as e:
        raise MalformedContainerError(f"Cannot decode PKCS#12 container: {e}") from e

    logger.debug(f"PKCS#12 container: {len(bags)} plain bag(s), {encrypted_safes} encrypted safe(s)")
    return bags, encrypted_safes


def parse_container(container: bytes, passphrase: str) -> ParsedContainer:
    """
    Decode and decrypt a PKCS#12 container.

    Raises:
        MalformedContainerError: If the structure cannot be decoded
        AuthenticationError: If the passphrase does not open the container
    """
    bags, encrypted_safes = decode_container_structure(container)
    password = passphrase.encode('utf-8')

    try:
        decrypted = pkcs12.load_pkcs12(container, password)
    except ValueError as e:
        raise AuthenticationError(
            "Could not decrypt the PKCS#12 container; check the passphrase"
        ) from e
    except UnsupportedAlgorithm as e:
        raise MalformedContainerError(f"Unsupported PKCS#12 algorithm: {e}") from e

    return ParsedContainer(
        bags=bags,
        encrypted_safes=encrypted_safes,
        decrypted=decrypted,
        passphrase=password,
    )


# =============================================================================
# Key and certificate strategies
# =============================================================================

def _shrouded_key_bag(container: ParsedContainer):
    bags = container.bags_of(rfc7292.id_pkcs8ShroudedKeyBag)
    if not bags:
        return None
    try:
        return serialization.load_der_private_key(bags[0].value, password=container.passphrase)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        # The decrypted-container strategy still sees this key.
        logger.debug(f"Shrouded key bag not decryptable directly: {e}")
        return None


def _plain_key_bag(container: ParsedContainer):
    bags = container.bags_of(rfc7292.id_keyBag)
    if not bags:
        return None
    try:
        return serialization.load_der_private_key(bags[0].value, password=None)
    except (ValueError, UnsupportedAlgorithm) as e:
        logger.debug(f"Plain key bag not loadable directly: {e}")
        return None


def _decrypted_key(container: ParsedContainer):
    return container.decrypted.key


def _plain_cert_bag(container: ParsedContainer) -> Optional[x509.Certificate]:
    for bag in container.bags_of(rfc7292.id_certBag):
        cert_bag = _decode(bag.value, rfc7292.CertBag())
        if cert_bag['certId'] != ID_X509_CERTIFICATE:
            continue
        der = _decode(bytes(cert_bag['certValue']), univ.OctetString()).asOctets()
        return x509.load_der_x509_certificate(der)
    return None


def _decrypted_certificate(container: ParsedContainer) -> Optional[x509.Certificate]:
    decrypted = container.decrypted
    if decrypted.cert is not None:
        return decrypted.cert.certificate
    for extra in decrypted.additional_certs:
        return extra.certificate
    return None


KEY_STRATEGIES = (_shrouded_key_bag, _plain_key_bag, _decrypted_key)
CERTIFICATE_STRATEGIES = (_plain_cert_bag, _decrypted_certificate)


def first_match(strategies: Sequence[Callable[[ParsedContainer], Optional[T]]],
                container: ParsedContainer) -> Optional[T]:
    """Run strategies in order and return the first non-None result."""
    for strategy in strategies:
        result = strategy(container)
        if result is not None:
            logger.debug(f"Selected {strategy.__name__.lstrip('_')}")
            return result
    return None


def extract_identity(container: bytes, passphrase: str) -> SigningIdentity:
    """
    Extract the signer certificate and private key from a PKCS#12 container.

    When the container holds several keys or certificates the first one in
    bag order is used.

    Args:
        container: Raw PKCS#12 bytes
        passphrase: Container passphrase

    Returns:
        SigningIdentity with PEM certificate and PKCS#8 PEM key

    Raises:
        ConfigurationError: If the passphrase is empty
        MalformedContainerError: If the container cannot be decoded
        AuthenticationError: If the passphrase is wrong
        MissingKeyError: If no private key bag is present
        MissingCertificateError: If no certificate bag is present
    """
    if not passphrase:
        raise ConfigurationError("A PKCS#12 passphrase is required")

    parsed = parse_container(container, passphrase)

    key = first_match(KEY_STRATEGIES, parsed)
    if key is None:
        raise MissingKeyError("No private key found in the PKCS#12 container")

    try:
        certificate = first_match(CERTIFICATE_STRATEGIES, parsed)
    except (PyAsn1Error, ValueError) as e:
        raise MalformedContainerError(f"Cannot decode certificate bag: {e}") from e
    if certificate is None:
        raise MissingCertificateError("No certificate found in the PKCS#12 container")

    logger.info(f"Extracted signing identity for {certificate.subject.rfc4514_string()}")

    return SigningIdentity(
        certificate_pem=certificate.public_bytes(serialization.Encoding.PEM),
        private_key_pem=key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ),
    )


# =============================================================================
# File loading
# =============================================================================

def read_file_or_raise(path, label: str) -> bytes:
    """Read a file, raising MissingAssetError with a readable label if absent."""
    try:
        return Path(path).read_bytes()
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
        raise MissingAssetError(path, label, f"Place the {label} at {path}") from e


def load_trust_anchor(path) -> TrustAnchor:
    """Load the WWDR certificate verbatim."""
    return TrustAnchor(pem=read_file_or_raise(path, WWDR_LABEL), path=str(path))


def read_container(path) -> bytes:
    """Load the raw PKCS#12 container."""
    return read_file_or_raise(path, P12_LABEL)
