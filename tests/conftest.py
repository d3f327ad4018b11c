"""
Pytest configuration and shared fixtures for all tests.

Certificates, keys and PKCS#12 containers are generated on the fly with
cryptography; nothing real is checked in.
"""
import json
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from pass_builder.config import BuildConfig
from pass_builder.identity import SigningIdentity, TrustAnchor

PASSPHRASE = 'test-passphrase'

PNG_HEADER = b'\x89PNG\r\n\x1a\n'


def make_certificate(subject_name, key, issuer_name=None, issuer_key=None, ca=False):
    """Create a certificate for ``key``; self-signed when no issuer is given."""
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject_name)])
    issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, issuer_name or subject_name)])
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(issuer_key or key, hashes.SHA256())
    )


# =============================================================================
# KEY MATERIAL
# =============================================================================

@pytest.fixture(scope='session')
def passphrase():
    return PASSPHRASE


@pytest.fixture(scope='session')
def ca_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope='session')
def ca_certificate(ca_key):
    """Stand-in for the Apple WWDR intermediate."""
    return make_certificate('Test WWDR CA', ca_key, ca=True)


@pytest.fixture(scope='session')
def signer_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope='session')
def signer_certificate(signer_key, ca_key):
    """Stand-in for the Pass Type ID certificate."""
    return make_certificate(
        'Pass Type ID: pass.com.example.card',
        signer_key,
        issuer_name='Test WWDR CA',
        issuer_key=ca_key
    )


@pytest.fixture(scope='session')
def p12_bytes(signer_key, signer_certificate, ca_certificate):
    """A complete, passphrase-protected PKCS#12 container."""
    return pkcs12.serialize_key_and_certificates(
        b'pass certificate',
        signer_key,
        signer_certificate,
        [ca_certificate],
        serialization.BestAvailableEncryption(PASSPHRASE.encode('utf-8'))
    )


@pytest.fixture(scope='session')
def certs_only_p12(signer_certificate):
    """A container holding certificates but no private key."""
    return pkcs12.serialize_key_and_certificates(
        None,
        None,
        None,
        [signer_certificate],
        serialization.BestAvailableEncryption(PASSPHRASE.encode('utf-8'))
    )


@pytest.fixture(scope='session')
def key_only_p12(signer_key):
    """A container holding a private key but no certificate."""
    return pkcs12.serialize_key_and_certificates(
        b'orphan key',
        signer_key,
        None,
        None,
        serialization.BestAvailableEncryption(PASSPHRASE.encode('utf-8'))
    )


@pytest.fixture(scope='session')
def wwdr_pem(ca_certificate):
    return ca_certificate.public_bytes(serialization.Encoding.PEM)


@pytest.fixture
def identity(signer_key, signer_certificate):
    return SigningIdentity(
        certificate_pem=signer_certificate.public_bytes(serialization.Encoding.PEM),
        private_key_pem=signer_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ),
    )


@pytest.fixture
def trust_anchor(wwdr_pem):
    return TrustAnchor(pem=wwdr_pem)


# =============================================================================
# TEMPLATE AND ASSETS
# =============================================================================

@pytest.fixture
def pass_descriptor():
    """Minimal business card pass.json."""
    return {
        'formatVersion': 1,
        'passTypeIdentifier': 'pass.com.example.card',
        'serialNumber': 'card-0001',
        'teamIdentifier': 'ABCDE12345',
        'organizationName': 'Example Studio',
        'description': 'Business card',
        'logoText': 'Hiro',
        'backgroundColor': 'rgb(255, 255, 255)',
        'foregroundColor': 'rgb(0, 0, 0)',
        'generic': {
            'primaryFields': [
                {'key': 'name', 'label': 'NAME', 'value': 'Hiro'}
            ],
            'secondaryFields': [
                {'key': 'title', 'label': 'TITLE', 'value': 'Designer', 'textAlignment': 'PKTextAlignmentRight'}
            ],
            'backFields': [
                {'key': 'website', 'label': 'Website', 'value': 'https://minimalist-hiro-app.com/'}
            ]
        }
    }


@pytest.fixture
def template_dir(tmp_path, pass_descriptor):
    """A template directory with pass.json, a placeholder icon and a localization."""
    template = tmp_path / 'pass'
    template.mkdir()
    (template / 'pass.json').write_text(json.dumps(pass_descriptor), encoding='utf-8')
    (template / 'icon.png').write_bytes(PNG_HEADER + b'template-icon')
    (template / 'en.lproj').mkdir()
    (template / 'en.lproj' / 'pass.strings').write_bytes(b'"NAME" = "Name";\n')
    return template


@pytest.fixture
def icon_bytes():
    return PNG_HEADER + b'icon'


@pytest.fixture
def logo_bytes():
    return PNG_HEADER + b'logo'


@pytest.fixture
def assets_dir(tmp_path, icon_bytes, logo_bytes):
    assets = tmp_path / 'assets'
    assets.mkdir()
    (assets / 'icon.png').write_bytes(icon_bytes)
    (assets / 'logo.png').write_bytes(logo_bytes)
    return assets


@pytest.fixture
def project_root(tmp_path, template_dir, assets_dir, p12_bytes, wwdr_pem):
    """A project directory laid out the way the builder expects by default."""
    certs = tmp_path / 'certs'
    certs.mkdir()
    (certs / 'pass_certificate.p12').write_bytes(p12_bytes)
    (certs / 'AppleWWDRCA.pem').write_bytes(wwdr_pem)
    return tmp_path


@pytest.fixture
def build_config(project_root):
    return BuildConfig(passphrase=PASSPHRASE, root_dir=project_root)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every PASS_* variable so tests see only what they set."""
    for name in list(os.environ):
        if name.startswith('PASS_'):
            monkeypatch.delenv(name, raising=False)
    yield monkeypatch
    # load_dotenv writes straight to os.environ
    for name in list(os.environ):
        if name.startswith('PASS_'):
            os.environ.pop(name)
