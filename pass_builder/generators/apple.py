# pass_builder/generators/apple.py

"""
Apple Wallet Pass Assembly

Loads a materialized pass template (``pass.json`` plus static files) into a
PassModel, overlays the barcode and image assets, and packages the result as
a signed .pkpass with the wallet library.

The PassModel is the in-memory pass before hashing and signing; the
ApplePackager turns it into a ``wallet.models.Pass`` and lets
``Pass.create`` write manifest, signature and archive.
"""

import hashlib
import json
import logging
import tempfile
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

from wallet.models import (
    Pass, Barcode, BarcodeFormat, Field, Generic, StoreCard, EventTicket,
    Coupon, BoardingPass, TransitType, PassHandler
)

from ..errors import MissingAssetError, PackagingError, PackagingInitError
from ..identity import SigningIdentity, TrustAnchor

logger = logging.getLogger(__name__)

PASS_DESCRIPTOR = 'pass.json'

# Written by the packager itself; never taken from a template
PACKAGER_FILES = {PASS_DESCRIPTOR, 'manifest.json', 'signature'}

REQUIRED_KEYS = (
    'passTypeIdentifier',
    'organizationName',
    'teamIdentifier',
    'serialNumber',
    'description',
)

PASS_STYLES = {
    'generic': Generic,
    'storeCard': StoreCard,
    'eventTicket': EventTicket,
    'coupon': Coupon,
    'boardingPass': BoardingPass,
}

FIELD_GROUPS = (
    'headerFields',
    'primaryFields',
    'secondaryFields',
    'auxiliaryFields',
    'backFields',
)

# pass.json key -> wallet.models.Pass attribute
OPTIONAL_PASS_KEYS = {
    'backgroundColor': 'backgroundColor',
    'foregroundColor': 'foregroundColor',
    'labelColor': 'labelColor',
    'logoText': 'logoText',
    'suppressStripShine': 'suppressStripShine',
    'locations': 'locations',
    'beacons': 'ibeacons',
    'relevantDate': 'relevantDate',
    'associatedStoreIdentifiers': 'associatedStoreIdentifiers',
    'appLaunchURL': 'appLaunchURL',
    'userInfo': 'userInfo',
    'expirationDate': 'exprirationDate',
    'voided': 'voided',
}

HANDLED_KEYS = (
    set(REQUIRED_KEYS) | set(PASS_STYLES) | set(OPTIONAL_PASS_KEYS)
    | {'formatVersion', 'barcode', 'barcodes', 'webServiceURL', 'authenticationToken'}
)

# logical asset -> pass file names (1x, 2x)
ASSET_VARIANTS = {
    'icon': ('icon.png', 'icon@2x.png'),
    'logo': ('logo.png', 'logo@2x.png'),
}


class TemplatePass(Pass):
    """
    wallet Pass that also renders the template keys wallet does not model
    (sharingProhibited, groupingIdentifier, semantics, nfc, ...).

    The barcode is written both as the legacy ``barcode`` and as the
    ``barcodes`` array.
    """

    def __init__(self, passInformation, passthrough: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(passInformation, **kwargs)
        self.passthrough = dict(passthrough or {})

    def json_dict(self):
        d = super().json_dict()
        for key, value in self.passthrough.items():
            d.setdefault(key, value)
        if self.barcode:
            d['barcodes'] = [self.barcode.json_dict()]
        return d


@dataclass(frozen=True)
class BarcodeOverlay:
    """The single barcode placed on the pass."""
    message: str
    format: str = BarcodeFormat.QR
    message_encoding: str = 'utf-8'
    alt_text: str = ''

    def to_wallet_barcode(self) -> Barcode:
        barcode = Barcode(message=self.message, format=self.format, altText=self.alt_text)
        barcode.messageEncoding = self.message_encoding
        return barcode


@dataclass(frozen=True)
class AssetOverlay:
    """Source images for the icon and logo."""
    icon_path: Path
    logo_path: Path

    def load_buffers(self) -> Dict[str, bytes]:
        """
        Read both images and bind each to its 1x and 2x file names.

        Raises:
            MissingAssetError: If an image is missing or empty
        """
        buffers = {}
        for asset, path in (('icon', self.icon_path), ('logo', self.logo_path)):
            data = read_asset(path, f'{asset}.png')
            for file_name in ASSET_VARIANTS[asset]:
                buffers[file_name] = data
        return buffers


@dataclass(frozen=True)
class PassOverlay:
    """Dynamic values merged into the static template at build time."""
    barcode: BarcodeOverlay
    assets: AssetOverlay


def read_asset(path, label: str) -> bytes:
    path = Path(path)
    try:
        data = path.read_bytes()
    except (FileNotFoundError, IsADirectoryError) as e:
        raise MissingAssetError(path, label) from e
    if not data:
        raise MissingAssetError(path, label, f"{label} at {path} is empty")
    return data


class PassModel:
    """
    In-memory wallet pass: template descriptor, files, barcode and the
    identity it will be signed with.
    """

    def __init__(
        self,
        descriptor: Dict[str, Any],
        identity: SigningIdentity,
        trust_anchor: TrustAnchor,
        files: Optional[Dict[str, bytes]] = None,
        template_dir=None,
    ):
        self.descriptor = descriptor
        self.identity = identity
        self.trust_anchor = trust_anchor
        self.files: Dict[str, bytes] = dict(files or {})
        self.template_dir = Path(template_dir) if template_dir else None
        self.style = detect_style(descriptor)
        self.barcode: Optional[BarcodeOverlay] = barcode_from_descriptor(descriptor)

    @classmethod
    def from_template(cls, template_dir, identity: SigningIdentity,
                      trust_anchor: TrustAnchor) -> 'PassModel':
        """
        Load a materialized template directory.

        Args:
            template_dir: Directory holding pass.json and static files
            identity: Signing identity the pass is scoped to
            trust_anchor: WWDR certificate bundled into the signature

        Returns:
            PassModel instance

        Raises:
            PackagingInitError: If the directory or its descriptor is invalid
        """
        template_dir = Path(template_dir)
        if not template_dir.is_dir():
            raise PackagingInitError(f"Pass template directory not found: {template_dir}")

        descriptor = load_descriptor(template_dir / PASS_DESCRIPTOR)

        files = {}
        for path in sorted(template_dir.rglob('*')):
            if not path.is_file():
                continue
            name = path.relative_to(template_dir).as_posix()
            if name in PACKAGER_FILES or path.name.startswith('.'):
                logger.debug(f"Skipping template file {name}")
                continue
            files[name] = path.read_bytes()

        model = cls(descriptor, identity, trust_anchor, files=files, template_dir=template_dir)
        # Fail now rather than at signing time
        model.to_wallet_pass()

        logger.info(
            f"Loaded {model.style} pass template from {template_dir} "
            f"({len(files)} static file(s))"
        )
        return model

    def set_barcode(self, barcode: BarcodeOverlay) -> None:
        """Set the pass barcode, replacing any previous one."""
        self.barcode = barcode

    def add_buffer(self, name: str, data: bytes) -> None:
        """Bind a file buffer; a buffer with the same name is replaced."""
        if not data:
            raise MissingAssetError(name, name, f"Asset {name} is empty")
        if name in PACKAGER_FILES:
            raise PackagingInitError(f"{name} is generated by the packager and cannot be overridden")
        if name in self.files:
            logger.debug(f"Replacing pass file {name}")
        self.files[name] = bytes(data)

    def to_wallet_pass(self) -> Pass:
        """
        Build the wallet.models.Pass for this model (without file buffers).

        Raises:
            PackagingInitError: If a field entry in the descriptor is invalid
        """
        descriptor = self.descriptor
        style_data = descriptor[self.style]
        if not isinstance(style_data, dict):
            raise PackagingInitError(f"'{self.style}' in {PASS_DESCRIPTOR} must be an object")

        if self.style == 'boardingPass':
            card_info = BoardingPass(style_data.get('transitType', TransitType.AIR))
        else:
            card_info = PASS_STYLES[self.style]()

        for group in FIELD_GROUPS:
            entries = style_data.get(group, [])
            if not isinstance(entries, list):
                raise PackagingInitError(f"'{self.style}.{group}' must be a list")
            for entry in entries:
                getattr(card_info, group).append(create_pass_field(entry, group))

        pass_obj = TemplatePass(
            card_info,
            passthrough={key: value for key, value in descriptor.items() if key not in HANDLED_KEYS},
            passTypeIdentifier=descriptor['passTypeIdentifier'],
            organizationName=descriptor['organizationName'],
            teamIdentifier=descriptor['teamIdentifier']
        )
        pass_obj.serialNumber = descriptor['serialNumber']
        pass_obj.description = descriptor['description']
        pass_obj.formatVersion = descriptor.get('formatVersion', 1)

        for key, attribute in OPTIONAL_PASS_KEYS.items():
            if key in descriptor:
                setattr(pass_obj, attribute, descriptor[key])

        if descriptor.get('webServiceURL'):
            pass_obj.webServiceURL = descriptor['webServiceURL']
            pass_obj.authenticationToken = descriptor.get('authenticationToken')

        if self.barcode is not None:
            pass_obj.barcode = self.barcode.to_wallet_barcode()

        return pass_obj

    def pass_json(self) -> bytes:
        """pass.json exactly as the packager writes it."""
        return json.dumps(self.to_wallet_pass(), default=PassHandler).encode('utf-8')

    def manifest(self) -> Dict[str, str]:
        """SHA-1 of every file the archive will contain, keyed by name."""
        manifest = {PASS_DESCRIPTOR: hashlib.sha1(self.pass_json()).hexdigest()}
        for name in sorted(self.files):
            manifest[name] = hashlib.sha1(self.files[name]).hexdigest()
        return manifest


def load_descriptor(path: Path) -> Dict[str, Any]:
    """Read and check pass.json."""
    if not path.is_file():
        raise PackagingInitError(f"Pass descriptor not found: {path}")

    try:
        descriptor = json.loads(path.read_text(encoding='utf-8'))
    except (ValueError, UnicodeDecodeError) as e:
        raise PackagingInitError(f"Invalid {PASS_DESCRIPTOR} at {path}: {e}") from e

    if not isinstance(descriptor, dict):
        raise PackagingInitError(f"{PASS_DESCRIPTOR} at {path} must contain a JSON object")

    missing = [key for key in REQUIRED_KEYS if not descriptor.get(key)]
    if missing:
        raise PackagingInitError(
            f"{PASS_DESCRIPTOR} at {path} is missing required keys: {', '.join(missing)}"
        )

    detect_style(descriptor)

    passthrough = sorted(set(descriptor) - HANDLED_KEYS)
    if passthrough:
        logger.debug(f"Passing {PASS_DESCRIPTOR} keys through unchanged: {', '.join(passthrough)}")

    return descriptor


def detect_style(descriptor: Dict[str, Any]) -> str:
    styles = [style for style in PASS_STYLES if style in descriptor]
    if len(styles) != 1:
        raise PackagingInitError(
            f"{PASS_DESCRIPTOR} must define exactly one pass style of "
            f"{', '.join(PASS_STYLES)}; found {len(styles)}"
        )
    return styles[0]


def barcode_from_descriptor(descriptor: Dict[str, Any]) -> Optional[BarcodeOverlay]:
    """Barcode declared by the template itself, if any."""
    barcodes = descriptor.get('barcodes')
    if barcodes is not None and not isinstance(barcodes, list):
        raise PackagingInitError(f"'barcodes' in {PASS_DESCRIPTOR} must be a list")

    barcode = descriptor.get('barcode')
    if not barcode and barcodes:
        barcode = barcodes[0]
    if barcode is None:
        return None
    if not isinstance(barcode, dict) or 'message' not in barcode:
        raise PackagingInitError(
            f"Barcode in {PASS_DESCRIPTOR} must be an object with a 'message': {barcode!r}"
        )
    return BarcodeOverlay(
        message=barcode['message'],
        format=barcode.get('format', BarcodeFormat.QR),
        message_encoding=barcode.get('messageEncoding', 'iso-8859-1'),
        alt_text=barcode.get('altText', ''),
    )


def create_pass_field(entry: Dict[str, Any], group: str) -> Field:
    """
    Create a wallet Field from a pass.json field entry.

    Extra keys (textAlignment, changeMessage, dateStyle, ...) are carried over
    as attributes and end up in pass.json unchanged.
    """
    if not isinstance(entry, dict) or 'key' not in entry or 'value' not in entry:
        raise PackagingInitError(f"Every entry of {group} needs a 'key' and a 'value': {entry!r}")

    pass_field = Field(entry['key'], entry['value'], entry.get('label', ''))
    for attribute, value in entry.items():
        if attribute not in ('key', 'value', 'label'):
            setattr(pass_field, attribute, value)
    return pass_field


class ApplePassAssembler:
    """Composes template, identity and overlay into a PassModel."""

    def assemble(self, template_dir, identity: SigningIdentity, trust_anchor: TrustAnchor,
                 overlay: PassOverlay) -> PassModel:
        """
        Assemble a pass ready for packaging.

        Args:
            template_dir: Materialized template directory
            identity: Signing identity
            trust_anchor: WWDR certificate
            overlay: Barcode and image assets to merge in

        Returns:
            PassModel instance

        Raises:
            PackagingInitError: If the template is invalid
            MissingAssetError: If the icon or logo is missing or empty
        """
        pass_model = PassModel.from_template(template_dir, identity, trust_anchor)

        pass_model.set_barcode(overlay.barcode)
        logger.info(f"Set {overlay.barcode.format} barcode: {overlay.barcode.message}")

        for name, data in overlay.assets.load_buffers().items():
            pass_model.add_buffer(name, data)
        logger.debug(f"Pass files: {sorted(pass_model.files)}")

        return pass_model


class ApplePackager:
    """
    Signs and archives a PassModel as a .pkpass.

    ``wallet.models.Pass.create`` signs with the openssl command line, which
    reads certificate and key from files; they are written to a private
    temporary directory that is removed as soon as signing finishes.
    """

    def __init__(self, key_password: str):
        """
        Args:
            key_password: Passphrase protecting the key file handed to openssl
        """
        if not key_password:
            raise PackagingError("A key password is required to hand the signing key to openssl")
        self.key_password = key_password

    def serialize(self, pass_model: PassModel) -> BytesIO:
        """
        Create the signed .pkpass archive.

        Args:
            pass_model: Assembled PassModel

        Returns:
            BytesIO containing the .pkpass file, positioned at the start
        """
        pass_obj = pass_model.to_wallet_pass()
        for name, data in pass_model.files.items():
            pass_obj.addFile(name, BytesIO(data))

        pass_buffer = BytesIO()
        with tempfile.TemporaryDirectory(prefix='pass-signing-') as certs_dir:
            certificate_path, key_path, wwdr_path = self._write_signing_material(
                pass_model, Path(certs_dir)
            )
            try:
                pass_obj.create(
                    str(certificate_path),
                    str(key_path),
                    str(wwdr_path),
                    self.key_password,
                    pass_buffer
                )
            except Exception as e:
                logger.error(f"Error signing pass: {_describe(e)}")
                raise PackagingError(f"Failed to sign pass: {_describe(e)}") from e

        pass_buffer.seek(0)
        logger.info(f"Packaged pass {pass_model.descriptor['serialNumber']} ({len(pass_buffer.getvalue())} bytes)")
        return pass_buffer

    def _write_signing_material(self, pass_model: PassModel, certs_dir: Path) -> Tuple[Path, Path, Path]:
        certificate_path = certs_dir / 'certificate.pem'
        key_path = certs_dir / 'key.pem'
        wwdr_path = certs_dir / 'wwdr.pem'

        certificate_path.write_bytes(pass_model.identity.certificate_pem)
        key_path.touch(mode=0o600)
        key_path.write_bytes(pass_model.identity.encrypted_private_key_pem(self.key_password))
        wwdr_path.write_bytes(pass_model.trust_anchor.pem)

        return certificate_path, key_path, wwdr_path


def _describe(error: Exception) -> str:
    # wallet raises Exception(stderr) with openssl's raw bytes
    detail = error.args[0] if error.args else error
    if isinstance(detail, bytes):
        return detail.decode('utf-8', errors='replace').strip()
    return str(detail)
