# pass_builder/services/build_service.py

"""
Pass Build Service

Runs one build end to end: load the certificates, extract the signing
identity, materialize the template in a scratch workspace, assemble the pass
with its barcode and images, sign it and write the .pkpass.

Every step stops the build on failure; the scratch workspace is removed in
all cases.
"""

import logging
from pathlib import Path
from typing import Optional

from ..config import BuildConfig
from ..generators import (
    ApplePassAssembler, ApplePackager, AssetOverlay, BarcodeOverlay, PassOverlay
)
from ..identity import extract_identity, load_trust_anchor, read_container
from ..workspace import copy_template, scratch_workspace, write_atomically

logger = logging.getLogger(__name__)


class BuildService:
    """
    Orchestrates a single pass build.

    The assembler and packager can be swapped out, mostly for tests.
    """

    def __init__(self, config: BuildConfig, assembler: Optional[ApplePassAssembler] = None,
                 packager: Optional[ApplePackager] = None):
        self.config = config
        self.assembler = assembler or ApplePassAssembler()
        self.packager = packager or ApplePackager(config.passphrase)

    def build_overlay(self) -> PassOverlay:
        return PassOverlay(
            barcode=BarcodeOverlay(
                message=self.config.barcode_message,
                format=self.config.barcode_format,
                message_encoding='utf-8',
            ),
            assets=AssetOverlay(
                icon_path=self.config.icon_path,
                logo_path=self.config.logo_path,
            ),
        )

    def build(self) -> Path:
        """
        Build the pass and write it to the configured output path.

        Returns:
            Path of the written .pkpass

        Raises:
            PassBuildError: Any failure of an individual step
            OSError: Filesystem failures outside the known inputs
        """
        config = self.config
        config.output_path.parent.mkdir(parents=True, exist_ok=True)

        with scratch_workspace(config.build_dir):
            trust_anchor = load_trust_anchor(config.wwdr_path)
            container = read_container(config.p12_path)
            logger.debug(f"Loaded certificates from {config.certs_dir}")

            identity = extract_identity(container, config.passphrase)

            model_dir = copy_template(config.template_dir, config.model_dir)

            pass_model = self.assembler.assemble(
                model_dir, identity, trust_anchor, self.build_overlay()
            )

            pass_stream = self.packager.serialize(pass_model)
            output_path = write_atomically(pass_stream, config.output_path)

        logger.info(f"✓ Pass generated at {output_path}")
        return output_path


def build_pass(config: Optional[BuildConfig] = None) -> Path:
    """
    Build a pass from the environment configuration.

    Args:
        config: Explicit configuration; read from the environment when omitted

    Returns:
        Path of the written .pkpass
    """
    if config is None:
        config = BuildConfig.from_env()
    return BuildService(config).build()
