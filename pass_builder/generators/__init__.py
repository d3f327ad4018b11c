# pass_builder/generators/__init__.py

"""
Pass Generators

Assembly and packaging of Apple Wallet passes.
"""

from .apple import (
    ApplePassAssembler,
    ApplePackager,
    AssetOverlay,
    BarcodeOverlay,
    PassModel,
    PassOverlay,
)

__all__ = [
    'ApplePassAssembler',
    'ApplePackager',
    'AssetOverlay',
    'BarcodeOverlay',
    'PassModel',
    'PassOverlay',
]
