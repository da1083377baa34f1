"""
Install Libraries

Install input resolution, installer document generation and agent image assembly.
"""

from .assembler import AssemblyResult, ImageAssembler
from .credentials import ConfigResolver
from .generator import InstallAssetGenerator, InstallInputs, RenderedAssets, write_assets
from .mirror_metadata import MirrorMetadataExtractor

__all__ = [
    'AssemblyResult',
    'ImageAssembler',
    'ConfigResolver',
    'InstallAssetGenerator',
    'InstallInputs',
    'RenderedAssets',
    'write_assets',
    'MirrorMetadataExtractor',
]
