"""
Airgap Builder Libraries

Core, catalog and install libraries plus the command-line application.
"""

from .catalog import ImageSetConfigGenerator, OperatorCatalogCache, OperatorNameResolver
from .install import ConfigResolver, ImageAssembler, InstallAssetGenerator, MirrorMetadataExtractor
from .main_app import AirgapBuilder, main

__all__ = [
    'ImageSetConfigGenerator',
    'OperatorCatalogCache',
    'OperatorNameResolver',
    'ConfigResolver',
    'ImageAssembler',
    'InstallAssetGenerator',
    'MirrorMetadataExtractor',
    'AirgapBuilder',
    'main',
]
