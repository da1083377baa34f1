"""
Airgap Builder

Prepares the assets of an offline OpenShift installation: registry
credentials, mirror-set configuration, installer documents and the agent
boot image.
"""

__version__ = "1.0.0"

from .libs import (
    AirgapBuilder,
    ConfigResolver,
    ImageAssembler,
    ImageSetConfigGenerator,
    InstallAssetGenerator,
    MirrorMetadataExtractor,
    OperatorCatalogCache,
    OperatorNameResolver,
    main,
)

__all__ = [
    'AirgapBuilder',
    'ConfigResolver',
    'ImageAssembler',
    'ImageSetConfigGenerator',
    'InstallAssetGenerator',
    'MirrorMetadataExtractor',
    'OperatorCatalogCache',
    'OperatorNameResolver',
    'main',
]
