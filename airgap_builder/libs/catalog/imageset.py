"""
ImageSet Configuration Generator

Builds the mirror-set configuration consumed by the external mirroring tool:
the platform release, the operator packages (with their default channels when
they can be resolved) and any additional images.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.constants import FileConstants, MirrorConstants
from ..core.exceptions import CatalogCacheError, CatalogQueryError, OperatorResolutionError
from ..core.models import ClusterConfig, OperatorPackageSelection
from ..core.utils import atomic_write_text
from .cache import OperatorCatalogCache, create_cluster_catalog_cache
from .resolver import OperatorNameResolver

logger = logging.getLogger(__name__)


class ImageSetConfigGenerator:
    """Renders imageset-config.yaml for a cluster"""

    def __init__(self, config: ClusterConfig, catalog_cache: Optional[OperatorCatalogCache] = None):
        """
        Initialize the generator

        Args:
            config: Cluster configuration
            catalog_cache: Cache used to resolve operator channels
        """
        self.config = config
        self.catalog_cache = catalog_cache or create_cluster_catalog_cache(config)

    @property
    def output_path(self) -> Path:
        return Path(self.config.cluster_dir) / FileConstants.IMAGESET_CONFIG_FILE

    def has_existing_mirror_archives(self) -> bool:
        """Return True when a previous mirror run already produced archives"""
        images_dir = Path(self.config.cluster_dir) / FileConstants.IMAGES_DIR
        if not images_dir.is_dir():
            return False
        return any(p.is_file() for p in images_dir.glob(FileConstants.MIRROR_ARCHIVE_PATTERN))

    def build_selections(self, cancel_event: Optional[threading.Event] = None) -> List[OperatorPackageSelection]:
        """
        Resolve the configured operators to package selections.

        Operators that cannot be resolved, including when the catalog itself
        cannot be listed, are kept without a channel so the mirror tool falls
        back to the package default.

        Args:
            cancel_event: Event that aborts the catalog query

        Returns:
            List[OperatorPackageSelection]: One entry per configured operator
        """
        ops = self.config.save_image.ops
        if not ops:
            return []

        resolver: Optional[OperatorNameResolver] = None
        try:
            resolver = OperatorNameResolver(self.catalog_cache.get(cancel_event=cancel_event))
        except (CatalogQueryError, CatalogCacheError) as e:
            logger.warning(f"Could not list catalog {self.catalog_cache.catalog_image}: {e}")
            logger.warning("Operators will be mirrored without an explicit channel")

        selections = []
        for op_name in ops:
            if resolver is None:
                selections.append(OperatorPackageSelection(name=op_name))
                continue
            try:
                record = resolver.resolve(op_name)
            except OperatorResolutionError as e:
                logger.warning(f"{e}; using operator name without a channel")
                selections.append(OperatorPackageSelection(name=op_name))
                continue
            logger.info(f"Operator {record.name} default channel: {record.default_channel}")
            selections.append(OperatorPackageSelection(name=record.name, channel=record.default_channel or None))
        return selections

    def build_document(self, selections: List[OperatorPackageSelection]) -> Dict[str, Any]:
        version = self.config.openshift_version
        mirror: Dict[str, Any] = {
            'platform': {
                'channels': [{
                    'name': f"{MirrorConstants.PLATFORM_CHANNEL}-{self.config.major_minor_version}",
                    'type': MirrorConstants.PLATFORM_TYPE,
                    'minVersion': version,
                    'maxVersion': version,
                }],
                'graph': True,
            },
        }

        if self.config.save_image.include_operators:
            mirror['operators'] = [{
                'catalog': self.catalog_cache.catalog_image,
                'full': False,
                'packages': [selection.to_dict() for selection in selections],
            }]

        if self.config.save_image.additional_images:
            mirror['additionalImages'] = [{'name': image} for image in self.config.save_image.additional_images]

        return {
            'apiVersion': MirrorConstants.API_VERSION,
            'kind': MirrorConstants.KIND,
            'mirror': mirror,
        }

    def render(self, selections: List[OperatorPackageSelection]) -> str:
        header = "# oc-mirror ImageSetConfiguration\n"
        return header + yaml.safe_dump(self.build_document(selections), default_flow_style=False, sort_keys=False)

    def generate(self, cancel_event: Optional[threading.Event] = None) -> str:
        """
        Resolve operators and write imageset-config.yaml

        Returns:
            str: Path to the written file
        """
        selections = []
        if self.config.save_image.include_operators:
            selections = self.build_selections(cancel_event)
        atomic_write_text(self.output_path, self.render(selections))
        logger.info(f"ImageSet configuration written to {self.output_path}")
        return str(self.output_path)
