"""
Operator Catalog Cache

Keeps the operator listing of a catalog image on disk for a day so that name
resolution does not render the catalog on every run.

Concurrent callers on the same cache file are not coordinated: two processes
finding an expired entry will both query the catalog, and the last rename
wins. Each write is atomic, so readers always see a complete file.
"""

import json
import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from ..core.constants import CatalogConstants, FileConstants
from ..core.exceptions import CatalogCacheError
from ..core.models import CacheEntry, ClusterConfig, OperatorRecord
from ..core.utils import atomic_write_json, sanitize_catalog_ref
from .query import CatalogQueryEngine, CatalogQueryRequest, CollectedCatalog, OPMCatalogQuery, QueryContext

logger = logging.getLogger(__name__)


def _strip_transport(image_ref: str) -> str:
    for prefix in CatalogConstants.TRANSPORT_PREFIXES:
        if image_ref.startswith(prefix):
            return image_ref[len(prefix):]
    return image_ref


def _last_path_name(image_ref: str) -> str:
    name = image_ref.split('/')[-1]
    return name.split(':')[0].split('@')[0]


def extract_operator_name_from_bundle(bundle_image: str) -> str:
    """
    Derive an operator name from a bundle image reference

    Args:
        bundle_image: Reference like ``registry.io/ns/foo-operator-bundle:v1``

    Returns:
        str: ``foo-operator``, or an empty string for references without a path
    """
    ref = _strip_transport(bundle_image)
    if len(ref.split('/')) < 2:
        return ""
    name = _last_path_name(ref)
    if name.endswith(CatalogConstants.BUNDLE_SUFFIX):
        name = name[:-len(CatalogConstants.BUNDLE_SUFFIX)]
    return name


def extract_catalog_name(catalog_image: str) -> str:
    return _last_path_name(_strip_transport(catalog_image)) or "unknown"


def _catalog_record(catalog_image: str) -> OperatorRecord:
    name = extract_catalog_name(catalog_image)
    return OperatorRecord(
        name=name + CatalogConstants.CATALOG_SUFFIX,
        display_name=f"{name} Catalog",
        default_channel=CatalogConstants.DEFAULT_CHANNEL,
        description=f"Catalog image: {catalog_image}",
    )


def convert_collected_catalog(collected: CollectedCatalog) -> List[OperatorRecord]:
    """
    Convert a query result into operator records.

    Package metadata is preferred. Without it, records are synthesized from
    bundle and catalog image references; with neither, a single placeholder
    record names the catalog itself.

    Args:
        collected: Result of a catalog query

    Returns:
        List[OperatorRecord]: Never empty
    """
    operators = [
        OperatorRecord(
            name=pkg['name'],
            display_name=pkg['name'],
            default_channel=pkg.get('defaultChannel', ''),
            description=pkg.get('description') or None,
        )
        for pkg in collected.packages
    ]
    if operators:
        return operators

    logger.debug("No package metadata in catalog, deriving operators from image references")
    synthesized: Dict[str, OperatorRecord] = {}
    for image in collected.images:
        if image.image_type == CatalogConstants.ImageType.OPERATOR_BUNDLE.value:
            name = extract_operator_name_from_bundle(image.origin)
            if name and name not in synthesized:
                synthesized[name] = OperatorRecord(
                    name=name,
                    display_name=name,
                    default_channel=CatalogConstants.DEFAULT_CHANNEL,
                    description=f"Operator bundle: {image.origin}",
                )
        elif image.image_type == CatalogConstants.ImageType.OPERATOR_CATALOG.value:
            record = _catalog_record(image.origin)
            synthesized.setdefault(record.name, record)
    if synthesized:
        return list(synthesized.values())

    logger.debug("No image references in catalog, using placeholder entry")
    return [_catalog_record(collected.catalog_image)]


class OperatorCatalogCache:
    """TTL-bounded on-disk cache of a catalog's operator listing"""

    def __init__(
        self,
        catalog_image: str,
        cache_dir: str,
        query_engine: Optional[CatalogQueryEngine] = None,
        auth_file: Optional[str] = None,
        skip_tls: bool = False,
        ttl_seconds: float = CatalogConstants.CACHE_TTL_SECONDS,
        query_timeout: float = CatalogConstants.QUERY_TIMEOUT_SECONDS,
    ):
        """
        Initialize the cache

        Args:
            catalog_image: Catalog whose listing is cached
            cache_dir: Directory holding cache files
            query_engine: Engine used on a miss (defaults to OPMCatalogQuery)
            auth_file: Registry credential file passed to the engine
            skip_tls: Skip TLS verification when querying
            ttl_seconds: Maximum age of a usable cache file
            query_timeout: Deadline of a single catalog query
        """
        self.catalog_image = catalog_image
        self.cache_dir = Path(cache_dir)
        self.query_engine = query_engine or OPMCatalogQuery()
        self.auth_file = auth_file
        self.skip_tls = skip_tls
        self.ttl_seconds = ttl_seconds
        self.query_timeout = query_timeout

    @property
    def cache_file(self) -> Path:
        return self.cache_dir / f"{sanitize_catalog_ref(self.catalog_image)}.json"

    def is_valid(self, now: Optional[float] = None) -> bool:
        """Return True when the cache file exists and is younger than the TTL"""
        try:
            mtime = self.cache_file.stat().st_mtime
        except OSError:
            return False
        current = time.time() if now is None else now
        return current - mtime < self.ttl_seconds

    def load(self) -> CacheEntry:
        """
        Read the cache file regardless of its age

        Raises:
            CatalogCacheError: If the file is missing or malformed
        """
        try:
            with open(self.cache_file, 'r') as f:
                data = json.load(f)
            return CacheEntry.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            raise CatalogCacheError(f"Failed to read catalog cache {self.cache_file}: {e}")

    def get(self, cancel_event: Optional[threading.Event] = None,
            force_refresh: bool = False) -> List[OperatorRecord]:
        """
        Return the operator listing, querying the catalog on a miss

        Args:
            cancel_event: Event that aborts an in-flight query when set
            force_refresh: Ignore a valid cache file

        Returns:
            List[OperatorRecord]: Operators of the catalog

        Raises:
            CatalogQueryError: If the catalog query fails, times out or is cancelled
            CatalogCacheError: If the refreshed listing cannot be persisted
        """
        if not force_refresh and self.is_valid():
            try:
                entry = self.load()
                logger.info(f"Using cached operator list for {self.catalog_image} "
                            f"({len(entry.operators)} operators)")
                return entry.operators
            except CatalogCacheError as e:
                logger.warning(f"{e}; refreshing")

        return self.refresh(cancel_event)

    def refresh(self, cancel_event: Optional[threading.Event] = None) -> List[OperatorRecord]:
        """Query the catalog and overwrite the cache file"""
        request = CatalogQueryRequest(
            catalog_image=self.catalog_image,
            auth_file=self.auth_file,
            skip_tls=self.skip_tls,
        )
        context = QueryContext(timeout=self.query_timeout, cancel_event=cancel_event)
        collected = self.query_engine.collect(request, context)
        operators = convert_collected_catalog(collected)

        entry = CacheEntry(
            catalog_image=self.catalog_image,
            updated_at=datetime.now(timezone.utc).isoformat(),
            operators=operators,
        )
        self.write(self.cache_file, entry)
        logger.info(f"Cached {len(operators)} operators for {self.catalog_image}")
        return operators

    @staticmethod
    def write(path: Path, entry: CacheEntry) -> None:
        try:
            atomic_write_json(path, entry.to_dict())
        except OSError as e:
            raise CatalogCacheError(f"Failed to write catalog cache {path}: {e}")

    def export(self, path: str, operators: List[OperatorRecord]) -> str:
        """
        Write an operator snapshot next to the cluster configuration

        Args:
            path: Destination file
            operators: Records to export

        Returns:
            str: Path written
        """
        entry = CacheEntry(
            catalog_image=self.catalog_image,
            updated_at=datetime.now(timezone.utc).isoformat(),
            operators=operators,
        )
        self.write(Path(path), entry)
        logger.info(f"Operator list exported to {path}")
        return str(path)


def default_catalog_image(config: ClusterConfig) -> str:
    """Catalog configured for the cluster, or the Red Hat index matching its release"""
    if config.save_image.operator_catalog:
        return config.save_image.operator_catalog
    return CatalogConstants.DEFAULT_CATALOG_TEMPLATE.format(version=config.major_minor_version)


def create_cluster_catalog_cache(config: ClusterConfig, query_engine: Optional[CatalogQueryEngine] = None,
                                 skip_tls: bool = False) -> OperatorCatalogCache:
    """
    Factory for the cache kept inside a cluster directory

    The cluster's raw pull secret, when present, is used to authenticate the
    catalog query.
    """
    cluster_dir = Path(config.cluster_dir)
    pull_secret = cluster_dir / FileConstants.PULL_SECRET_FILE
    return OperatorCatalogCache(
        catalog_image=default_catalog_image(config),
        cache_dir=str(cluster_dir / FileConstants.CATALOGS_DIR / FileConstants.CATALOG_CACHE_DIR),
        query_engine=query_engine,
        auth_file=str(pull_secret) if pull_secret.exists() else None,
        skip_tls=skip_tls,
    )
