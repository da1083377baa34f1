"""
Catalog Libraries

Operator catalog querying, caching, name resolution and mirror-set generation.
"""

from .cache import OperatorCatalogCache, convert_collected_catalog, create_cluster_catalog_cache
from .imageset import ImageSetConfigGenerator
from .query import CatalogQueryEngine, CatalogQueryRequest, OPMCatalogQuery, QueryContext
from .resolver import OperatorNameResolver, group_operators_by_category

__all__ = [
    'OperatorCatalogCache',
    'convert_collected_catalog',
    'create_cluster_catalog_cache',
    'ImageSetConfigGenerator',
    'CatalogQueryEngine',
    'CatalogQueryRequest',
    'OPMCatalogQuery',
    'QueryContext',
    'OperatorNameResolver',
    'group_operators_by_category',
]
