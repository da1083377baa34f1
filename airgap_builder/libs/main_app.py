"""
Main Application

Orchestrates the core, catalog and install libraries behind a command-line
interface.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Core libraries
from .core import ConfigManager, setup_logging
from .core.constants import FileConstants
from .core.exceptions import AirgapBuilderError
from .core.models import ClusterConfig
from .core.settings import get_project_root, is_debug_enabled

# Catalog libraries
from .catalog import ImageSetConfigGenerator, OperatorNameResolver, create_cluster_catalog_cache, group_operators_by_category
from .catalog.query import CatalogQueryEngine

# Install libraries
from .install import ImageAssembler

logger = logging.getLogger(__name__)


class AirgapBuilder:
    """Main application orchestrator for the airgap builder"""

    def __init__(
        self,
        project_root: Optional[str] = None,
        config_provider: Optional[ConfigManager] = None,
        query_engine: Optional[CatalogQueryEngine] = None,
        skip_tls: bool = False,
        debug: bool = False
    ):
        """
        Initialize the application with dependency injection

        Args:
            project_root: Directory holding one sub-directory per cluster
            config_provider: Configuration loader (defaults to ConfigManager)
            query_engine: Catalog query engine (defaults to OPMCatalogQuery)
            skip_tls: Skip TLS verification for catalog queries
            debug: Enable debug logging
        """
        self.project_root = Path(project_root) if project_root else get_project_root()
        self.config_manager = config_provider or ConfigManager()
        self.query_engine = query_engine
        self.skip_tls = skip_tls
        self.debug = debug

        setup_logging(debug)

    def cluster_dir(self, cluster_name: str) -> Path:
        return self.project_root / cluster_name

    def load_cluster(self, cluster_name: str) -> ClusterConfig:
        return self.config_manager.load_cluster(str(self.cluster_dir(cluster_name)))

    def generate_iso(self, cluster_name: str, force: bool = False) -> int:
        try:
            config = self.load_cluster(cluster_name)
            result = ImageAssembler(config).assemble(force=force)
        except AirgapBuilderError as e:
            logger.error(f"Agent image build failed: {e}")
            print(f"Error: {e}", file=sys.stderr)
            return 1

        if result.skipped:
            print(f"Agent image already exists: {result.image_path} (use --force to rebuild)")
        else:
            print(f"Agent image created: {result.image_path}")
        return 0

    def generate_configs(self, cluster_name: str) -> int:
        try:
            config = self.load_cluster(cluster_name)
            written = ImageAssembler(config).generate_configs()
        except AirgapBuilderError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        for path in written:
            print(f"Generated {path}")
        return 0

    def generate_imageset_config(self, cluster_name: str) -> int:
        try:
            config = self.load_cluster(cluster_name)
            cache = create_cluster_catalog_cache(config, self.query_engine, self.skip_tls)
            generator = ImageSetConfigGenerator(config, cache)
            if generator.has_existing_mirror_archives():
                print("Mirror archives already present in images directory; "
                      "regenerating the configuration does not affect them")
            path = generator.generate()
        except AirgapBuilderError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        print(f"ImageSet configuration written to {path}")
        return 0

    def list_operators(self, cluster_name: str, refresh: bool = False) -> int:
        """
        Print the operators of the cluster's catalog grouped by category

        Args:
            cluster_name: Cluster directory name
            refresh: Ignore a valid cache file

        Returns:
            int: Exit code
        """
        try:
            config = self.load_cluster(cluster_name)
            cache = create_cluster_catalog_cache(config, self.query_engine, self.skip_tls)
            operators = cache.get(force_refresh=refresh)
            cache.export(str(self.cluster_dir(cluster_name) / FileConstants.OPERATORS_SNAPSHOT_FILE), operators)
        except AirgapBuilderError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        print(f"Catalog: {cache.catalog_image}")
        print(f"Operators: {len(operators)}")
        for category, records in group_operators_by_category(operators).items():
            print(f"\n{category} ({len(records)}):")
            for op in records:
                print(f"  {op.name:<40} | {op.default_channel:<15} | {op.display_name}")
        return 0

    def operator_info(self, cluster_name: str, operator_name: str) -> int:
        try:
            config = self.load_cluster(cluster_name)
            cache = create_cluster_catalog_cache(config, self.query_engine, self.skip_tls)
            record = OperatorNameResolver(cache.get()).resolve(operator_name)
        except AirgapBuilderError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        print(f"Name:            {record.name}")
        print(f"Display name:    {record.display_name}")
        print(f"Default channel: {record.default_channel}")
        if record.version:
            print(f"Version:         {record.version}")
        if record.description:
            print(f"Description:     {record.description}")
        return 0

    def init_config(self, cluster_name: str) -> int:
        try:
            path = self.config_manager.generate_config_template(str(self.cluster_dir(cluster_name)), cluster_name)
        except AirgapBuilderError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        print(f"Configuration template generated: {path}")
        return 0


def create_airgap_builder(project_root: Optional[str] = None, skip_tls: bool = False,
                          debug: bool = False) -> AirgapBuilder:
    """
    Factory function to create AirgapBuilder with default dependencies

    Args:
        project_root: Directory holding cluster directories
        skip_tls: Skip TLS verification for catalog queries
        debug: Enable debug logging

    Returns:
        AirgapBuilder: Configured instance
    """
    return AirgapBuilder(project_root=project_root, skip_tls=skip_tls, debug=debug)


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the argument parser; shared options live in parent parsers"""

    # Common parser: arguments shared by ALL commands
    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    common_parser.add_argument('--project-root', help='Directory containing cluster directories')

    # Cluster parser: the positional cluster name
    cluster_parser = argparse.ArgumentParser(add_help=False)
    cluster_parser.add_argument('cluster', help='Cluster name (directory under the project root)')

    # Catalog parser: options of commands that query the operator catalog
    catalog_parser = argparse.ArgumentParser(add_help=False)
    catalog_parser.add_argument('--skip-tls', action='store_true', help='Skip TLS verification for catalog queries')

    parser = argparse.ArgumentParser(
        prog='airgap-builder',
        description='Airgap Builder - prepare offline cluster installation assets',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  airgap-builder init-config demo
  airgap-builder imageset-config demo
  airgap-builder generate-iso demo --force
  airgap-builder operator-info demo logging
        """
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    iso_parser = subparsers.add_parser(
        'generate-iso',
        parents=[common_parser, cluster_parser],
        help='Build the agent boot image',
    )
    iso_parser.add_argument('--force', action='store_true', help='Rebuild even if the image exists')

    subparsers.add_parser(
        'generate-configs',
        parents=[common_parser, cluster_parser],
        help='Render install-config.yaml and agent-config.yaml only',
    )
    subparsers.add_parser(
        'imageset-config',
        parents=[common_parser, cluster_parser, catalog_parser],
        help='Render imageset-config.yaml for the mirroring tool',
    )

    list_parser = subparsers.add_parser(
        'list-operators',
        parents=[common_parser, cluster_parser, catalog_parser],
        help='List operators of the cluster catalog',
    )
    list_parser.add_argument('--refresh', action='store_true', help='Ignore the catalog cache')

    info_parser = subparsers.add_parser(
        'operator-info',
        parents=[common_parser, cluster_parser, catalog_parser],
        help='Show a single operator',
    )
    info_parser.add_argument('operator', help='Operator name, alias or fragment')

    subparsers.add_parser(
        'init-config',
        parents=[common_parser, cluster_parser],
        help='Write a starter config.yaml',
    )

    return parser


def handle_generate_iso_command(args, app: AirgapBuilder) -> int:
    return app.generate_iso(args.cluster, force=args.force)


def handle_generate_configs_command(args, app: AirgapBuilder) -> int:
    return app.generate_configs(args.cluster)


def handle_imageset_config_command(args, app: AirgapBuilder) -> int:
    return app.generate_imageset_config(args.cluster)


def handle_list_operators_command(args, app: AirgapBuilder) -> int:
    return app.list_operators(args.cluster, refresh=args.refresh)


def handle_operator_info_command(args, app: AirgapBuilder) -> int:
    return app.operator_info(args.cluster, args.operator)


def handle_init_config_command(args, app: AirgapBuilder) -> int:
    return app.init_config(args.cluster)


# Command dispatcher mapping
COMMAND_HANDLERS = {
    'generate-iso': handle_generate_iso_command,
    'generate-configs': handle_generate_configs_command,
    'imageset-config': handle_imageset_config_command,
    'list-operators': handle_list_operators_command,
    'operator-info': handle_operator_info_command,
    'init-config': handle_init_config_command,
}


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point"""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    app = create_airgap_builder(
        project_root=args.project_root,
        skip_tls=getattr(args, 'skip_tls', False),
        debug=args.debug or is_debug_enabled(),
    )

    try:
        exit_code = COMMAND_HANDLERS[args.command](args, app)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
