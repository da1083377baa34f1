"""
Configuration Management

Handles loading, validating and materialising the per-cluster configuration
file of the airgap builder.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .constants import ClusterConstants, ErrorMessages, FileConstants
from .exceptions import ConfigurationError
from .models import ClusterConfig, HostEntry, NetworkConfig, ProxyConfig, SaveImageConfig
from .utils import parse_machine_network

logger = logging.getLogger(__name__)


HOST_SCHEMA = {
    'name': {'type': str, 'required': True},
    'ip': {'type': str, 'required': True},
    'mac': {'type': str, 'required': True},
}


class ConfigManager:
    """Manages cluster configuration loading and validation"""

    # Configuration schema - defines expected structure and types
    CONFIG_SCHEMA = {
        'cluster_info': {
            'type': dict,
            'required': True,
            'fields': {
                'name': {'type': str, 'required': True},
                'domain': {'type': str, 'required': True},
                'openshift_version': {'type': str, 'required': True},
                'arch': {
                    'type': str,
                    'required': False,
                    'choices': [a.value for a in ClusterConstants.Architecture],
                },
            }
        },
        'bastion': {
            'type': dict,
            'required': True,
            'fields': {
                'ip': {'type': str, 'required': True},
            }
        },
        'registry': {
            'type': dict,
            'required': True,
            'fields': {
                'ip': {'type': str, 'required': True},
                'registry_user': {'type': str, 'required': True},
                'password': {'type': str, 'required': False},
            }
        },
        'cluster': {
            'type': dict,
            'required': True,
            'fields': {
                'control_plane': {'type': list, 'required': True, 'items': HOST_SCHEMA},
                'worker': {'type': list, 'required': False, 'items': HOST_SCHEMA},
                'network': {
                    'type': dict,
                    'required': True,
                    'fields': {
                        'machine_network': {'type': str, 'required': True},
                        'cluster_network': {'type': str, 'required': False},
                        'service_network': {'type': str, 'required': False},
                    }
                },
            }
        },
        'download': {
            'type': dict,
            'required': False,
            'fields': {
                'local_path': {'type': str, 'required': False},
            }
        },
        'save_image': {
            'type': dict,
            'required': False,
            'fields': {
                'include_operators': {'type': bool, 'required': False},
                'ops': {'type': list, 'required': False},
                'additional_images': {'type': list, 'required': False},
                'operator_catalog': {'type': str, 'required': False},
            }
        },
        'proxy': {
            'type': dict,
            'required': False,
            'fields': {
                'http_proxy': {'type': str, 'required': False},
                'https_proxy': {'type': str, 'required': False},
                'no_proxy': {'type': str, 'required': False},
            }
        },
    }

    def __init__(self):
        """Initialize configuration manager"""
        self.config_data: Dict[str, Any] = {}
        self.config_file_path: Optional[str] = None

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file

        Args:
            config_path: Path to configuration file

        Returns:
            Dict containing configuration data

        Raises:
            ConfigurationError: If configuration file cannot be loaded or is invalid
        """
        config_file = Path(config_path)

        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        if not config_file.is_file():
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_file, 'r') as f:
                self.config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration from {config_path}: {e}")

        self.config_file_path = str(config_path)
        logger.info(f"Successfully loaded configuration from {config_path}")

        self._validate_config()
        return self.config_data

    def load_cluster(self, cluster_dir: str) -> ClusterConfig:
        """
        Load and materialise the configuration of a cluster directory

        Args:
            cluster_dir: Directory containing config.yaml

        Returns:
            ClusterConfig: Typed cluster configuration

        Raises:
            ConfigurationError: If the configuration is missing or invalid
        """
        self.load_config(str(Path(cluster_dir) / FileConstants.DEFAULT_CONFIG_FILE))
        return self.build_cluster_config(self.config_data, cluster_dir)

    def _validate_config(self) -> None:
        """
        Validate configuration structure and values

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not isinstance(self.config_data, dict):
            raise ConfigurationError("Configuration must be a dictionary")

        self._validate_against_schema(self.config_data, self.CONFIG_SCHEMA, "config")

        if not self.config_data['cluster']['control_plane']:
            raise ConfigurationError(ErrorMessages.NO_CONTROL_PLANE)

        parse_machine_network(self.config_data['cluster']['network']['machine_network'])

    def _validate_against_schema(self, data: Dict[str, Any], schema: Dict[str, Any], path: str = "") -> None:
        """
        Validate data against schema definition

        Args:
            data: Data to validate
            schema: Schema definition
            path: Current path for error reporting

        Raises:
            ConfigurationError: If data doesn't match schema
        """
        for key, field_schema in schema.items():
            current_path = f"{path}.{key}" if path else key

            if key in data:
                value = data[key]

                # Skip None values for optional fields
                if value is None and not field_schema.get('required', False):
                    continue

                expected_type = field_schema['type']
                if not isinstance(value, expected_type):
                    type_name = expected_type.__name__
                    raise ConfigurationError(f"{current_path} must be a {type_name}")

                if 'choices' in field_schema:
                    if value not in field_schema['choices']:
                        choices_str = ', '.join(f"'{c}'" for c in field_schema['choices'])
                        raise ConfigurationError(f"{current_path} must be one of: {choices_str}")

                if expected_type == dict and 'fields' in field_schema:
                    self._validate_against_schema(value, field_schema['fields'], current_path)

                if expected_type == list and 'items' in field_schema:
                    for index, item in enumerate(value):
                        item_path = f"{current_path}[{index}]"
                        if not isinstance(item, dict):
                            raise ConfigurationError(f"{item_path} must be a dict")
                        self._validate_against_schema(item, field_schema['items'], item_path)

            elif field_schema.get('required', False):
                raise ConfigurationError(f"Required field {current_path} is missing")

    @staticmethod
    def _build_hosts(entries: Optional[List[Dict[str, Any]]]) -> List[HostEntry]:
        return [HostEntry(name=e['name'], ip=e['ip'], mac=e['mac']) for e in entries or []]

    def build_cluster_config(self, data: Dict[str, Any], cluster_dir: str = "") -> ClusterConfig:
        """
        Convert validated configuration data into a ClusterConfig

        Args:
            data: Validated configuration dictionary
            cluster_dir: Directory the configuration belongs to

        Returns:
            ClusterConfig: Typed configuration
        """
        info = data['cluster_info']
        registry = data['registry']
        cluster = data['cluster']
        network = cluster['network']
        save_image = data.get('save_image') or {}
        proxy = data.get('proxy') or {}
        download = data.get('download') or {}

        return ClusterConfig(
            name=info['name'],
            domain=info['domain'],
            openshift_version=info['openshift_version'],
            arch=info.get('arch') or ClusterConstants.DEFAULT_ARCH,
            bastion_ip=data['bastion']['ip'],
            registry_ip=registry['ip'],
            registry_user=registry['registry_user'],
            registry_password=registry.get('password'),
            control_plane=self._build_hosts(cluster['control_plane']),
            workers=self._build_hosts(cluster.get('worker')),
            network=NetworkConfig(
                machine_network=network['machine_network'],
                cluster_network=network.get('cluster_network') or ClusterConstants.DEFAULT_CLUSTER_NETWORK,
                service_network=network.get('service_network') or ClusterConstants.DEFAULT_SERVICE_NETWORK,
            ),
            download_path=download.get('local_path') or "downloads",
            save_image=SaveImageConfig(
                include_operators=bool(save_image.get('include_operators', False)),
                ops=[str(op) for op in save_image.get('ops') or []],
                additional_images=[str(img) for img in save_image.get('additional_images') or []],
                operator_catalog=save_image.get('operator_catalog') or "",
            ),
            proxy=ProxyConfig(
                http_proxy=proxy.get('http_proxy') or "",
                https_proxy=proxy.get('https_proxy') or "",
                no_proxy=proxy.get('no_proxy') or "",
            ),
            cluster_dir=str(cluster_dir),
        )

    def get_value(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key

        Args:
            key: Configuration key (supports dot notation like 'cluster_info.name')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.config_data
        try:
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def get_config_template_content(self, cluster_name: str = "demo") -> str:
        """
        Render a starter configuration for a new cluster

        Args:
            cluster_name: Name written into cluster_info.name

        Returns:
            str: YAML document
        """
        template = {
            'cluster_info': {
                'name': cluster_name,
                'domain': "example.com",
                'openshift_version': "4.14.0",
                'arch': ClusterConstants.DEFAULT_ARCH,
            },
            'bastion': {'ip': "192.168.1.10"},
            'registry': {'ip': "192.168.1.11", 'registry_user': "admin"},
            'cluster': {
                'control_plane': [
                    {'name': f"master-{i}", 'ip': f"192.168.1.2{i}", 'mac': f"52:54:00:00:00:2{i}"}
                    for i in range(3)
                ],
                'worker': [
                    {'name': f"worker-{i}", 'ip': f"192.168.1.3{i}", 'mac': f"52:54:00:00:00:3{i}"}
                    for i in range(2)
                ],
                'network': {
                    'machine_network': "192.168.1.0/24",
                    'cluster_network': ClusterConstants.DEFAULT_CLUSTER_NETWORK,
                    'service_network': ClusterConstants.DEFAULT_SERVICE_NETWORK,
                },
            },
            'download': {'local_path': "downloads"},
            'save_image': {
                'include_operators': False,
                'ops': [],
                'additional_images': [],
            },
        }
        header = "# Cluster configuration for airgap-builder\n"
        return header + yaml.safe_dump(template, default_flow_style=False, sort_keys=False)

    def generate_config_template(self, cluster_dir: str, cluster_name: Optional[str] = None) -> str:
        """
        Write a starter config.yaml into a cluster directory

        Args:
            cluster_dir: Target cluster directory, created when missing
            cluster_name: Cluster name, defaults to the directory name

        Returns:
            str: Path to generated template file

        Raises:
            ConfigurationError: If the file exists or cannot be written
        """
        output_path = Path(cluster_dir)
        config_file = output_path / FileConstants.DEFAULT_CONFIG_FILE
        if config_file.exists():
            raise ConfigurationError(f"Configuration file already exists: {config_file}")

        try:
            output_path.mkdir(parents=True, exist_ok=True)
            config_file.write_text(self.get_config_template_content(cluster_name or output_path.name))
        except OSError as e:
            raise ConfigurationError(f"Failed to generate configuration template: {e}")

        logger.info(f"Configuration template generated: {config_file}")
        return str(config_file)
