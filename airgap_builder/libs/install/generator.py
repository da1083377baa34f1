"""
Install Asset Generator

Renders install-config.yaml and agent-config.yaml from a cluster
configuration and the resolved install inputs. Rendering has no side
effects and the same inputs always produce byte-identical documents.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.constants import ClusterConstants, ErrorMessages, FileConstants
from ..core.exceptions import ConfigurationError
from ..core.models import ClusterConfig, HostAssignment
from ..core.utils import (
    atomic_write_text,
    extract_gateway,
    extract_network_base,
    extract_prefix_length,
    indent_block,
)

logger = logging.getLogger(__name__)

YAML_LINE_WIDTH = 4096
DEFAULT_ROUTE = "0.0.0.0/0"
MAIN_ROUTE_TABLE = 254


class InstallConfigDumper(yaml.SafeDumper):
    """SafeDumper that indents block sequences under their parent key"""

    def increase_indent(self, flow=False, indentless=False):
        return super().increase_indent(flow, False)


@dataclass
class InstallInputs:
    """Everything the generator needs besides the cluster configuration"""
    config: ClusterConfig
    pull_secret: str
    ssh_key: Optional[str] = None
    trust_bundle: Optional[str] = None
    mirror_sources: Optional[str] = None


@dataclass
class RenderedAssets:
    install_config: str
    agent_config: str


def architecture_short_name(arch: str) -> str:
    """Map a machine architecture to the name install-config expects"""
    try:
        return ClusterConstants.Architecture(arch).short_name
    except ValueError:
        raise ConfigurationError(f"Unsupported architecture: {arch}")


def compact_pull_secret(pull_secret: str) -> str:
    """Collapse a JSON pull secret onto one line, leaving other text untouched"""
    try:
        return json.dumps(json.loads(pull_secret), separators=(',', ':'))
    except json.JSONDecodeError:
        return pull_secret.strip()


def build_host_assignments(config: ClusterConfig) -> List[HostAssignment]:
    """Control-plane hosts first, then workers, each in configuration order"""
    hosts = [
        HostAssignment(hostname=h.name, role=ClusterConstants.HostRole.MASTER.value,
                       mac_address=h.mac, ip_address=h.ip)
        for h in config.control_plane
    ]
    hosts.extend(
        HostAssignment(hostname=h.name, role=ClusterConstants.HostRole.WORKER.value,
                       mac_address=h.mac, ip_address=h.ip)
        for h in config.workers
    )
    return hosts


class InstallAssetGenerator:
    """Renders the installer input documents"""

    def _dump(self, data: Dict[str, Any]) -> str:
        return yaml.dump(
            data,
            Dumper=InstallConfigDumper,
            default_flow_style=False,
            sort_keys=False,
            width=YAML_LINE_WIDTH,
        )

    def build_install_config(self, inputs: InstallInputs) -> Dict[str, Any]:
        """
        Build the structured part of install-config

        The trust bundle and the image content sources are appended as text
        blocks by render_install_config and are not part of this mapping.

        Args:
            inputs: Resolved install inputs

        Returns:
            Dict: install-config fields in document order
        """
        config = inputs.config
        arch = architecture_short_name(config.arch)
        machine_cidr = f"{extract_network_base(config.network.machine_network)}/" \
                       f"{extract_prefix_length(config.network.machine_network)}"

        document: Dict[str, Any] = {
            'apiVersion': 'v1',
            'baseDomain': config.domain,
            'compute': [{
                'architecture': arch,
                'hyperthreading': 'Enabled',
                'name': ClusterConstants.HostRole.WORKER.value,
                'replicas': len(config.workers),
            }],
            'controlPlane': {
                'architecture': arch,
                'hyperthreading': 'Enabled',
                'name': ClusterConstants.HostRole.MASTER.value,
                'replicas': len(config.control_plane),
            },
            'metadata': {'name': config.name},
            'networking': {
                'clusterNetwork': [{
                    'cidr': config.network.cluster_network,
                    'hostPrefix': ClusterConstants.DEFAULT_HOST_PREFIX,
                }],
                'machineNetwork': [{'cidr': machine_cidr}],
                'networkType': ClusterConstants.DEFAULT_NETWORK_TYPE,
                'serviceNetwork': [config.network.service_network],
            },
            'platform': {'none': {}},
        }

        if config.proxy.enabled:
            proxy: Dict[str, str] = {}
            if config.proxy.http_proxy:
                proxy['httpProxy'] = config.proxy.http_proxy
            if config.proxy.https_proxy:
                proxy['httpsProxy'] = config.proxy.https_proxy
            if config.proxy.no_proxy:
                proxy['noProxy'] = config.proxy.no_proxy
            document['proxy'] = proxy

        document['pullSecret'] = compact_pull_secret(inputs.pull_secret)
        document['sshKey'] = inputs.ssh_key or ''
        return document

    def render_install_config(self, inputs: InstallInputs) -> str:
        parts = [self._dump(self.build_install_config(inputs)).rstrip('\n')]

        if inputs.trust_bundle and inputs.trust_bundle.strip():
            parts.append("additionalTrustBundle: |")
            parts.append(indent_block(inputs.trust_bundle.strip('\n'), 2))

        if inputs.mirror_sources and inputs.mirror_sources.strip():
            parts.append("imageContentSources:")
            parts.append(indent_block(inputs.mirror_sources.strip('\n'), 2))

        return "\n".join(parts) + "\n"

    def build_agent_config(self, config: ClusterConfig, dns_server: Optional[str] = None) -> Dict[str, Any]:
        """
        Build the agent-config mapping

        Args:
            config: Cluster configuration
            dns_server: Name server for every host, defaults to the registry address

        Returns:
            Dict: agent-config fields in document order

        Raises:
            ConfigurationError: If there is no control-plane host
        """
        if not config.control_plane:
            raise ConfigurationError(ErrorMessages.NO_CONTROL_PLANE)
        hosts = build_host_assignments(config)

        prefix_length = extract_prefix_length(config.network.machine_network)
        gateway = extract_gateway(config.network.machine_network)
        server = dns_server or config.registry_ip

        return {
            'apiVersion': 'v1alpha1',
            'kind': 'AgentConfig',
            'metadata': {'name': config.name},
            'rendezvousIP': config.control_plane[0].ip,
            'hosts': [self._host_entry(host, prefix_length, gateway, server) for host in hosts],
        }

    @staticmethod
    def _host_entry(host: HostAssignment, prefix_length: int, gateway: str, dns_server: str) -> Dict[str, Any]:
        return {
            'hostname': host.hostname,
            'role': host.role,
            'interfaces': [{'name': host.interface_name, 'macAddress': host.mac_address}],
            'networkConfig': {
                'interfaces': [{
                    'name': host.interface_name,
                    'type': 'ethernet',
                    'state': 'up',
                    'mac-address': host.mac_address,
                    'ipv4': {
                        'enabled': True,
                        'address': [{'ip': host.ip_address, 'prefix-length': prefix_length}],
                        'dhcp': False,
                    },
                }],
                'dns-resolver': {'config': {'server': [dns_server]}},
                'routes': {'config': [{
                    'destination': DEFAULT_ROUTE,
                    'next-hop-address': gateway,
                    'next-hop-interface': host.interface_name,
                    'table-id': MAIN_ROUTE_TABLE,
                }]},
            },
        }

    def render_agent_config(self, config: ClusterConfig) -> str:
        return self._dump(self.build_agent_config(config))

    def render(self, inputs: InstallInputs) -> RenderedAssets:
        """
        Render both installer documents

        Args:
            inputs: Cluster configuration and resolved install inputs

        Returns:
            RenderedAssets: install-config and agent-config text
        """
        return RenderedAssets(
            install_config=self.render_install_config(inputs),
            agent_config=self.render_agent_config(inputs.config),
        )


def write_assets(assets: RenderedAssets, output_dir: str) -> List[Path]:
    """
    Persist rendered documents with temp-then-rename

    Args:
        assets: Rendered documents
        output_dir: Destination directory

    Returns:
        List[Path]: install-config and agent-config paths
    """
    directory = Path(output_dir)
    written = [
        atomic_write_text(directory / FileConstants.INSTALL_CONFIG_FILE, assets.install_config),
        atomic_write_text(directory / FileConstants.AGENT_CONFIG_FILE, assets.agent_config),
    ]
    for path in written:
        logger.info(f"Generated {path}")
    return written
