"""
Data Models Module

Typed data structures shared by the install pipeline and the operator
catalog tooling.
"""

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .constants import ClusterConstants, ErrorMessages
from .exceptions import CredentialFormatError
from .utils import extract_major_minor_version


@dataclass
class HostEntry:
    """A node declared in the cluster configuration"""
    name: str
    ip: str
    mac: str


@dataclass
class NetworkConfig:
    machine_network: str
    cluster_network: str = ClusterConstants.DEFAULT_CLUSTER_NETWORK
    service_network: str = ClusterConstants.DEFAULT_SERVICE_NETWORK


@dataclass
class ProxyConfig:
    http_proxy: str = ""
    https_proxy: str = ""
    no_proxy: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.http_proxy or self.https_proxy)


@dataclass
class SaveImageConfig:
    """Mirror-set selection: platform release, operators and extra images"""
    include_operators: bool = False
    ops: List[str] = field(default_factory=list)
    additional_images: List[str] = field(default_factory=list)
    operator_catalog: str = ""


@dataclass
class ClusterConfig:
    """
    Declarative configuration of a single cluster.

    Populated by ConfigManager from ``<cluster>/config.yaml``; the cluster
    directory itself is carried along so that every component can derive its
    paths from one object.
    """
    name: str
    domain: str
    openshift_version: str
    bastion_ip: str
    registry_ip: str
    registry_user: str
    control_plane: List[HostEntry]
    network: NetworkConfig
    cluster_dir: str = ""
    arch: str = ClusterConstants.DEFAULT_ARCH
    workers: List[HostEntry] = field(default_factory=list)
    registry_password: Optional[str] = None
    download_path: str = "downloads"
    save_image: SaveImageConfig = field(default_factory=SaveImageConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)

    @property
    def registry_host(self) -> str:
        return f"{ClusterConstants.REGISTRY_HOST_PREFIX}.{self.name}.{self.domain}"

    @property
    def registry_auth_key(self) -> str:
        """Key under which the internal registry appears in the auths map"""
        return f"{self.registry_host}:{ClusterConstants.REGISTRY_PORT}"

    @property
    def major_minor_version(self) -> str:
        return extract_major_minor_version(self.openshift_version)


@dataclass
class HostAssignment:
    """A host as it appears in the agent configuration"""
    hostname: str
    role: str
    mac_address: str
    ip_address: str
    interface_name: str = ClusterConstants.DEFAULT_INTERFACE


@dataclass
class MirrorMapping:
    """One source repository and the mirrors that serve it"""
    source: str
    mirrors: List[str] = field(default_factory=list)

    def to_block(self) -> str:
        """
        Render the mapping as an image content source list item.

        Returns:
            str: ``- mirrors:`` block listing every mirror followed by the source
        """
        if self.mirrors:
            lines = ["- mirrors:"] + [f"  - {mirror}" for mirror in self.mirrors]
        else:
            lines = ["- mirrors: []"]
        lines.append(f"  source: {self.source}")
        return "\n".join(lines)


@dataclass
class MirrorMetadata:
    """Mirror mappings read from the newest mirroring run"""
    results_dir: str
    mappings: List[MirrorMapping]

    @property
    def blocks(self) -> List[str]:
        return [mapping.to_block() for mapping in self.mappings]

    @property
    def text(self) -> str:
        return "\n".join(self.blocks)


@dataclass
class RegistryAuth:
    """A single entry of the credential file's auths map"""
    auth: Optional[str] = None
    email: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    # Entry exactly as read from a credential file, written back unchanged
    source: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @classmethod
    def for_user(cls, username: str, password: str, email: str) -> 'RegistryAuth':
        token = base64.b64encode(f"{username}:{password}".encode()).decode()
        return cls(auth=token, email=email)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RegistryAuth':
        extra = {k: v for k, v in data.items() if k not in ('auth', 'email')}
        return cls(auth=data.get('auth'), email=data.get('email'), extra=extra, source=dict(data))

    def to_dict(self) -> Dict[str, Any]:
        if self.source is not None:
            return dict(self.source)
        result: Dict[str, Any] = {}
        if self.auth is not None:
            result['auth'] = self.auth
        if self.email is not None:
            result['email'] = self.email
        result.update(self.extra)
        return result


@dataclass
class CredentialBundle:
    """
    Registry credential file.

    Known structure lives in ``auths``; any other top-level fields are kept
    in ``extra`` so that serialising a parsed bundle loses nothing.
    """
    auths: Dict[str, RegistryAuth] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, text: str) -> 'CredentialBundle':
        """
        Parse credential file contents

        Args:
            text: JSON document with a top-level ``auths`` object

        Returns:
            CredentialBundle: Parsed bundle

        Raises:
            CredentialFormatError: If the text is not JSON or lacks an auths object
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise CredentialFormatError(f"Credential file is not valid JSON: {e}")

        if not isinstance(data, dict) or not isinstance(data.get('auths'), dict):
            raise CredentialFormatError(ErrorMessages.AUTHS_MISSING)

        auths = {}
        for registry, entry in data['auths'].items():
            if not isinstance(entry, dict):
                raise CredentialFormatError(f"Credential entry for '{registry}' is not an object")
            auths[registry] = RegistryAuth.from_dict(entry)

        extra = {k: v for k, v in data.items() if k != 'auths'}
        return cls(auths=auths, extra=extra)

    def add_registry(self, registry: str, entry: RegistryAuth) -> None:
        self.auths[registry] = entry

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'auths': {k: v.to_dict() for k, v in self.auths.items()}}
        result.update(self.extra)
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


@dataclass
class OperatorRecord:
    """An installable operator package as listed by a catalog"""
    name: str
    display_name: str
    default_channel: str
    version: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OperatorRecord':
        name = data['name']
        return cls(
            name=name,
            display_name=data.get('displayName') or name,
            default_channel=data.get('defaultChannel', ''),
            version=data.get('version'),
            description=data.get('description'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'name': self.name,
            'displayName': self.display_name,
            'defaultChannel': self.default_channel,
        }
        if self.version:
            result['version'] = self.version
        if self.description:
            result['description'] = self.description
        return result


@dataclass
class CacheEntry:
    """Cached catalog listing as persisted on disk"""
    catalog_image: str
    updated_at: str
    operators: List[OperatorRecord]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CacheEntry':
        return cls(
            catalog_image=data.get('catalog_image', ''),
            updated_at=data.get('updated_at', ''),
            operators=[OperatorRecord.from_dict(op) for op in data.get('operators', [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'updated_at': self.updated_at,
            'catalog_image': self.catalog_image,
            'operator_count': len(self.operators),
            'operators': [op.to_dict() for op in self.operators],
        }


@dataclass
class OperatorPackageSelection:
    """An operator package to mirror, channel set only when resolved"""
    name: str
    channel: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'name': self.name}
        if self.channel:
            result['channels'] = [{'name': self.channel}]
        return result
