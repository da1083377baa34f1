"""
Install Input Resolver

Locates the registry credential, the registry trust bundle and the SSH public
key that go into install-config. Only a missing raw credential is fatal;
everything else degrades to a warning and an empty field.
"""

import logging
from pathlib import Path
from typing import Optional

from ..core.constants import ClusterConstants, FileConstants
from ..core.exceptions import CredentialError, CredentialFormatError
from ..core.models import ClusterConfig, CredentialBundle, RegistryAuth
from ..core.settings import get_registry_password, get_ssh_public_key_path
from ..core.utils import atomic_write_text

logger = logging.getLogger(__name__)


class ConfigResolver:
    """Resolves credential, trust bundle and SSH key for a cluster"""

    def __init__(self, config: ClusterConfig, ssh_key_path: Optional[str] = None):
        """
        Initialize the resolver

        Args:
            config: Cluster configuration
            ssh_key_path: Public key location, defaults to the AIRGAP_SSH_PUBLIC_KEY setting
        """
        self.config = config
        self.cluster_dir = Path(config.cluster_dir)
        self.ssh_key_path = Path(ssh_key_path) if ssh_key_path else get_ssh_public_key_path()

    @property
    def registry_dir(self) -> Path:
        return self.cluster_dir / FileConstants.REGISTRY_DIR

    @property
    def merged_auth_path(self) -> Path:
        return self.registry_dir / FileConstants.MERGED_AUTH_FILE

    @property
    def pull_secret_path(self) -> Path:
        return self.cluster_dir / FileConstants.PULL_SECRET_FILE

    def resolve_credential(self) -> str:
        """
        Return the registry credential for install-config.

        An existing merged credential file is returned as is. Otherwise the raw
        pull secret is extended with an entry for the internal registry and
        persisted as the merged file. If merging fails the raw pull secret is
        used instead.

        Returns:
            str: Credential JSON text, trimmed

        Raises:
            CredentialError: If neither the merged nor the raw credential can be read
        """
        if self.merged_auth_path.exists():
            try:
                return self.merged_auth_path.read_text().strip()
            except OSError as e:
                logger.warning(f"Failed to read {self.merged_auth_path}: {e}")

        try:
            raw = self.pull_secret_path.read_text()
        except OSError as e:
            raise CredentialError(f"Failed to read pull secret {self.pull_secret_path}: {e}")

        try:
            merged = self.merge_registry_credential(raw)
        except (CredentialFormatError, OSError) as e:
            logger.warning(f"Could not create merged credential, using raw pull secret: {e}")
            return raw.strip()

        return merged.strip()

    def merge_registry_credential(self, raw: str) -> str:
        """
        Add the internal registry to a pull secret and persist the result

        Args:
            raw: Pull secret JSON text

        Returns:
            str: Merged credential JSON text

        Raises:
            CredentialFormatError: If the pull secret has no auths object
            OSError: If the merged file cannot be written
        """
        bundle = CredentialBundle.from_json(raw)
        password = self.config.registry_password or get_registry_password()
        bundle.add_registry(
            self.config.registry_auth_key,
            RegistryAuth.for_user(self.config.registry_user, password, ClusterConstants.REGISTRY_EMAIL),
        )
        content = bundle.to_json()

        self.registry_dir.mkdir(mode=FileConstants.DIRECTORY_MODE, parents=True, exist_ok=True)
        atomic_write_text(self.merged_auth_path, content, mode=FileConstants.SECRET_FILE_MODE)
        logger.info(f"Merged registry credential written to {self.merged_auth_path}")
        return content

    def resolve_trust_bundle(self) -> Optional[str]:
        """
        Return the registry CA certificate, if any

        Returns:
            Optional[str]: PEM text, or None when no certificate is present
        """
        candidates = [
            self.registry_dir / self.config.registry_ip / FileConstants.ROOT_CA_FILE,
            self.registry_dir / FileConstants.ROOT_CA_FILE,
        ]
        for path in candidates:
            try:
                content = path.read_text()
            except OSError:
                continue
            logger.debug(f"Using trust bundle {path}")
            return content

        logger.info("No registry CA certificate found, additionalTrustBundle left empty")
        return None

    def resolve_ssh_key(self) -> Optional[str]:
        try:
            return self.ssh_key_path.read_text().strip()
        except OSError:
            logger.warning(f"SSH public key not found at {self.ssh_key_path}, sshKey left empty")
            return None
