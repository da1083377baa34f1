"""
Image Assembler

Drives a full agent image build for one cluster: resolves the install
inputs, renders the installer documents, runs ``openshift-install agent
create image`` in a scratch directory and moves the result into place.
"""

import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..core.constants import FileConstants, InstallerConstants
from ..core.exceptions import (
    InstallerError,
    InstallerNotFoundError,
    MirrorMetadataError,
    PreconditionError,
)
from ..core.models import ClusterConfig
from ..core.utils import copy_path
from .credentials import ConfigResolver
from .generator import InstallAssetGenerator, InstallInputs, write_assets
from .mirror_metadata import MirrorMetadataExtractor

logger = logging.getLogger(__name__)


@dataclass
class AssemblyResult:
    """Outcome of an assemble call"""
    image_path: str
    skipped: bool = False
    copied_artifacts: List[str] = field(default_factory=list)


class ImageAssembler:
    """Builds the agent boot image for a cluster"""

    def __init__(
        self,
        config: ClusterConfig,
        resolver: Optional[ConfigResolver] = None,
        extractor: Optional[MirrorMetadataExtractor] = None,
        generator: Optional[InstallAssetGenerator] = None,
    ):
        """
        Initialize the assembler with its collaborators

        Args:
            config: Cluster configuration
            resolver: Credential, trust bundle and SSH key resolver
            extractor: Mirror metadata extractor
            generator: Installer document generator
        """
        self.config = config
        self.cluster_dir = Path(config.cluster_dir)
        self.resolver = resolver or ConfigResolver(config)
        self.extractor = extractor or MirrorMetadataExtractor(config.cluster_dir)
        self.generator = generator or InstallAssetGenerator()

    @property
    def install_dir(self) -> Path:
        return self.cluster_dir / FileConstants.INSTALL_DIR

    @property
    def ignition_dir(self) -> Path:
        return self.install_dir / FileConstants.IGNITION_DIR

    @property
    def iso_dir(self) -> Path:
        return self.install_dir / FileConstants.ISO_DIR

    @property
    def target_image(self) -> Path:
        return self.iso_dir / InstallerConstants.TARGET_IMAGE_TEMPLATE.format(
            cluster=self.config.name, arch=self.config.arch
        )

    def installer_candidates(self) -> List[Path]:
        """Installer locations in lookup order"""
        extracted = self.cluster_dir / (
            f"{InstallerConstants.BINARY_NAME}-{self.config.openshift_version}-{self.config.registry_host}"
        )
        downloaded = (self.cluster_dir / self.config.download_path
                      / InstallerConstants.DOWNLOAD_BIN_DIR / InstallerConstants.BINARY_NAME)
        return [extracted, downloaded]

    def find_installer(self) -> Path:
        """
        Locate the installer binary

        A binary extracted from the mirrored release takes precedence over
        the downloaded one.

        Raises:
            InstallerNotFoundError: If no candidate exists
        """
        candidates = self.installer_candidates()
        for candidate in candidates:
            if candidate.is_file():
                logger.info(f"Using installer {candidate}")
                return candidate
        raise InstallerNotFoundError([str(c) for c in candidates])

    def check_preconditions(self) -> Path:
        """
        Verify the inputs a build cannot do without

        Returns:
            Path: Installer binary to use

        Raises:
            InstallerNotFoundError: If the installer is missing
            PreconditionError: If the raw pull secret is missing
        """
        installer = self.find_installer()
        if not self.resolver.pull_secret_path.is_file():
            raise PreconditionError(f"Pull secret not found: {self.resolver.pull_secret_path}")
        return installer

    def prepare_inputs(self) -> InstallInputs:
        """Resolve every install input, tolerating the optional ones"""
        pull_secret = self.resolver.resolve_credential()
        trust_bundle = self.resolver.resolve_trust_bundle()
        ssh_key = self.resolver.resolve_ssh_key()

        mirror_sources = None
        try:
            mirror_sources = self.extractor.extract().text
        except MirrorMetadataError as e:
            logger.warning(f"Continuing without image content sources: {e}")

        return InstallInputs(
            config=self.config,
            pull_secret=pull_secret,
            ssh_key=ssh_key,
            trust_bundle=trust_bundle,
            mirror_sources=mirror_sources,
        )

    def generate_configs(self) -> List[Path]:
        """Render install-config and agent-config into the installation directory"""
        self.create_install_dirs()
        assets = self.generator.render(self.prepare_inputs())
        return write_assets(assets, str(self.install_dir))

    def create_install_dirs(self) -> None:
        for directory in (self.install_dir, self.ignition_dir, self.iso_dir):
            directory.mkdir(mode=FileConstants.DIRECTORY_MODE, parents=True, exist_ok=True)

    def assemble(self, force: bool = False) -> AssemblyResult:
        """
        Build the agent image unless it already exists

        Args:
            force: Rebuild even when the target image is present

        Returns:
            AssemblyResult: Target path and what was done

        Raises:
            InstallerNotFoundError: If no installer binary is available
            PreconditionError: If the raw pull secret is missing
            CredentialError: If no credential can be read
            InstallerError: If the installer fails or produces no image
        """
        target = self.target_image
        if target.exists() and not force:
            logger.info(f"Agent image already exists, skipping build: {target}")
            return AssemblyResult(image_path=str(target), skipped=True)

        installer = self.check_preconditions()
        config_files = self.generate_configs()

        work_dir = Path(tempfile.mkdtemp(prefix=FileConstants.TEMP_DIR_PREFIX, dir=self.install_dir))
        try:
            for config_file in config_files:
                shutil.copy2(config_file, work_dir / config_file.name)

            self.run_installer(installer, work_dir)
            self.collect_image(work_dir, target)
            copied = self.copy_artifacts(work_dir)
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

        logger.info(f"Agent image created: {target}")
        return AssemblyResult(image_path=str(target), copied_artifacts=copied)

    def run_installer(self, installer: Path, work_dir: Path) -> None:
        """
        Run the installer in the scratch directory

        The installer output goes straight to the console. There is no
        timeout; the build ends when the installer exits.

        Raises:
            InstallerError: If the installer cannot start or exits non-zero
        """
        cmd = [str(installer)] + InstallerConstants.create_image_args(str(work_dir))
        logger.info(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, check=False)
        except OSError as e:
            raise InstallerError(f"Failed to start installer {installer}: {e}")
        if result.returncode != 0:
            raise InstallerError(f"Installer exited with status {result.returncode}")

    def collect_image(self, work_dir: Path, target: Path) -> None:
        produced = work_dir / InstallerConstants.IMAGE_NAME_TEMPLATE.format(arch=self.config.arch)
        if not produced.is_file():
            raise InstallerError(f"Installer did not produce {produced.name}")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(produced), str(target))

    def copy_artifacts(self, work_dir: Path) -> List[str]:
        """Copy installer state and credentials next to the ignition files; failures only warn"""
        copied = []
        for name in FileConstants.INSTALLER_ARTIFACTS:
            source = work_dir / name
            if not source.exists():
                logger.debug(f"Installer artifact {name} not present")
                continue
            try:
                copy_path(source, self.ignition_dir / name)
                copied.append(name)
            except (OSError, shutil.Error) as e:
                logger.warning(f"Failed to copy {name}: {e}")
        return copied
