"""
Mirror Metadata Extractor

Reads the image content source mappings written by the most recent mirroring
run so that the installer pulls release and operator images from the internal
registry.
"""

import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple

import yaml

from ..core.constants import ErrorMessages, FileConstants
from ..core.exceptions import MirrorMetadataError, MirrorMetadataNotFoundError
from ..core.models import MirrorMapping, MirrorMetadata

logger = logging.getLogger(__name__)


def parse_results_timestamp(name: str) -> Optional[int]:
    """
    Extract the timestamp of a results directory name

    Args:
        name: Directory name such as ``results-1700000000``

    Returns:
        Optional[int]: Timestamp, or None for names that do not carry one
    """
    if not name.startswith(FileConstants.RESULTS_DIR_PREFIX):
        return None
    suffix = name[len(FileConstants.RESULTS_DIR_PREFIX):]
    if not (suffix.isascii() and suffix.isdigit()):
        return None
    return int(suffix)


def select_latest_results_dir(workspace: Path) -> Path:
    """
    Pick the newest non-empty results directory of a mirror workspace.

    Entries are visited in name order and a later entry replaces the current
    choice only with a strictly greater timestamp.

    Args:
        workspace: Mirror workspace directory

    Returns:
        Path: Selected results directory

    Raises:
        MirrorMetadataNotFoundError: If no eligible directory exists
    """
    latest: Optional[Tuple[int, Path]] = None
    for entry in sorted(workspace.iterdir(), key=lambda p: p.name):
        if not entry.is_dir():
            continue
        timestamp = parse_results_timestamp(entry.name)
        if timestamp is None:
            if entry.name.startswith(FileConstants.RESULTS_DIR_PREFIX):
                logger.debug(f"Skipping {entry.name}: suffix is not a timestamp")
            continue
        if not any(entry.iterdir()):
            logger.debug(f"Skipping empty results directory {entry.name}")
            continue
        if latest is None or timestamp > latest[0]:
            latest = (timestamp, entry)

    if latest is None:
        raise MirrorMetadataNotFoundError(f"{ErrorMessages.NO_RESULTS_DIRECTORY}: {workspace}")
    return latest[1]


def parse_mirror_mappings(content: str) -> List[MirrorMapping]:
    """
    Parse an image content source policy YAML stream

    Args:
        content: One or more YAML documents

    Returns:
        List[MirrorMapping]: Mappings in document order, then entry order

    Raises:
        MirrorMetadataError: If the stream is not valid YAML or has the wrong shape
    """
    try:
        documents: List[Any] = list(yaml.safe_load_all(content))
    except yaml.YAMLError as e:
        raise MirrorMetadataError(f"Invalid image content source policy: {e}")

    mappings = []
    for index, document in enumerate(documents):
        if not isinstance(document, dict):
            continue
        spec = document.get('spec') or {}
        if not isinstance(spec, dict):
            raise MirrorMetadataError(f"Document {index}: spec must be a mapping")
        entries = spec.get('repositoryDigestMirrors') or []
        if not isinstance(entries, list):
            raise MirrorMetadataError(f"Document {index}: repositoryDigestMirrors must be a list")
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get('source'):
                continue
            mirrors = entry.get('mirrors') or []
            if not isinstance(mirrors, list):
                raise MirrorMetadataError(
                    f"Document {index}: mirrors of {entry['source']} must be a list"
                )
            mappings.append(MirrorMapping(source=str(entry['source']), mirrors=[str(m) for m in mirrors]))
    return mappings


class MirrorMetadataExtractor:
    """Finds and parses mirror mappings for a cluster directory"""

    def __init__(self, cluster_dir: str):
        self.cluster_dir = Path(cluster_dir)

    def workspace_candidates(self) -> List[Path]:
        return [
            self.cluster_dir / FileConstants.MIRROR_WORKSPACE_DIR,
            self.cluster_dir / FileConstants.IMAGES_DIR / FileConstants.MIRROR_WORKSPACE_DIR,
        ]

    def find_workspace(self) -> Path:
        for candidate in self.workspace_candidates():
            if candidate.is_dir():
                return candidate
        raise MirrorMetadataNotFoundError(
            f"{ErrorMessages.NO_MIRROR_WORKSPACE}, searched: "
            + ", ".join(str(p) for p in self.workspace_candidates())
        )

    def extract(self) -> MirrorMetadata:
        """
        Read the mappings of the newest mirroring run

        Returns:
            MirrorMetadata: Selected results directory and its mappings

        Raises:
            MirrorMetadataNotFoundError: If there is no workspace, no eligible
                results directory or no mapping entry
            MirrorMetadataError: If the policy file cannot be read or parsed
        """
        results_dir = select_latest_results_dir(self.find_workspace())
        policy_file = results_dir / FileConstants.ICSP_FILE
        logger.info(f"Reading mirror mappings from {policy_file}")

        try:
            content = policy_file.read_text()
        except FileNotFoundError:
            raise MirrorMetadataNotFoundError(f"{policy_file} does not exist")
        except OSError as e:
            raise MirrorMetadataError(f"Failed to read {policy_file}: {e}")

        mappings = parse_mirror_mappings(content)
        if not mappings:
            raise MirrorMetadataNotFoundError(f"{ErrorMessages.NO_MIRROR_ENTRIES} in {policy_file}")

        logger.info(f"Found {len(mappings)} mirror mappings")
        return MirrorMetadata(results_dir=str(results_dir), mappings=mappings)
