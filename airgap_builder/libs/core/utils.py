"""
Core Utilities

Common utility functions used across the airgap builder.
"""

import ipaddress
import json
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def setup_logging(debug: bool = False) -> None:
    """
    Set up logging configuration for the application.

    Args:
        debug: Enable debug logging level
    """
    level = logging.DEBUG if debug else logging.INFO

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if debug:
        logger.debug("Debug mode enabled")


def sanitize_catalog_ref(catalog_image: str) -> str:
    """
    Turn a catalog image reference into a filesystem-safe name.

    Args:
        catalog_image: Image reference such as ``registry.io/ns/index:v4.14``

    Returns:
        str: Name with path, tag and digest separators replaced by underscores
    """
    return re.sub(r'[/:@]', '_', catalog_image)


def atomic_write_text(path: PathLike, content: str, mode: Optional[int] = None) -> Path:
    """
    Write text to a file so that readers never observe a partial write.

    The content goes to a temporary sibling which is renamed over the target
    once fully written. On any failure the temporary file is removed and the
    previous target, if any, is left untouched.

    Args:
        path: Destination file
        content: Text to write
        mode: Optional permission bits applied before the rename

    Returns:
        Path: The destination path
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    tmp_file = tempfile.NamedTemporaryFile(
        mode='w',
        encoding='utf-8',
        dir=target.parent,
        prefix=f".{target.name}.",
        suffix='.tmp',
        delete=False,
    )
    tmp_path = Path(tmp_file.name)
    try:
        with tmp_file as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, target)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    return target


def atomic_write_json(path: PathLike, data: Any, mode: Optional[int] = None) -> Path:
    """Serialize data with two-space indentation and write it atomically"""
    return atomic_write_text(path, json.dumps(data, indent=2) + "\n", mode=mode)


def indent_block(text: str, spaces: int) -> str:
    """
    Indent every non-empty line of a text block.

    Args:
        text: Multi-line text
        spaces: Number of spaces to prefix

    Returns:
        str: Indented text, empty lines left empty
    """
    pad = " " * spaces
    return "\n".join(pad + line if line.strip() else "" for line in text.splitlines())


def parse_machine_network(cidr: str) -> ipaddress.IPv4Network:
    """
    Parse the machine network CIDR

    Raises:
        ConfigurationError: If the value is not a valid network
    """
    try:
        return ipaddress.ip_network(cidr, strict=False)
    except ValueError as e:
        raise ConfigurationError(f"Invalid machine network '{cidr}': {e}")


def extract_network_base(cidr: str) -> str:
    """Return the network address of a CIDR, e.g. ``192.168.1.0``"""
    return str(parse_machine_network(cidr).network_address)


def extract_prefix_length(cidr: str) -> int:
    return parse_machine_network(cidr).prefixlen


def extract_gateway(cidr: str) -> str:
    """Return the first usable address of a network, used as the default route"""
    network = parse_machine_network(cidr)
    return str(network.network_address + 1)


def extract_major_minor_version(version: str) -> str:
    """
    Reduce a release version to ``major.minor``.

    Args:
        version: Version such as ``4.14.12`` or ``v4.14``

    Returns:
        str: ``4.14``; the input without a leading ``v`` if it has fewer parts
    """
    parts = version.lstrip('v').split('.')
    if len(parts) >= 2:
        return f"{parts[0]}.{parts[1]}"
    return version.lstrip('v')


def copy_path(src: PathLike, dst: PathLike) -> None:
    """Copy a file or a whole directory tree, replacing an existing destination"""
    src_path, dst_path = Path(src), Path(dst)
    if src_path.is_dir():
        if dst_path.exists():
            shutil.rmtree(dst_path)
        shutil.copytree(src_path, dst_path)
    else:
        dst_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src_path, dst_path)
