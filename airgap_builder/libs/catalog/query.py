"""
Catalog Query Engine

Boundary to the external tool that lists the content of an operator catalog
image. The default engine runs ``opm render`` as a child process bounded by
a deadline and an optional cancel event.
"""

import json
import logging
import os
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..core.constants import CatalogConstants
from ..core.exceptions import CatalogQueryCancelled, CatalogQueryError, CatalogQueryTimeout
from ..core.settings import get_opm_binary

logger = logging.getLogger(__name__)


@dataclass
class CatalogQueryRequest:
    """
    Parameters of a single catalog query.

    ``auth_file`` is handed to the child process only; the current process
    environment is never modified.
    """
    catalog_image: str
    auth_file: Optional[str] = None
    skip_tls: bool = False


@dataclass
class CollectedImage:
    origin: str
    image_type: str


@dataclass
class CollectedCatalog:
    """Raw result of a catalog query, before conversion to operator records"""
    catalog_image: str
    packages: List[Dict[str, Any]] = field(default_factory=list)
    images: List[CollectedImage] = field(default_factory=list)


class QueryContext:
    """Deadline and cancellation state shared with an in-flight query"""

    def __init__(self, timeout: float = CatalogConstants.QUERY_TIMEOUT_SECONDS,
                 cancel_event: Optional[threading.Event] = None):
        self.timeout = timeout
        self.deadline = time.monotonic() + timeout
        self.cancel_event = cancel_event or threading.Event()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    def cancel(self) -> None:
        self.cancel_event.set()

    def check(self) -> None:
        """
        Raise if the query must stop

        Raises:
            CatalogQueryCancelled: If the cancel event is set
            CatalogQueryTimeout: If the deadline has passed
        """
        if self.cancelled:
            raise CatalogQueryCancelled("Catalog query cancelled")
        if self.remaining() <= 0:
            raise CatalogQueryTimeout(f"Catalog query timed out after {self.timeout:.0f}s")


class CatalogQueryEngine:
    """Interface of a catalog query engine"""

    def collect(self, request: CatalogQueryRequest, context: QueryContext) -> CollectedCatalog:
        raise NotImplementedError


def extract_json_objects(text: str) -> Iterator[Dict[str, Any]]:
    """Yield every JSON object of a concatenated JSON stream"""
    decoder = json.JSONDecoder()
    pos = 0
    while pos < len(text):
        while pos < len(text) and text[pos].isspace():
            pos += 1
        if pos >= len(text):
            break
        try:
            obj, index = decoder.raw_decode(text, pos)
            pos = index
            if isinstance(obj, dict):
                yield obj
        except json.JSONDecodeError:
            pos += 1


def parse_render_output(catalog_image: str, output: str) -> CollectedCatalog:
    """
    Split rendered file-based catalog content into packages and images

    Args:
        catalog_image: Catalog that was rendered
        output: Concatenated JSON documents as printed by ``opm render``

    Returns:
        CollectedCatalog: Package metadata plus bundle and catalog image references
    """
    collected = CollectedCatalog(catalog_image=catalog_image)
    collected.images.append(CollectedImage(catalog_image, CatalogConstants.ImageType.OPERATOR_CATALOG.value))

    for obj in extract_json_objects(output):
        schema = obj.get('schema')
        if schema == CatalogConstants.Schema.PACKAGE.value and obj.get('name'):
            collected.packages.append({
                'name': obj['name'],
                'defaultChannel': obj.get('defaultChannel', ''),
                'description': obj.get('description', ''),
            })
        elif schema == CatalogConstants.Schema.BUNDLE.value and obj.get('image'):
            collected.images.append(
                CollectedImage(obj['image'], CatalogConstants.ImageType.OPERATOR_BUNDLE.value)
            )

    logger.debug(f"Rendered {catalog_image}: {len(collected.packages)} packages, "
                 f"{len(collected.images)} images")
    return collected


class OPMCatalogQuery(CatalogQueryEngine):
    """Catalog query engine backed by ``opm render``"""

    def __init__(self, opm_binary: Optional[str] = None,
                 poll_interval: float = CatalogConstants.QUERY_POLL_INTERVAL):
        """
        Initialize the opm-backed engine

        Args:
            opm_binary: Explicit path to opm, looked up on first use when omitted
            poll_interval: Seconds between cancellation checks while opm runs
        """
        self._opm_binary = opm_binary
        self.poll_interval = poll_interval

    def _find_opm_binary(self) -> str:
        """
        Find the opm binary

        Returns:
            str: Path to opm

        Raises:
            CatalogQueryError: If opm cannot be found
        """
        if self._opm_binary:
            return self._opm_binary

        candidate = get_opm_binary() or shutil.which('opm')
        if not candidate:
            raise CatalogQueryError("OPM binary not found. Install opm or set AIRGAP_OPM_BINARY")

        self._opm_binary = candidate
        logger.debug(f"Found OPM binary at: {self._opm_binary}")
        return self._opm_binary

    def build_command(self, request: CatalogQueryRequest) -> List[str]:
        cmd = [self._find_opm_binary(), 'render', request.catalog_image, '-o', 'json']
        if request.skip_tls:
            cmd.append('--skip-tls-verify')
        return cmd

    def build_env(self, request: CatalogQueryRequest) -> Dict[str, str]:
        env = os.environ.copy()
        if request.auth_file:
            env['REGISTRY_AUTH_FILE'] = request.auth_file
        return env

    def collect(self, request: CatalogQueryRequest, context: QueryContext) -> CollectedCatalog:
        """
        Render a catalog image and collect its packages

        Args:
            request: Catalog image and credentials
            context: Deadline and cancel event

        Returns:
            CollectedCatalog: Collected metadata

        Raises:
            CatalogQueryCancelled: If the context was cancelled while opm ran
            CatalogQueryTimeout: If opm did not finish before the deadline
            CatalogQueryError: If opm failed
        """
        context.check()
        cmd = self.build_command(request)
        logger.info(f"Querying catalog {request.catalog_image}")
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=self.build_env(request),
            )
        except OSError as e:
            raise CatalogQueryError(f"Failed to start opm: {e}")

        stdout, stderr = self._wait(process, context)

        if process.returncode != 0:
            raise CatalogQueryError(
                f"opm render failed for {request.catalog_image}: {stderr.strip()}"
            )
        if not stdout.strip():
            raise CatalogQueryError(f"No output from opm render for catalog: {request.catalog_image}")

        return parse_render_output(request.catalog_image, stdout)

    def _wait(self, process: subprocess.Popen, context: QueryContext) -> Tuple[str, str]:
        """Wait for opm, killing it when the context is cancelled or expires"""
        while True:
            try:
                return process.communicate(timeout=min(self.poll_interval, max(context.remaining(), 0.01)))
            except subprocess.TimeoutExpired:
                try:
                    context.check()
                except (CatalogQueryCancelled, CatalogQueryTimeout):
                    logger.warning("Stopping opm render")
                    self._kill(process)
                    raise
            except KeyboardInterrupt:
                self._kill(process)
                raise

    @staticmethod
    def _kill(process: subprocess.Popen) -> None:
        process.kill()
        process.communicate()
