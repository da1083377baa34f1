"""
Constants Module

Centralized constants for the airgap builder to eliminate magic strings
and keep the on-disk layout in a single place.
"""

from enum import Enum


class FileConstants:
    """File and directory names used inside a cluster directory"""

    # Cluster configuration
    DEFAULT_CONFIG_FILE = "config.yaml"

    # Credentials and trust
    PULL_SECRET_FILE = "pull-secret.txt"
    MERGED_AUTH_FILE = "merged-auth.json"
    ROOT_CA_FILE = "rootCA.pem"
    REGISTRY_DIR = "registry"

    # Generated documents
    INSTALL_CONFIG_FILE = "install-config.yaml"
    AGENT_CONFIG_FILE = "agent-config.yaml"
    IMAGESET_CONFIG_FILE = "imageset-config.yaml"
    OPERATORS_SNAPSHOT_FILE = "operators.json"

    # Installation layout
    INSTALL_DIR = "installation"
    IGNITION_DIR = "ignition"
    ISO_DIR = "iso"
    TEMP_DIR_PREFIX = "agent-work-"

    # Mirror layout
    IMAGES_DIR = "images"
    MIRROR_WORKSPACE_DIR = "oc-mirror-workspace"
    RESULTS_DIR_PREFIX = "results-"
    ICSP_FILE = "imageContentSourcePolicy.yaml"
    MIRROR_ARCHIVE_PATTERN = "mirror_seq*.tar"

    # Catalog layout
    CATALOGS_DIR = "catalogs"
    CATALOG_CACHE_DIR = "cache"

    # File modes
    SECRET_FILE_MODE = 0o600
    DIRECTORY_MODE = 0o755

    # Installer artifacts copied next to the ignition files after a build
    INSTALLER_ARTIFACTS = ("auth", ".openshift_install.log", ".openshift_install_state.json")


class ClusterConstants:
    """Cluster topology and networking defaults"""

    DEFAULT_INTERFACE = "ens3"
    DEFAULT_HOST_PREFIX = 23
    DEFAULT_CLUSTER_NETWORK = "10.128.0.0/14"
    DEFAULT_SERVICE_NETWORK = "172.30.0.0/16"
    DEFAULT_NETWORK_TYPE = "OVNKubernetes"
    DEFAULT_ARCH = "x86_64"

    # Internal registry
    REGISTRY_PORT = 8443
    REGISTRY_HOST_PREFIX = "registry"
    REGISTRY_EMAIL = "user@example.com"
    DEFAULT_REGISTRY_PASSWORD = "ztesoft123"

    class HostRole(str, Enum):
        """Roles a host can take in the agent configuration"""
        MASTER = "master"
        WORKER = "worker"

        def __str__(self) -> str:
            return self.value

    class Architecture(str, Enum):
        """Machine architectures and their short names"""
        X86_64 = "x86_64"
        AARCH64 = "aarch64"
        PPC64LE = "ppc64le"
        S390X = "s390x"

        @property
        def short_name(self) -> str:
            """Return the short architecture name used in install-config"""
            return {
                "x86_64": "amd64",
                "aarch64": "arm64",
                "ppc64le": "ppc64le",
                "s390x": "s390x",
            }[self.value]


class InstallerConstants:
    """External installer binary constants"""

    BINARY_NAME = "openshift-install"
    DOWNLOAD_BIN_DIR = "bin"
    IMAGE_NAME_TEMPLATE = "agent.{arch}.iso"
    TARGET_IMAGE_TEMPLATE = "{cluster}-agent.{arch}.iso"

    @staticmethod
    def create_image_args(work_dir: str) -> list:
        """Build the installer arguments for agent image creation"""
        return ["agent", "create", "image", "--dir", work_dir]


class CatalogConstants:
    """Operator catalog constants"""

    DEFAULT_CATALOG_TEMPLATE = "registry.redhat.io/redhat/redhat-operator-index:v{version}"
    CACHE_TTL_SECONDS = 24 * 60 * 60
    QUERY_TIMEOUT_SECONDS = 10 * 60
    QUERY_POLL_INTERVAL = 0.5
    DEFAULT_CHANNEL = "stable"
    MAX_SUGGESTIONS = 5

    BUNDLE_SUFFIX = "-bundle"
    CATALOG_SUFFIX = "-catalog"
    TRANSPORT_PREFIXES = ("docker://", "oci://")

    class Schema(str, Enum):
        """File-based catalog schema names"""
        PACKAGE = "olm.package"
        BUNDLE = "olm.bundle"

    class ImageType(str, Enum):
        """Kinds of image references returned by a catalog query"""
        OPERATOR_BUNDLE = "operatorBundle"
        OPERATOR_CATALOG = "operatorCatalog"

    # Shortcut names users commonly type for well-known operators
    OPERATOR_ALIASES = {
        "cluster-logging": "cluster-logging-operator",
        "logging": "cluster-logging-operator",
        "openshift-logging": "cluster-logging-operator",
        "local-storage": "local-storage-operator",
        "local-storage-operator": "local-storage-operator",
    }

    SUGGESTION_KEYWORDS = ("logging", "storage", "monitoring", "network", "security", "backup")

    # Ordered display categories and the substrings that select them
    OPERATOR_CATEGORIES = (
        ("Logging", ("logging", "loki")),
        ("Storage", ("storage", "csi", "volume")),
        ("Monitoring", ("monitoring", "metrics", "prometheus")),
        ("Network", ("network", "ingress", "sriov", "metallb")),
        ("Security", ("security", "compliance", "cert")),
    )
    OTHER_CATEGORY = "Others"


class MirrorConstants:
    """ImageSet configuration constants"""

    API_VERSION = "mirror.openshift.io/v2alpha1"
    KIND = "ImageSetConfiguration"
    PLATFORM_CHANNEL = "stable"
    PLATFORM_TYPE = "ocp"


class ErrorMessages:
    """Centralized error messages"""

    NO_MIRROR_WORKSPACE = "No mirror workspace directory found"
    NO_RESULTS_DIRECTORY = "No non-empty results directory found in mirror workspace"
    NO_MIRROR_ENTRIES = "No valid mirror configuration found"
    NO_CONTROL_PLANE = "At least one control-plane host is required"
    AUTHS_MISSING = "Credential file has no 'auths' object"
