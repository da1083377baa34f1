"""
Environment Settings

Process-level settings read from the environment (or a .env file) through
python-decouple. Values are looked up on every call so callers always see
the current environment.
"""

import os
from pathlib import Path
from typing import Optional

from decouple import config, UndefinedValueError

from .constants import ClusterConstants


def get_registry_password() -> str:
    """Password used for the synthesized internal registry credential"""
    return config('AIRGAP_REGISTRY_PASSWORD', default=ClusterConstants.DEFAULT_REGISTRY_PASSWORD)


def get_ssh_public_key_path() -> Path:
    """Location of the public key embedded in install-config"""
    default_path = os.path.join(os.path.expanduser("~"), ".ssh", "id_rsa.pub")
    return Path(config('AIRGAP_SSH_PUBLIC_KEY', default=default_path)).expanduser()


def get_opm_binary() -> Optional[str]:
    """Explicit opm binary override, or None to search the PATH"""
    try:
        return config('AIRGAP_OPM_BINARY')
    except UndefinedValueError:
        return None


def get_project_root() -> Path:
    """Directory holding one sub-directory per cluster"""
    return Path(config('AIRGAP_PROJECT_ROOT', default=os.getcwd()))


def is_debug_enabled() -> bool:
    return config('AIRGAP_DEBUG', default=False, cast=bool)
