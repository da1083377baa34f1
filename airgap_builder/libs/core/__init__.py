"""
Core Libraries

Shared configuration, models, exceptions and utilities for the airgap builder.
"""

from .config import ConfigManager
from .exceptions import AirgapBuilderError, ConfigurationError
from .models import ClusterConfig
from .utils import setup_logging, atomic_write_text, atomic_write_json

__all__ = [
    'ConfigManager',
    'AirgapBuilderError',
    'ConfigurationError',
    'ClusterConfig',
    'setup_logging',
    'atomic_write_text',
    'atomic_write_json',
]
