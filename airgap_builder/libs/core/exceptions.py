"""
Custom Exceptions

Exception hierarchy for the airgap builder.
"""

from typing import List, Optional


class AirgapBuilderError(Exception):
    """Base exception for all airgap builder errors"""
    pass


class ConfigurationError(AirgapBuilderError):
    """Raised when the cluster configuration is missing or invalid"""
    pass


class PreconditionError(AirgapBuilderError):
    """Raised when a required input file is absent before a build"""
    pass


class CredentialError(AirgapBuilderError):
    """Raised when no usable registry credential can be produced"""
    pass


class CredentialFormatError(CredentialError):
    """Raised when a credential file does not have the expected JSON shape"""
    pass


class MirrorMetadataError(AirgapBuilderError):
    """Raised when mirror metadata exists but cannot be decoded"""
    pass


class MirrorMetadataNotFoundError(MirrorMetadataError):
    """Raised when no mirror workspace, results directory or mapping entry exists"""
    pass


class InstallerError(AirgapBuilderError):
    """Raised when the external installer fails"""
    pass


class InstallerNotFoundError(InstallerError):
    """Raised when no installer binary can be located"""

    def __init__(self, searched_paths: List[str]):
        self.searched_paths = list(searched_paths)
        super().__init__(
            "openshift-install binary not found, searched: " + ", ".join(self.searched_paths)
        )


class CatalogQueryError(AirgapBuilderError):
    """Raised when a catalog query fails or returns unusable data"""
    pass


class CatalogQueryTimeout(CatalogQueryError):
    """Raised when a catalog query exceeds its deadline"""
    pass


class CatalogQueryCancelled(CatalogQueryError):
    """Raised when a catalog query is cancelled by the caller"""
    pass


class CatalogCacheError(AirgapBuilderError):
    """Raised when the catalog cache cannot be read or written"""
    pass


class OperatorResolutionError(AirgapBuilderError):
    """Base class for operator name resolution failures"""
    pass


class AmbiguousOperatorError(OperatorResolutionError):
    """Raised when an identifier matches more than one operator"""

    def __init__(self, identifier: str, candidates: List[str]):
        self.identifier = identifier
        self.candidates = list(candidates)
        super().__init__(
            f"Operator name '{identifier}' is ambiguous, matching operators: "
            + ", ".join(self.candidates)
        )


class OperatorNotFoundError(OperatorResolutionError):
    """Raised when an identifier matches no operator"""

    def __init__(self, identifier: str, suggestions: Optional[List[str]] = None):
        self.identifier = identifier
        self.suggestions = list(suggestions or [])
        message = f"Operator '{identifier}' not found"
        if self.suggestions:
            message += ", did you mean: " + ", ".join(self.suggestions)
        super().__init__(message)
