"""
Operator Name Resolver

Maps a user-typed operator identifier onto a catalog record: exact match,
then known aliases, then unique substring match, then keyword suggestions.
"""

import logging
from typing import Dict, List, Optional

from ..core.constants import CatalogConstants
from ..core.exceptions import AmbiguousOperatorError, OperatorNotFoundError
from ..core.models import OperatorRecord

logger = logging.getLogger(__name__)


class OperatorNameResolver:
    """Resolves operator identifiers against a list of catalog records"""

    def __init__(self, operators: List[OperatorRecord],
                 aliases: Optional[Dict[str, str]] = None):
        """
        Initialize the resolver

        Args:
            operators: Records to resolve against
            aliases: Shortcut names mapped to canonical operator names
        """
        self.operators = operators
        self.aliases = CatalogConstants.OPERATOR_ALIASES if aliases is None else aliases

    def _exact(self, identifier: str) -> Optional[OperatorRecord]:
        for op in self.operators:
            if op.name == identifier or op.display_name == identifier:
                return op
        return None

    def resolve(self, identifier: str) -> OperatorRecord:
        """
        Resolve an identifier to a single operator

        Args:
            identifier: Operator name, display name, alias or fragment

        Returns:
            OperatorRecord: The matching operator

        Raises:
            AmbiguousOperatorError: If several operators contain the identifier
            OperatorNotFoundError: If nothing matches; carries keyword suggestions
        """
        match = self._exact(identifier)
        if match:
            return match

        alias_target = self.aliases.get(identifier)
        if alias_target:
            match = self._exact(alias_target)
            if match:
                logger.debug(f"Resolved alias '{identifier}' to '{match.name}'")
                return match

        candidates = [
            op for op in self.operators
            if identifier in op.name or identifier in op.display_name
        ]
        if len(candidates) == 1:
            logger.debug(f"Resolved '{identifier}' to '{candidates[0].name}' by partial match")
            return candidates[0]
        if len(candidates) > 1:
            raise AmbiguousOperatorError(identifier, [op.name for op in candidates])

        raise OperatorNotFoundError(identifier, self.suggest(identifier))

    def suggest(self, identifier: str) -> List[str]:
        """Suggest operator names sharing the first known keyword found in the identifier"""
        lowered = identifier.lower()
        for keyword in CatalogConstants.SUGGESTION_KEYWORDS:
            if keyword in lowered:
                matches = [op.name for op in self.operators if keyword in op.name.lower()]
                return matches[:CatalogConstants.MAX_SUGGESTIONS]
        return []


def categorize_operator(name: str) -> str:
    lowered = name.lower()
    for category, needles in CatalogConstants.OPERATOR_CATEGORIES:
        if any(needle in lowered for needle in needles):
            return category
    return CatalogConstants.OTHER_CATEGORY


def group_operators_by_category(operators: List[OperatorRecord]) -> Dict[str, List[OperatorRecord]]:
    """
    Group operators for display

    Args:
        operators: Records to group

    Returns:
        Dict mapping category name to records sorted by name; categories keep
        their display order and empty ones are omitted
    """
    order = [category for category, _ in CatalogConstants.OPERATOR_CATEGORIES]
    order.append(CatalogConstants.OTHER_CATEGORY)
    groups: Dict[str, List[OperatorRecord]] = {category: [] for category in order}
    for op in operators:
        groups[categorize_operator(op.name)].append(op)
    return {
        category: sorted(records, key=lambda op: op.name)
        for category, records in groups.items()
        if records
    }
