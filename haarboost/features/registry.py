"""
Registry of Haar-like feature types.

The registry is a plain object built once at startup and passed to every
component that needs to resolve a type code (sampler, evaluator, serializer).
"""

import logging
from typing import Dict, List, Optional

from ..exceptions import UnknownFeatureType
from .haar_features import BUILTIN_FEATURE_TYPES, HaarFeatureType

logger = logging.getLogger(__name__)


class FeatureRegistry:
    """Maps short type codes (e.g. '2v') to feature type descriptors."""

    def __init__(self):
        self._factories: Dict[str, HaarFeatureType] = {}

    def register_type(self, code: str, factory: HaarFeatureType) -> None:
        """
        Associate a type code with its factory.

        Registering the same factory twice is a no-op. Entries are never
        replaced: registering a different factory under a known code fails.

        Args:
            code: Short type code
            factory: Feature type descriptor, called with a Rectangle to build the feature

        Raises:
            TypeError: If the factory is not a HaarFeatureType
            ValueError: If the code is empty or already bound to another factory
        """
        if not code:
            raise ValueError("Feature type code must be a non-empty string")
        if not isinstance(factory, HaarFeatureType):
            raise TypeError(f"Feature type '{code}' must be a HaarFeatureType, got {factory!r}")
        existing = self._factories.get(code)
        if existing is factory:
            return
        if existing is not None:
            raise ValueError(f"Feature type '{code}' is already registered to {existing!r}")
        self._factories[code] = factory
        logger.debug(f"Registered feature type '{code}'")

    def get_feature(self, code: str) -> HaarFeatureType:
        """
        Return the descriptor registered under ``code``.

        Raises:
            UnknownFeatureType: If the code was never registered
        """
        try:
            return self._factories[code]
        except KeyError:
            raise UnknownFeatureType(code) from None

    def parse_types(self, type_list: Optional[str] = None) -> List[str]:
        """
        Parse a feature type list such as '2v2h3v'.

        Codes are two characters long and may be written back to back or
        separated by spaces/commas. An empty list selects every registered type.

        Raises:
            UnknownFeatureType: If a code is not registered
        """
        if type_list is None:
            return self.codes()
        compact = ''.join(ch for ch in type_list if not ch.isspace() and ch != ',')
        if not compact:
            return self.codes()
        if len(compact) % 2:
            raise ValueError(f"Feature type list '{type_list}' is not made of 2-character codes")

        codes = []
        for start in range(0, len(compact), 2):
            code = compact[start:start + 2].lower()
            self.get_feature(code)
            if code not in codes:
                codes.append(code)
        return codes

    def codes(self) -> List[str]:
        """Registered codes in registration order."""
        return list(self._factories)

    def __contains__(self, code: str) -> bool:
        return code in self._factories

    def __len__(self) -> int:
        return len(self._factories)


def default_registry() -> FeatureRegistry:
    """Build a registry holding the built-in types: 2v, 2h, 3v, 3h, 4q."""
    registry = FeatureRegistry()
    for feature_type in BUILTIN_FEATURE_TYPES:
        registry.register_type(feature_type.code, feature_type)
    return registry
