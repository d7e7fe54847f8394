"""Haar-like feature types, registry and evaluation."""

from .evaluator import FeatureEvaluator
from .geometry import Rectangle
from .haar_features import (
    BUILTIN_FEATURE_TYPES,
    CandidateConfiguration,
    HaarFeature,
    HaarFeatureType,
    SelectedFeature,
)
from .registry import FeatureRegistry, default_registry

__all__ = [
    'BUILTIN_FEATURE_TYPES',
    'CandidateConfiguration',
    'FeatureEvaluator',
    'FeatureRegistry',
    'HaarFeature',
    'HaarFeatureType',
    'Rectangle',
    'SelectedFeature',
    'default_registry',
]
