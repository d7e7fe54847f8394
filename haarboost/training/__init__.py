"""
Training module for the Haar-like weak learner.

This module provides:
- Candidate sampling (exhaustive, by count, by time)
- Scoring callbacks used to rank candidates
- The weak learner selecting one feature per boosting round
- Saving and loading of selected features
"""

from .haar_learner import HaarLearner
from .model_persistence import FeaturePersistence, FeatureSerializer, TagReader
from .sampling import (
    BoundedByCount,
    BoundedByTime,
    ConfigurationSampler,
    Exhaustive,
    SamplingPolicy,
)
from .scoring import batch_scorer, get_scorer, per_candidate, weighted_correlation_score, weighted_stump_error

__all__ = [
    'BoundedByCount',
    'BoundedByTime',
    'ConfigurationSampler',
    'Exhaustive',
    'FeaturePersistence',
    'FeatureSerializer',
    'HaarLearner',
    'SamplingPolicy',
    'TagReader',
    'batch_scorer',
    'get_scorer',
    'per_candidate',
    'weighted_correlation_score',
    'weighted_stump_error',
]
