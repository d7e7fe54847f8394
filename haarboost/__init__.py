"""
Haar-like feature search for boosting weak learners.
"""

from .exceptions import (
    HaarLearnerError,
    MalformedSerializedFeature,
    NoCandidateAvailable,
    UnknownFeatureType,
)

__version__ = "0.1.0"

__all__ = [
    'HaarLearnerError',
    'MalformedSerializedFeature',
    'NoCandidateAvailable',
    'UnknownFeatureType',
]
