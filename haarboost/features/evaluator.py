"""
Feature response evaluation over integral images.
"""

from typing import Sequence

import numpy as np

from .haar_features import CandidateConfiguration
from .registry import FeatureRegistry


class FeatureEvaluator:
    """
    Computes Haar-like feature responses.

    Responses are accumulated in int64, which holds the largest possible
    response of a 16-bit sized image of 8-bit pixels without overflow.
    """

    def __init__(self, registry: FeatureRegistry):
        self.registry = registry

    def evaluate(self, candidate: CandidateConfiguration, example: np.ndarray) -> int:
        """
        Response of one candidate on one example.

        Args:
            candidate: Type code and rectangle
            example: (height + 1, width + 1) integral image

        Returns:
            Signed response value
        """
        feature_type = self.registry.get_feature(candidate.code)
        return feature_type(candidate.rect).evaluate(example)

    def evaluate_batch(self, code: str, rects: np.ndarray,
                       integral_images: np.ndarray) -> np.ndarray:
        """
        Responses of many rectangles of a single type on many examples.

        Args:
            code: Feature type code
            rects: (n_candidates, 4) array of (x, y, width, height)
            integral_images: (n_examples, height + 1, width + 1) int64 array

        Returns:
            (n_candidates, n_examples) int64 response matrix
        """
        feature_type = self.registry.get_feature(code)
        rects = np.asarray(rects, dtype=np.int64).reshape(-1, 4)
        if len(rects) == 0:
            return np.empty((0, integral_images.shape[0]), dtype=np.int64)
        return feature_type.responses(integral_images, rects)

    def evaluate_candidates(self, candidates: Sequence[CandidateConfiguration],
                            integral_images: np.ndarray) -> np.ndarray:
        """Response matrix for candidates of mixed types, rows in input order."""
        responses = np.empty((len(candidates), integral_images.shape[0]), dtype=np.int64)
        for row, candidate in enumerate(candidates):
            responses[row] = self.evaluate_batch(
                candidate.code, [candidate.rect.as_tuple()], integral_images)[0]
        return responses
