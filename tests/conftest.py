"""
Shared fixtures for the haarboost test suite.
"""

import numpy as np
import pytest

from haarboost.data import ExampleSet
from haarboost.features import default_registry


def brute_integral(image: np.ndarray) -> np.ndarray:
    """Reference integral image with a zero first row and column."""
    image = np.asarray(image, dtype=np.int64)
    integral = np.zeros((image.shape[0] + 1, image.shape[1] + 1), dtype=np.int64)
    integral[1:, 1:] = image.cumsum(axis=0).cumsum(axis=1)
    return integral


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def separable_examples():
    """
    Three 64x64 examples labelled +1, -1, +1 with weights 1/3.

    Positives are bright on x in [12, 16), negatives on x in [16, 20), both
    for y in [4, 20).
    """
    positive = np.zeros((64, 64), dtype=np.uint8)
    positive[4:20, 12:16] = 255
    negative = np.zeros((64, 64), dtype=np.uint8)
    negative[4:20, 16:20] = 255
    return ExampleSet.from_images([positive, negative, positive], [1, -1, 1], [1 / 3, 1 / 3, 1 / 3])


@pytest.fixture
def noisy_examples():
    rng = np.random.default_rng(3)
    images = rng.integers(0, 256, size=(12, 10, 8), dtype=np.uint8)
    labels = np.array([1, -1] * 6)
    images[labels > 0, :, :4] //= 2
    weights = rng.random(12) + 0.1
    return ExampleSet.from_images(list(images), labels, weights)
