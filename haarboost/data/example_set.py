"""
Weighted training examples stored as integral images.

Integral images are computed with OpenCV and kept as int64 so block sums of
8-bit images never overflow. Example sets can be cached to disk as numpy
arrays with a JSON metadata file.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from ..features.geometry import check_iisize

logger = logging.getLogger(__name__)


def compute_integral_image(image: np.ndarray) -> np.ndarray:
    """
    Integral image of a single image.

    Args:
        image: 2D grayscale image, or a 3-channel BGR image converted to gray

    Returns:
        (height + 1, width + 1) int64 array with a zero first row and column
    """
    image = np.asarray(image)
    if image.ndim == 3:
        if image.dtype == np.uint8 and image.shape[2] == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        else:
            image = image.mean(axis=2)
    if image.ndim != 2:
        raise ValueError(f"Expected a 2D image, got shape {image.shape}")

    if image.dtype != np.uint8:
        image = image.astype(np.float64)
    integral = cv2.integral(np.ascontiguousarray(image), sdepth=cv2.CV_64F)
    return np.rint(integral).astype(np.int64)


class ExampleSet:
    """
    Integral images with their labels (+1/-1) and boosting weights.

    Attributes:
        integral_images: (n_examples, height + 1, width + 1) int64 array
        labels: (n_examples,) int array of +1/-1
        weights: (n_examples,) float array
    """

    ARRAYS_FILE = "examples.npz"
    METADATA_FILE = "example_set.json"

    def __init__(self, integral_images: np.ndarray, labels: Sequence[int],
                 weights: Optional[Sequence[float]] = None):
        integral_images = np.asarray(integral_images, dtype=np.int64)
        if integral_images.ndim != 3:
            raise ValueError(
                f"Integral images must have shape (n, height + 1, width + 1), got {integral_images.shape}")
        n_examples = integral_images.shape[0]
        if n_examples == 0:
            raise ValueError("Example set is empty")

        labels = np.asarray(labels).astype(np.int64)
        if labels.shape != (n_examples,):
            raise ValueError(f"Expected {n_examples} labels, got shape {labels.shape}")
        if not np.all(np.isin(labels, (-1, 1))):
            raise ValueError("Labels must be +1 or -1")

        if weights is None:
            weights = np.full(n_examples, 1.0 / n_examples)
        weights = np.asarray(weights, dtype=np.float64)
        if weights.shape != (n_examples,):
            raise ValueError(f"Expected {n_examples} weights, got shape {weights.shape}")
        if np.any(weights < 0) or not np.isfinite(weights).all() or weights.sum() <= 0:
            raise ValueError("Weights must be finite, non-negative and sum to a positive value")

        self.integral_images = integral_images
        self.labels = labels
        self.weights = weights
        check_iisize(self.iisize)

    @classmethod
    def from_images(cls, images: Sequence[np.ndarray], labels: Sequence[int],
                    weights: Optional[Sequence[float]] = None) -> 'ExampleSet':
        """Build an example set from same-sized raw images."""
        integrals = [compute_integral_image(image) for image in images]
        shapes = {integral.shape for integral in integrals}
        if len(shapes) > 1:
            raise ValueError(f"All images must have the same size, got integral shapes {sorted(shapes)}")
        stacked = np.stack(integrals) if integrals else np.empty((0, 1, 1), dtype=np.int64)
        logger.info(f"Computed {len(integrals)} integral images")
        return cls(stacked, labels, weights)

    @classmethod
    def from_flattened(cls, rows: np.ndarray, labels: Sequence[int], iisize: Tuple[int, int],
                       weights: Optional[Sequence[float]] = None) -> 'ExampleSet':
        """
        Build an example set from images flattened row by row.

        Args:
            rows: (n_examples, width * height) pixel values
            labels: Example labels
            iisize: (width, height) of each image
            weights: Optional boosting weights
        """
        width, height = check_iisize(iisize)
        rows = np.asarray(rows)
        if rows.ndim != 2 or rows.shape[1] != width * height:
            raise ValueError(f"Rows must have {width * height} values for a {width}x{height} image, "
                             f"got shape {rows.shape}")
        return cls.from_images(list(rows.reshape(-1, height, width)), labels, weights)

    @property
    def iisize(self) -> Tuple[int, int]:
        """(width, height) of the images the integral images were built from."""
        return (self.integral_images.shape[2] - 1, self.integral_images.shape[1] - 1)

    def __len__(self) -> int:
        return self.integral_images.shape[0]

    def normalized_weights(self) -> np.ndarray:
        return self.weights / self.weights.sum()

    def with_weights(self, weights: Sequence[float]) -> 'ExampleSet':
        """Same examples with new boosting weights, as handed over each round."""
        return ExampleSet(self.integral_images, self.labels, weights)

    def save(self, cache_dir: Path) -> Path:
        """Save the example set to ``cache_dir``."""
        cache_dir = Path(cache_dir)
        cache_dir.mkdir(parents=True, exist_ok=True)

        np.savez_compressed(cache_dir / self.ARRAYS_FILE,
                            integral_images=self.integral_images,
                            labels=self.labels,
                            weights=self.weights)

        width, height = self.iisize
        metadata = {
            "num_examples": len(self),
            "iisize": [width, height],
            "num_positive": int(np.sum(self.labels > 0)),
            "num_negative": int(np.sum(self.labels < 0)),
        }
        with open(cache_dir / self.METADATA_FILE, 'w') as f:
            json.dump(metadata, f, indent=2)

        logger.info(f"Example set saved to {cache_dir}: {len(self)} examples, {width}x{height}")
        return cache_dir

    @classmethod
    def load(cls, cache_dir: Path) -> 'ExampleSet':
        """Load an example set saved with :meth:`save`."""
        cache_dir = Path(cache_dir)
        if not cls.exists(cache_dir):
            raise FileNotFoundError(f"Example set not found in {cache_dir}")

        with np.load(cache_dir / cls.ARRAYS_FILE) as arrays:
            examples = cls(arrays['integral_images'], arrays['labels'], arrays['weights'])

        with open(cache_dir / cls.METADATA_FILE, 'r') as f:
            metadata = json.load(f)
        if tuple(metadata.get("iisize", examples.iisize)) != examples.iisize:
            raise ValueError(f"Example set metadata in {cache_dir} does not match its arrays")

        width, height = examples.iisize
        logger.info(f"Example set loaded from {cache_dir}: {len(examples)} examples, {width}x{height}")
        return examples

    @classmethod
    def exists(cls, cache_dir: Path) -> bool:
        cache_dir = Path(cache_dir)
        return all((cache_dir / name).exists() for name in (cls.ARRAYS_FILE, cls.METADATA_FILE))
