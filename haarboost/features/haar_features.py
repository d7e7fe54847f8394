"""
Haar-like feature types.

A feature type is a grid of equally sized blocks, each block weighted +1 or -1.
The response of a feature placed on a rectangle is the signed sum of the pixel
sums of its blocks, read in O(1) per block from an integral image.

Integral images follow the OpenCV layout: shape (height + 1, width + 1) with a
zero first row and column, so ``ii[y, x]`` is the sum of all pixels above and
to the left of (x, y).
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .geometry import Rectangle


def rect_sums(integral_images: np.ndarray,
              x0: np.ndarray, y0: np.ndarray,
              x1: np.ndarray, y1: np.ndarray) -> np.ndarray:
    """
    Pixel sums of many rectangles over many integral images.

    Args:
        integral_images: (n_examples, height + 1, width + 1) int64 array
        x0, y0: Top-left corners, one entry per rectangle
        x1, y1: Exclusive bottom-right corners, one entry per rectangle

    Returns:
        (n_examples, n_rects) int64 array of block sums
    """
    return (integral_images[:, y1, x1]
            - integral_images[:, y0, x1]
            - integral_images[:, y1, x0]
            + integral_images[:, y0, x0])


class HaarFeatureType:
    """
    Descriptor of one Haar-like feature shape.

    Calling the descriptor with a rectangle builds the feature placed on it,
    which is what the registry hands out when resolving a type code.
    """

    def __init__(self, code: str, name: str, signs):
        self.code = code
        self.name = name
        self.signs = np.asarray(signs, dtype=np.int64)
        if self.signs.ndim != 2 or self.signs.size == 0:
            raise ValueError(f"Block signs for '{code}' must be a non-empty 2D grid")
        self.block_rows, self.block_cols = self.signs.shape

    def __repr__(self) -> str:
        return f"HaarFeatureType(code={self.code!r}, blocks={self.block_cols}x{self.block_rows})"

    def __call__(self, rect: Rectangle) -> 'HaarFeature':
        return HaarFeature(self, rect)

    def is_legal_size(self, width: int, height: int) -> bool:
        return (width > 0 and height > 0
                and width % self.block_cols == 0
                and height % self.block_rows == 0)

    def legal_widths(self, image_width: int) -> np.ndarray:
        return np.arange(self.block_cols, image_width + 1, self.block_cols, dtype=np.int64)

    def legal_heights(self, image_height: int) -> np.ndarray:
        return np.arange(self.block_rows, image_height + 1, self.block_rows, dtype=np.int64)

    def count_configurations(self, iisize: Tuple[int, int]) -> int:
        """
        Number of legal rectangles on an image of size (width, height).

        Widths and positions along x are independent of heights and positions
        along y, so the count is the product of
        ``sum(W - w + 1 for legal w)`` and ``sum(H - h + 1 for legal h)``.
        """
        image_width, image_height = iisize
        n_x = int(np.sum(image_width - self.legal_widths(image_width) + 1))
        n_y = int(np.sum(image_height - self.legal_heights(image_height) + 1))
        return n_x * n_y

    def responses(self, integral_images: np.ndarray, rects: np.ndarray) -> np.ndarray:
        """
        Vectorized responses of this feature type.

        Args:
            integral_images: (n_examples, height + 1, width + 1) int64 array
            rects: (n_rects, 4) integer array of (x, y, width, height)

        Returns:
            (n_rects, n_examples) int64 array of responses
        """
        rects = np.asarray(rects, dtype=np.int64).reshape(-1, 4)
        x, y, width, height = rects.T
        block_w = width // self.block_cols
        block_h = height // self.block_rows

        total = np.zeros((integral_images.shape[0], rects.shape[0]), dtype=np.int64)
        for row in range(self.block_rows):
            y0 = y + row * block_h
            y1 = y0 + block_h
            for col in range(self.block_cols):
                x0 = x + col * block_w
                x1 = x0 + block_w
                total += self.signs[row, col] * rect_sums(integral_images, x0, y0, x1, y1)
        return total.T


@dataclass(frozen=True)
class CandidateConfiguration:
    """A feature type code paired with the rectangle it is placed on."""
    code: str
    rect: Rectangle


@dataclass(frozen=True)
class HaarFeature:
    """A feature type placed on a concrete rectangle."""
    feature_type: HaarFeatureType
    rect: Rectangle

    @property
    def code(self) -> str:
        return self.feature_type.code

    def evaluate(self, integral_image: np.ndarray) -> int:
        """Response of the feature on a single (height + 1, width + 1) integral image."""
        integral_image = np.asarray(integral_image, dtype=np.int64)
        if integral_image.ndim != 2:
            raise ValueError(f"Expected a 2D integral image, got shape {integral_image.shape}")
        iisize = (integral_image.shape[1] - 1, integral_image.shape[0] - 1)
        if not self.rect.fits(iisize):
            raise ValueError(f"Rectangle {self.rect} does not fit a {iisize[0]}x{iisize[1]} image")
        response = self.feature_type.responses(integral_image[np.newaxis], [self.rect.as_tuple()])
        return int(response[0, 0])


@dataclass(frozen=True)
class SelectedFeature:
    """
    Winner of a boosting round.

    Attributes:
        candidate: Type code and rectangle of the winning configuration
        feature_type: Registered descriptor the code resolved to
        score: Score given by the scoring callback (None when loaded from disk)
    """
    candidate: CandidateConfiguration
    feature_type: HaarFeatureType
    score: Optional[float] = None

    @property
    def code(self) -> str:
        return self.candidate.code

    @property
    def rect(self) -> Rectangle:
        return self.candidate.rect

    @property
    def feature(self) -> HaarFeature:
        return self.feature_type(self.candidate.rect)


# Left/right split: left minus right
TWO_VERTICAL = HaarFeatureType('2v', '2 blocks vertical', [[1, -1]])
# Top/bottom split: top minus bottom
TWO_HORIZONTAL = HaarFeatureType('2h', '2 blocks horizontal', [[1], [-1]])
THREE_VERTICAL = HaarFeatureType('3v', '3 blocks vertical', [[1, -1, 1]])
THREE_HORIZONTAL = HaarFeatureType('3h', '3 blocks horizontal', [[1], [-1], [1]])
FOUR_SQUARED = HaarFeatureType('4q', '4 blocks squared', [[1, -1], [-1, 1]])

BUILTIN_FEATURE_TYPES = (
    TWO_VERTICAL,
    TWO_HORIZONTAL,
    THREE_VERTICAL,
    THREE_HORIZONTAL,
    FOUR_SQUARED,
)
