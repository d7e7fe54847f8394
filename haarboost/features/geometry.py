"""
Rectangle geometry shared by the sampler, the evaluator and the serializer.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

INT16_MIN = -32768
INT16_MAX = 32767


def check_int16(name: str, value) -> int:
    """Return ``value`` as an int, rejecting anything outside the signed 16-bit range."""
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, np.integer)):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    value = int(value)
    if value < INT16_MIN or value > INT16_MAX:
        raise ValueError(f"{name}={value} does not fit in a signed 16-bit integer")
    return value


@dataclass(frozen=True)
class Rectangle:
    """
    Position and size of a feature inside the integral image.

    Attributes:
        x: Left column of the feature
        y: Top row of the feature
        width: Width in pixels
        height: Height in pixels
    """
    x: int
    y: int
    width: int
    height: int

    def __post_init__(self):
        for name in ('x', 'y', 'width', 'height'):
            value = check_int16(name, getattr(self, name))
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")
            object.__setattr__(self, name, value)

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    def fits(self, iisize: Tuple[int, int]) -> bool:
        """Whether the rectangle lies inside an image of size (width, height)."""
        width, height = iisize
        return self.x + self.width <= width and self.y + self.height <= height


def check_iisize(iisize) -> Tuple[int, int]:
    """Validate an integral image size given as (width, height)."""
    try:
        width, height = iisize
    except (TypeError, ValueError):
        raise ValueError(f"Integral image size must be a (width, height) pair, got {iisize!r}")
    width = check_int16('width', width)
    height = check_int16('height', height)
    if width < 0 or height < 0:
        raise ValueError(f"Integral image size must be non-negative, got {width}x{height}")
    return width, height
