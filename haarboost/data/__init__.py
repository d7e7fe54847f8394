"""Data package initialization."""

from .example_set import ExampleSet, compute_integral_image

__all__ = ['ExampleSet', 'compute_integral_image']
