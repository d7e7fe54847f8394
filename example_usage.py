"""
Example usage of the Haar weak learner
======================================

Builds a small synthetic example set, runs one search round per sampling
mode and saves/reloads the selected feature.
"""

import io
import logging

import numpy as np

from haarboost.data import ExampleSet
from haarboost.features import default_registry
from haarboost.training import (
    ConfigurationSampler,
    FeatureSerializer,
    HaarLearner,
    SamplingPolicy,
    TagReader,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def make_examples(n_per_class: int = 20, size: int = 24, seed: int = 0) -> ExampleSet:
    """Positives have a bright left half, negatives are uniform noise."""
    rng = np.random.default_rng(seed)
    images, labels = [], []
    for label in (1, -1):
        for _ in range(n_per_class):
            image = rng.integers(0, 64, size=(size, size), dtype=np.uint8)
            if label > 0:
                image[:, :size // 2] += 128
            images.append(image)
            labels.append(label)
    return ExampleSet.from_images(images, labels)


def example_search(policy: SamplingPolicy):
    registry = default_registry()
    examples = make_examples()
    learner = HaarLearner(registry, ConfigurationSampler(policy, registry), feature_types=['2v', '2h'])

    logger.info("=" * 60)
    logger.info(f"EXAMPLE: search with {policy.describe()}")
    logger.info("=" * 60)
    selected = learner.select(examples)
    logger.info(f"Selected {selected.code} {selected.rect.as_tuple()} error={selected.score:.4f}")

    buffer = io.StringIO()
    learner.save(buffer)
    logger.info("Saved record:\n" + buffer.getvalue())

    reloaded = FeatureSerializer(registry).load(TagReader.from_text(buffer.getvalue()))
    logger.info(f"Reloaded {reloaded.code} {reloaded.rect.as_tuple()}")


if __name__ == "__main__":
    example_search(SamplingPolicy.parse())
    example_search(SamplingPolicy.parse('num', 500, seed=7))
    example_search(SamplingPolicy.parse('time', 0.5, seed=7))
