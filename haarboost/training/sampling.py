"""
Candidate configuration sampling.

Decides which (position, size) configurations of a feature type are evaluated
in a boosting round: every legal one, a fixed number of random ones, or as
many random ones as fit in a time budget.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Optional, Tuple, Union

import numpy as np

from ..features.geometry import Rectangle, check_iisize
from ..features.haar_features import HaarFeatureType
from ..features.registry import FeatureRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Exhaustive:
    """Evaluate every legal configuration."""


@dataclass(frozen=True)
class BoundedByCount:
    """Evaluate ``count`` random configurations per type per round."""
    count: int

    def __post_init__(self):
        if int(self.count) < 0:
            raise ValueError(f"Sample count must be non-negative, got {self.count}")


@dataclass(frozen=True)
class BoundedByTime:
    """Draw random configurations for ``seconds`` per type per round."""
    seconds: float

    def __post_init__(self):
        if float(self.seconds) < 0:
            raise ValueError(f"Time budget must be non-negative, got {self.seconds}")


SamplingMode = Union[Exhaustive, BoundedByCount, BoundedByTime]


@dataclass(frozen=True)
class SamplingPolicy:
    """
    How candidates are chosen, fixed for the whole training run.

    Attributes:
        mode: Exhaustive, BoundedByCount or BoundedByTime
        seed: Seed of the generator used by the random modes (None = OS entropy)
    """
    mode: SamplingMode = field(default_factory=Exhaustive)
    seed: Optional[int] = None

    SAMPLING_OPTIONS = ('num', 'time')

    @classmethod
    def parse(cls, option: Optional[str] = None, value=None,
              seed: Optional[int] = None) -> 'SamplingPolicy':
        """
        Build a policy from the ``csample <opt> <value>`` pair.

        Args:
            option: 'num', 'time' or None for exhaustive search
            value: Number of candidates ('num') or seconds ('time')
            seed: Optional random seed

        Raises:
            ValueError: If the option is unknown or the value is not positive
        """
        if seed is not None:
            seed = int(seed)
        if option is None:
            return cls(Exhaustive(), seed)

        option = option.strip().lower()
        if option not in cls.SAMPLING_OPTIONS:
            raise ValueError(f"Unknown sampling option '{option}'. Options: {list(cls.SAMPLING_OPTIONS)}")
        if value is None:
            raise ValueError(f"Sampling option '{option}' requires a value")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid sampling value for '{option}': {value!r}") from None
        if number <= 0:
            raise ValueError(f"Sampling value for '{option}' must be positive, got {value!r}")

        if option == 'num':
            if not number.is_integer():
                raise ValueError(f"Number of samples must be an integer, got {value!r}")
            return cls(BoundedByCount(int(number)), seed)
        return cls(BoundedByTime(number), seed)

    @classmethod
    def from_config(cls, sampling_config: Dict[str, Any]) -> 'SamplingPolicy':
        """Build a policy from the ``sampling`` configuration section."""
        sampling_config = sampling_config or {}
        return cls.parse(sampling_config.get('option'),
                         sampling_config.get('value'),
                         sampling_config.get('seed'))

    @property
    def is_random(self) -> bool:
        return not isinstance(self.mode, Exhaustive)

    def describe(self) -> str:
        if isinstance(self.mode, BoundedByCount):
            return f"num {self.mode.count}"
        if isinstance(self.mode, BoundedByTime):
            return f"time {self.mode.seconds:g}s"
        return "exhaustive"


class CandidateSequence(ABC):
    """
    Lazy sequence of legal rectangles of one feature type.

    Iterating yields Rectangle objects; ``batches()`` yields the same
    candidates as (n, 4) arrays of (x, y, width, height), which is what the
    learner consumes.
    """

    def __init__(self, feature_type: HaarFeatureType, iisize: Tuple[int, int], batch_size: int):
        self.feature_type = feature_type
        self.iisize = iisize
        self.batch_size = max(1, int(batch_size))

    @abstractmethod
    def batches(self) -> Iterator[np.ndarray]:
        """Candidates as (n, 4) int64 arrays of (x, y, width, height)."""

    def __iter__(self) -> Iterator[Rectangle]:
        for batch in self.batches():
            for x, y, width, height in batch.tolist():
                yield Rectangle(x, y, width, height)


class ExhaustiveSequence(CandidateSequence):
    """
    Every legal rectangle, ordered by width, height, y, then x.

    Finite and restartable: each iteration starts from the first rectangle.
    """

    def __len__(self) -> int:
        return self.feature_type.count_configurations(self.iisize)

    def batches(self) -> Iterator[np.ndarray]:
        image_width, image_height = self.iisize
        for width in self.feature_type.legal_widths(image_width):
            xs = np.arange(image_width - width + 1, dtype=np.int64)
            rows_per_batch = max(1, self.batch_size // len(xs))
            for height in self.feature_type.legal_heights(image_height):
                n_rows = image_height - height + 1
                for start in range(0, n_rows, rows_per_batch):
                    ys = np.arange(start, min(start + rows_per_batch, n_rows), dtype=np.int64)
                    grid_y, grid_x = np.meshgrid(ys, xs, indexing='ij')
                    batch = np.empty((grid_x.size, 4), dtype=np.int64)
                    batch[:, 0] = grid_x.ravel()
                    batch[:, 1] = grid_y.ravel()
                    batch[:, 2] = width
                    batch[:, 3] = height
                    yield batch


class _UniformDrawer:
    """
    Uniform draws over the legal (position, size) space of a feature type.

    The (width, x) pairs and the (height, y) pairs are independent, so one
    integer drawn in [0, n_x * n_y) is split into an index of each and decoded
    through the cumulative position counts per size.
    """

    def __init__(self, feature_type: HaarFeatureType, iisize: Tuple[int, int]):
        image_width, image_height = iisize
        self.widths = feature_type.legal_widths(image_width)
        self.heights = feature_type.legal_heights(image_height)
        positions_x = image_width - self.widths + 1
        positions_y = image_height - self.heights + 1
        self.cum_x = np.cumsum(positions_x)
        self.cum_y = np.cumsum(positions_y)
        # First flat index of each size
        self.start_x = self.cum_x - positions_x
        self.start_y = self.cum_y - positions_y
        self.n_x = int(self.cum_x[-1]) if len(self.cum_x) else 0
        self.n_y = int(self.cum_y[-1]) if len(self.cum_y) else 0
        self.total = self.n_x * self.n_y

    def draw(self, rng: np.random.Generator, size: int) -> np.ndarray:
        flat = rng.integers(0, self.total, size=size, dtype=np.int64)
        index_x = flat // self.n_y
        index_y = flat % self.n_y

        width_idx = np.searchsorted(self.cum_x, index_x, side='right')
        height_idx = np.searchsorted(self.cum_y, index_y, side='right')
        batch = np.empty((size, 4), dtype=np.int64)
        batch[:, 0] = index_x - self.start_x[width_idx]
        batch[:, 1] = index_y - self.start_y[height_idx]
        batch[:, 2] = self.widths[width_idx]
        batch[:, 3] = self.heights[height_idx]
        return batch


class RandomCountSequence(CandidateSequence):
    """``count`` uniform draws; duplicates are allowed."""

    def __init__(self, feature_type, iisize, batch_size, rng: np.random.Generator, count: int):
        super().__init__(feature_type, iisize, batch_size)
        self.rng = rng
        self.count = int(count)
        self._drawer = _UniformDrawer(feature_type, iisize)

    def __len__(self) -> int:
        return self.count if self._drawer.total else 0

    def batches(self) -> Iterator[np.ndarray]:
        if self._drawer.total == 0:
            return
        remaining = self.count
        while remaining > 0:
            size = min(self.batch_size, remaining)
            yield self._drawer.draw(self.rng, size)
            remaining -= size


class RandomTimeSequence(CandidateSequence):
    """
    Uniform draws until the time budget of this type is spent.

    The clock starts when iteration starts and is checked before every single
    draw, so the budget is overrun by at most one candidate's evaluation.
    """

    def __init__(self, feature_type, iisize, rng: np.random.Generator, seconds: float,
                 clock: Callable[[], float] = time.monotonic):
        super().__init__(feature_type, iisize, batch_size=1)
        self.rng = rng
        self.seconds = float(seconds)
        self.clock = clock
        self.drawn = 0
        self._drawer = _UniformDrawer(feature_type, iisize)

    def batches(self) -> Iterator[np.ndarray]:
        if self._drawer.total == 0:
            return
        start = self.clock()
        while self.clock() - start < self.seconds:
            self.drawn += 1
            yield self._drawer.draw(self.rng, 1)


class ConfigurationSampler:
    """
    Produces the candidate sequence of a feature type under a sampling policy.

    The random generator is seeded once and shared by every sequence this
    sampler creates, so a fixed seed reproduces the whole candidate stream of
    a training run.
    """

    def __init__(self, policy: SamplingPolicy, registry: FeatureRegistry,
                 batch_size: int = 4096, clock: Callable[[], float] = time.monotonic):
        self.policy = policy
        self.registry = registry
        self.batch_size = batch_size
        self.clock = clock
        self.rng = np.random.default_rng(policy.seed)

    def sequence(self, code: str, iisize: Tuple[int, int]) -> CandidateSequence:
        """
        Candidate sequence for one feature type.

        Args:
            code: Feature type code
            iisize: (width, height) of the integral image representation

        Returns:
            Lazy candidate sequence, possibly empty

        Raises:
            UnknownFeatureType: If the code is not registered
        """
        feature_type = self.registry.get_feature(code)
        iisize = check_iisize(iisize)
        mode = self.policy.mode

        if isinstance(mode, BoundedByCount):
            sequence = RandomCountSequence(feature_type, iisize, self.batch_size, self.rng, mode.count)
        elif isinstance(mode, BoundedByTime):
            sequence = RandomTimeSequence(feature_type, iisize, self.rng, mode.seconds, self.clock)
        else:
            sequence = ExhaustiveSequence(feature_type, iisize, self.batch_size)

        logger.debug(f"Sampling '{code}' on {iisize[0]}x{iisize[1]}: {self.policy.describe()}")
        return sequence
