"""
Haar-like weak learner.

Each boosting round, the learner searches the requested feature types for the
configuration that best separates the weighted examples under the scoring
callback supplied by the boosting loop, and keeps it as the round's selected
feature.
"""

import logging
from itertools import islice
from typing import Any, Dict, Iterator, Optional, Sequence, TextIO, Tuple

import numpy as np
from joblib import Parallel, delayed
from sklearn.tree import DecisionTreeClassifier
from tqdm import tqdm

from ..data.example_set import ExampleSet
from ..exceptions import HaarLearnerError, NoCandidateAvailable
from ..features.evaluator import FeatureEvaluator
from ..features.geometry import Rectangle
from ..features.haar_features import CandidateConfiguration, SelectedFeature
from ..features.registry import FeatureRegistry
from ..utils.config import Config, parse_iisize
from .model_persistence import FeatureSerializer, TagReader
from .sampling import CandidateSequence, ConfigurationSampler, RandomTimeSequence, SamplingPolicy
from .scoring import Scorer, get_scorer, per_candidate, weighted_stump_error

logger = logging.getLogger(__name__)


class HaarLearner:
    """
    Selects one Haar-like feature per boosting round.

    Candidates are enumerated type by type in the requested order and scored
    batch by batch. Only a strictly better score replaces the current best,
    so ties go to the candidate found first.
    """

    def __init__(self,
                 registry: FeatureRegistry,
                 sampler: ConfigurationSampler,
                 scorer: Scorer = weighted_stump_error,
                 batched_scorer: Optional[bool] = None,
                 feature_types: Optional[Sequence[str]] = None,
                 minimize: bool = True,
                 n_jobs: int = 1,
                 show_progress: bool = False,
                 iisize: Optional[Tuple[int, int]] = None):
        """
        Initialize the learner.

        Args:
            registry: Feature registry used to resolve type codes
            sampler: Candidate sampler built from the run's sampling policy
            scorer: ``score(responses, weights, labels) -> float`` callback applied to
                each candidate's column of responses
            batched_scorer: Whether ``scorer`` takes a whole (n_candidates, n_examples)
                batch and returns one score per row (default: its ``batched`` mark)
            feature_types: Requested type codes (default: every registered type)
            minimize: Whether lower scores are better
            n_jobs: Number of threads evaluating exhaustive/count batches
            show_progress: Show a tqdm progress bar per feature type
            iisize: Expected (width, height) of the examples' integral images
        """
        self.registry = registry
        self.sampler = sampler
        if batched_scorer is None:
            batched_scorer = getattr(scorer, 'batched', False)
        self.scorer = scorer if batched_scorer else per_candidate(scorer)
        self.minimize = minimize
        self.n_jobs = n_jobs
        self.show_progress = show_progress
        self.iisize = iisize
        self.evaluator = FeatureEvaluator(registry)
        self.serializer = FeatureSerializer(registry)

        if feature_types is None:
            feature_types = registry.codes()
        if not feature_types:
            raise ValueError("At least one feature type must be requested")
        for code in feature_types:
            registry.get_feature(code)
        self.feature_types = list(feature_types)

        self.selected: Optional[SelectedFeature] = None

    @classmethod
    def from_config(cls, config: Config, registry: FeatureRegistry) -> 'HaarLearner':
        """Build a learner from the ``features``, ``sampling``, ``scoring`` and ``search`` sections."""
        features_cfg = config.features
        scoring_cfg = config.scoring
        search_cfg = config.search

        types = features_cfg.get('types')
        if isinstance(types, (list, tuple)):
            types = ''.join(types)
        iisize = features_cfg.get('iisize')

        policy = SamplingPolicy.from_config(config.sampling)
        sampler = ConfigurationSampler(policy, registry, batch_size=search_cfg.get('batch_size', 4096))
        logger.info(f"Sampling policy: {policy.describe()}, seed={policy.seed}")

        return cls(
            registry,
            sampler,
            scorer=get_scorer(scoring_cfg.get('scorer', 'stump_error')),
            feature_types=registry.parse_types(types),
            minimize=scoring_cfg.get('minimize', True),
            n_jobs=search_cfg.get('n_jobs', 1),
            show_progress=search_cfg.get('show_progress', True),
            iisize=parse_iisize(iisize) if iisize is not None else None,
        )

    def _key(self, scores: np.ndarray) -> np.ndarray:
        """Scores mapped so that lower is better; NaN ranks last."""
        key = scores if self.minimize else -scores
        return np.where(np.isnan(key), np.inf, key)

    def _better(self, score: float, other: float) -> bool:
        keys = self._key(np.array([score, other], dtype=np.float64))
        return bool(keys[0] < keys[1])

    def _score_batch(self, code: str, rects: np.ndarray, examples: ExampleSet) -> np.ndarray:
        responses = self.evaluator.evaluate_batch(code, rects, examples.integral_images)
        try:
            scores = self.scorer(responses, examples.weights, examples.labels)
        except Exception as e:
            raise HaarLearnerError(f"Scoring '{code}' candidates failed: {e}", stage='score') from e
        scores = np.asarray(scores, dtype=np.float64).reshape(-1)
        if scores.shape != (len(rects),):
            raise HaarLearnerError(
                f"Scorer returned {scores.size} scores for {len(rects)} '{code}' candidates",
                stage='score')
        return scores

    def _scored_batches(self, code: str, sequence: CandidateSequence,
                        examples: ExampleSet) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        """Yield (rects, scores) batches in enumeration order."""
        batches = sequence.batches()
        if self.n_jobs == 1 or isinstance(sequence, RandomTimeSequence):
            for rects in batches:
                yield rects, self._score_batch(code, rects, examples)
            return

        # Batches are drawn sequentially and scored in parallel; results keep input order
        group_size = 4 * (self.n_jobs if self.n_jobs > 0 else 8)
        with Parallel(n_jobs=self.n_jobs, prefer='threads') as parallel:
            while True:
                group = list(islice(batches, group_size))
                if not group:
                    return
                scores = parallel(delayed(self._score_batch)(code, rects, examples) for rects in group)
                yield from zip(group, scores)

    def _search_type(self, code: str, examples: ExampleSet) -> Optional[SelectedFeature]:
        """Best candidate of one feature type, or None when none was produced."""
        sequence = self.sampler.sequence(code, examples.iisize)
        total = len(sequence) if hasattr(sequence, '__len__') else None

        best_key = np.inf
        best_score = None
        best_rect = None
        evaluated = 0
        with tqdm(total=total, desc=f"Searching {code}", unit='cand',
                  disable=not self.show_progress, leave=False) as progress:
            for rects, scores in self._scored_batches(code, sequence, examples):
                evaluated += len(rects)
                progress.update(len(rects))
                keys = self._key(scores)
                index = int(np.argmin(keys))
                if best_rect is None or keys[index] < best_key:
                    best_key = keys[index]
                    best_score = float(scores[index])
                    best_rect = rects[index]

        if best_rect is None:
            logger.warning(f"No candidate evaluated for feature type '{code}'")
            return None

        rect = Rectangle(*(int(v) for v in best_rect))
        logger.info(f"Type '{code}': {evaluated} candidates, best {rect.as_tuple()} score={best_score:.6g}")
        return SelectedFeature(CandidateConfiguration(code, rect), self.registry.get_feature(code), best_score)

    def select(self, examples: ExampleSet) -> SelectedFeature:
        """
        Run the search of one boosting round.

        Args:
            examples: Integral images, labels and this round's weights

        Returns:
            The selected feature

        Raises:
            NoCandidateAvailable: If no requested type produced a candidate
        """
        if self.iisize is not None and tuple(self.iisize) != examples.iisize:
            raise ValueError(f"Examples are {examples.iisize[0]}x{examples.iisize[1]} but the integral "
                             f"image size is configured as {self.iisize[0]}x{self.iisize[1]}")

        best = None
        for code in self.feature_types:
            candidate = self._search_type(code, examples)
            if candidate is None:
                continue
            if best is None or self._better(candidate.score, best.score):
                best = candidate

        if best is None:
            raise NoCandidateAvailable(self.feature_types, examples.iisize)

        logger.info(f"Selected feature '{best.code}' at {best.rect.as_tuple()} with score {best.score:.6g}")
        self.selected = best
        return best

    def fit_stump(self, examples: ExampleSet,
                  selected: Optional[SelectedFeature] = None) -> DecisionTreeClassifier:
        """
        Fit a weighted decision stump on the responses of the selected feature.

        Gives the boosting loop a ready-to-use weak classifier for the round.
        """
        responses = self.responses(examples, selected)
        stump = DecisionTreeClassifier(max_depth=1)
        stump.fit(responses.reshape(-1, 1), examples.labels, sample_weight=examples.weights)
        return stump

    def responses(self, examples: ExampleSet,
                  selected: Optional[SelectedFeature] = None) -> np.ndarray:
        """Responses of the selected feature on every example."""
        selected = selected or self.selected
        if selected is None:
            raise HaarLearnerError("No feature has been selected", stage='search')
        return self.evaluator.evaluate_batch(
            selected.code, [selected.rect.as_tuple()], examples.integral_images)[0]

    def save(self, stream: TextIO, depth: int = 0) -> None:
        """Write the selected feature to ``stream``."""
        self.serializer.save(self.selected, stream, depth)

    def load(self, reader: TagReader) -> SelectedFeature:
        """Restore the selected feature from the next record of ``reader``."""
        self.selected = self.serializer.load(reader)
        return self.selected

    def describe(self) -> Dict[str, Any]:
        return {
            'feature_types': self.feature_types,
            'sampling': self.sampler.policy.describe(),
            'seed': self.sampler.policy.seed,
            'scorer': getattr(self.scorer, '__name__', repr(self.scorer)),
            'minimize': self.minimize,
        }
