"""
Scoring callbacks used to rank candidate features.

A scorer follows the contract ``score(responses, weights, labels) -> float``:
it receives the responses of one candidate on every example, together with
the example weights and labels (+1/-1), and returns one comparable score.
The learner keeps the lowest score unless told otherwise.

Batch scorers, marked with :func:`batch_scorer`, take the responses of a
whole batch of candidates, shape (n_candidates, n_examples), and return one
score per row. The built-in scorers are batch scorers.
"""

import functools
from typing import Callable, Dict

import numpy as np

ColumnScorer = Callable[[np.ndarray, np.ndarray, np.ndarray], float]
Scorer = Callable[[np.ndarray, np.ndarray, np.ndarray], np.ndarray]


def batch_scorer(scorer: Scorer) -> Scorer:
    """Mark ``scorer`` as taking a (n_candidates, n_examples) response matrix."""
    scorer.batched = True
    return scorer


@batch_scorer
def weighted_stump_error(responses: np.ndarray, weights: np.ndarray,
                         labels: np.ndarray) -> np.ndarray:
    """
    Weighted error of the best decision stump on each candidate's responses.

    For every row, each threshold between two distinct sorted responses (and
    below/above all of them) is tried with both polarities, and the smallest
    weighted misclassification is kept.

    Args:
        responses: (n_candidates, n_examples) response matrix
        weights: (n_examples,) non-negative example weights
        labels: (n_examples,) labels in {-1, +1}

    Returns:
        (n_candidates,) array of weighted errors
    """
    responses = np.atleast_2d(np.asarray(responses, dtype=np.float64))
    weights = np.asarray(weights, dtype=np.float64)
    labels = np.asarray(labels)
    n_candidates, n_examples = responses.shape

    order = np.argsort(responses, axis=1, kind='stable')
    sorted_responses = np.take_along_axis(responses, order, axis=1)
    pos_weights = np.where(labels > 0, weights, 0.0)[order]
    neg_weights = np.where(labels < 0, weights, 0.0)[order]

    zeros = np.zeros((n_candidates, 1))
    cum_pos = np.concatenate([zeros, np.cumsum(pos_weights, axis=1)], axis=1)
    cum_neg = np.concatenate([zeros, np.cumsum(neg_weights, axis=1)], axis=1)

    # Cut k: the k smallest responses are predicted -1, the rest +1
    error = cum_pos + (cum_neg[:, -1:] - cum_neg)
    error = np.minimum(error, weights.sum() - error)

    # A cut between two equal responses is not a threshold
    valid = np.ones((n_candidates, n_examples + 1), dtype=bool)
    valid[:, 1:-1] = sorted_responses[:, 1:] > sorted_responses[:, :-1]
    return np.where(valid, error, np.inf).min(axis=1)


@batch_scorer
def weighted_correlation_score(responses: np.ndarray, weights: np.ndarray,
                               labels: np.ndarray) -> np.ndarray:
    """
    Negative absolute weighted Pearson correlation between responses and labels.

    Constant responses have zero correlation.
    """
    responses = np.atleast_2d(np.asarray(responses, dtype=np.float64))
    weights = np.asarray(weights, dtype=np.float64)
    labels = np.asarray(labels, dtype=np.float64)
    total = weights.sum()

    centered_r = responses - (responses * weights).sum(axis=1, keepdims=True) / total
    centered_y = labels - (labels * weights).sum() / total
    cov = (centered_r * centered_y * weights).sum(axis=1) / total
    var_r = (centered_r ** 2 * weights).sum(axis=1) / total
    var_y = (centered_y ** 2 * weights).sum() / total

    denom = np.sqrt(var_r * var_y)
    corr = np.divide(cov, denom, out=np.zeros_like(cov), where=denom > 0)
    return -np.abs(corr)


def per_candidate(scorer: ColumnScorer) -> Scorer:
    """Adapt a scorer of a single response column to the batch contract."""

    @batch_scorer
    @functools.wraps(scorer)
    def wrapped(responses, weights, labels):
        responses = np.atleast_2d(responses)
        return np.array([scorer(row, weights, labels) for row in responses], dtype=np.float64)

    return wrapped


SCORERS: Dict[str, Scorer] = {
    'stump_error': weighted_stump_error,
    'correlation': weighted_correlation_score,
}


def get_scorer(name: str) -> Scorer:
    """Look up a built-in scorer by name."""
    try:
        return SCORERS[name]
    except KeyError:
        raise ValueError(f"Unknown scorer '{name}'. Available: {sorted(SCORERS)}") from None
