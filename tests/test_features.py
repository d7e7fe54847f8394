"""
Tests for feature geometry, feature types, the registry and the evaluator.
"""

import numpy as np
import pytest

from haarboost.exceptions import UnknownFeatureType
from haarboost.features import (
    CandidateConfiguration,
    FeatureEvaluator,
    FeatureRegistry,
    HaarFeatureType,
    Rectangle,
)
from haarboost.features.haar_features import TWO_VERTICAL

from tests.conftest import brute_integral


def reference_response(image: np.ndarray, code: str, rect: Rectangle) -> int:
    """Block sums computed directly on the pixels."""
    x, y, w, h = rect.as_tuple()
    patch = np.asarray(image, dtype=np.int64)[y:y + h, x:x + w]
    if code == '2v':
        return patch[:, :w // 2].sum() - patch[:, w // 2:].sum()
    if code == '2h':
        return patch[:h // 2].sum() - patch[h // 2:].sum()
    if code == '3v':
        b = w // 3
        return patch[:, :b].sum() - patch[:, b:2 * b].sum() + patch[:, 2 * b:].sum()
    if code == '3h':
        b = h // 3
        return patch[:b].sum() - patch[b:2 * b].sum() + patch[2 * b:].sum()
    if code == '4q':
        bw, bh = w // 2, h // 2
        return (patch[:bh, :bw].sum() - patch[:bh, bw:].sum()
                - patch[bh:, :bw].sum() + patch[bh:, bw:].sum())
    raise ValueError(code)


# ---------------------------------------------------------------------------
# Rectangle
# ---------------------------------------------------------------------------

class TestRectangle:

    def test_value_semantics(self):
        assert Rectangle(1, 2, 3, 4) == Rectangle(1, 2, 3, 4)
        assert len({Rectangle(1, 2, 3, 4), Rectangle(1, 2, 3, 4)}) == 1
        assert Rectangle(1, 2, 3, 4).as_tuple() == (1, 2, 3, 4)

    def test_rejects_negative_and_out_of_range(self):
        with pytest.raises(ValueError):
            Rectangle(0, 0, -1, 4)
        with pytest.raises(ValueError):
            Rectangle(0, 0, 32768, 4)
        with pytest.raises(ValueError):
            Rectangle(0, 0, 1.5, 4)

    def test_accepts_numpy_integers(self):
        rect = Rectangle(np.int64(3), np.int16(2), np.int32(4), 5)
        assert rect.as_tuple() == (3, 2, 4, 5)
        assert type(rect.x) is int

    def test_fits(self):
        assert Rectangle(12, 4, 8, 16).fits((20, 20))
        assert not Rectangle(12, 4, 8, 16).fits((19, 20))


# ---------------------------------------------------------------------------
# Feature types
# ---------------------------------------------------------------------------

class TestHaarFeatureType:

    @pytest.mark.parametrize("code, width, height, legal", [
        ('2v', 4, 3, True),
        ('2v', 3, 4, False),
        ('2h', 3, 4, True),
        ('3v', 6, 1, True),
        ('3v', 4, 1, False),
        ('3h', 1, 9, True),
        ('4q', 2, 2, True),
        ('4q', 2, 3, False),
    ])
    def test_legal_sizes(self, registry, code, width, height, legal):
        assert registry.get_feature(code).is_legal_size(width, height) is legal

    @pytest.mark.parametrize("code", ['2v', '2h', '3v', '3h', '4q'])
    def test_responses_match_pixel_sums(self, registry, code):
        rng = np.random.default_rng(11)
        image = rng.integers(0, 256, size=(13, 17))
        integral = brute_integral(image)
        feature_type = registry.get_feature(code)

        rects = [Rectangle(x, y, w, h)
                 for w in feature_type.legal_widths(17)[:3]
                 for h in feature_type.legal_heights(13)[:3]
                 for x, y in [(0, 0), (17 - int(w), 13 - int(h)), (1, 2)]
                 if x + w <= 17 and y + h <= 13]
        for rect in rects:
            assert feature_type(rect).evaluate(integral) == reference_response(image, code, rect)

    def test_two_vertical_is_left_minus_right(self):
        image = np.zeros((4, 4), dtype=np.int64)
        image[:, :2] = 5
        assert TWO_VERTICAL(Rectangle(0, 0, 4, 4)).evaluate(brute_integral(image)) == 40

    def test_evaluate_rejects_rectangles_outside_the_image(self):
        integral = brute_integral(np.ones((4, 4)))
        with pytest.raises(ValueError):
            TWO_VERTICAL(Rectangle(2, 0, 4, 4)).evaluate(integral)

    def test_no_overflow_with_large_sums(self):
        image = np.full((64, 64), 2 ** 20, dtype=np.int64)
        image[:, 32:] = 0
        response = TWO_VERTICAL(Rectangle(0, 0, 64, 64)).evaluate(brute_integral(image))
        assert response == 2 ** 20 * 64 * 32
        assert response > np.iinfo(np.int32).max

    def test_invalid_sign_grid(self):
        with pytest.raises(ValueError):
            HaarFeatureType('xx', 'empty', [])


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestFeatureRegistry:

    def test_default_codes(self, registry):
        assert registry.codes() == ['2v', '2h', '3v', '3h', '4q']
        assert len(registry) == 5
        assert '4q' in registry

    def test_get_feature_unknown(self, registry):
        with pytest.raises(UnknownFeatureType) as exc_info:
            registry.get_feature('9z')
        assert exc_info.value.code == '9z'
        assert '9z' in str(exc_info.value)

    def test_register_is_idempotent(self):
        registry = FeatureRegistry()
        registry.register_type('2v', TWO_VERTICAL)
        registry.register_type('2v', TWO_VERTICAL)
        assert registry.codes() == ['2v']
        assert registry.get_feature('2v') is TWO_VERTICAL

    def test_register_never_replaces(self, registry):
        other = HaarFeatureType('2v', 'other', [[-1, 1]])
        with pytest.raises(ValueError):
            registry.register_type('2v', other)
        assert registry.get_feature('2v') is not other

    def test_register_custom_type(self, registry):
        custom = HaarFeatureType('5c', 'center surround', [[1, 1, 1], [1, -8, 1], [1, 1, 1]])
        registry.register_type('5c', custom)
        assert registry.get_feature('5c') is custom
        assert registry.codes()[-1] == '5c'

    def test_register_rejects_plain_callables(self, registry):
        def factory(rect):
            return rect

        with pytest.raises(TypeError):
            registry.register_type('pf', factory)
        assert 'pf' not in registry

    @pytest.mark.parametrize("type_list, expected", [
        (None, ['2v', '2h', '3v', '3h', '4q']),
        ('', ['2v', '2h', '3v', '3h', '4q']),
        ('2v2h3v', ['2v', '2h', '3v']),
        ('4q, 2v', ['4q', '2v']),
        ('2V2v', ['2v']),
    ])
    def test_parse_types(self, registry, type_list, expected):
        assert registry.parse_types(type_list) == expected

    def test_parse_types_errors(self, registry):
        with pytest.raises(UnknownFeatureType):
            registry.parse_types('2v9z')
        with pytest.raises(ValueError):
            registry.parse_types('2v3')


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------

class TestFeatureEvaluator:

    def test_evaluate_single_candidate(self, registry):
        image = np.arange(36).reshape(6, 6)
        evaluator = FeatureEvaluator(registry)
        candidate = CandidateConfiguration('2h', Rectangle(1, 0, 3, 6))
        assert evaluator.evaluate(candidate, brute_integral(image)) == \
            reference_response(image, '2h', candidate.rect)

    def test_evaluate_unknown_type(self, registry):
        evaluator = FeatureEvaluator(registry)
        with pytest.raises(UnknownFeatureType):
            evaluator.evaluate(CandidateConfiguration('9z', Rectangle(0, 0, 2, 2)), np.zeros((3, 3)))

    def test_evaluate_batch_shape_and_values(self, registry, noisy_examples):
        evaluator = FeatureEvaluator(registry)
        rects = np.array([[0, 0, 2, 2], [1, 1, 4, 4], [4, 2, 4, 8]])
        responses = evaluator.evaluate_batch('4q', rects, noisy_examples.integral_images)

        assert responses.shape == (3, len(noisy_examples))
        assert responses.dtype == np.int64
        for row, rect in enumerate(rects):
            candidate = CandidateConfiguration('4q', Rectangle(*rect))
            for col, integral in enumerate(noisy_examples.integral_images):
                assert responses[row, col] == evaluator.evaluate(candidate, integral)

    def test_evaluate_batch_empty(self, registry, noisy_examples):
        evaluator = FeatureEvaluator(registry)
        responses = evaluator.evaluate_batch('2v', np.empty((0, 4)), noisy_examples.integral_images)
        assert responses.shape == (0, len(noisy_examples))

    def test_evaluate_candidates_mixed_types(self, registry, noisy_examples):
        evaluator = FeatureEvaluator(registry)
        candidates = [CandidateConfiguration('2v', Rectangle(0, 0, 4, 4)),
                      CandidateConfiguration('3h', Rectangle(1, 1, 2, 6))]
        responses = evaluator.evaluate_candidates(candidates, noisy_examples.integral_images)
        assert responses.shape == (2, len(noisy_examples))
        assert responses[1, 0] == evaluator.evaluate(candidates[1], noisy_examples.integral_images[0])
