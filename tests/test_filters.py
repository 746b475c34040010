"""
자세 누적기 단위 테스트
"""

import numpy as np
import pytest

from atlas_fusion.errors import InvalidSample
from atlas_fusion.fusion.filters import (
    FusionMode,
    PassThrough,
    WeightedMean,
    create_accumulator
)
from atlas_fusion.geometry.transform import Quaternion, Transform


def _flip(q: Quaternion) -> Quaternion:
    return Quaternion(x=-q.x, y=-q.y, z=-q.z, w=-q.w)


class TestWeightedMeanVector:
    """위치 채널 테스트"""

    def test_mean(self):
        acc = WeightedMean()
        acc.add_vector([1.0, 0.0, 0.0], 1.0)
        acc.add_vector([0.0, 1.0, 0.0], 1.0)
        np.testing.assert_allclose(acc.mean_vector(), [0.5, 0.5, 0.0])
        assert acc.total_weight == pytest.approx(2.0)

    def test_weighted_mean(self):
        acc = WeightedMean()
        acc.add_vector([0.0, 0.0, 0.0], 3.0)
        acc.add_vector([4.0, 0.0, 0.0], 1.0)
        np.testing.assert_allclose(acc.mean_vector(), [1.0, 0.0, 0.0])

    def test_zero_weight_returns_zero_vector(self):
        acc = WeightedMean()
        np.testing.assert_array_equal(acc.mean_vector(), [0.0, 0.0, 0.0])
        assert acc.is_empty

    def test_clear(self):
        acc = WeightedMean()
        acc.add(Transform(Quaternion.from_ypr(10, 0, 0), [1, 2, 3]), 2.0)
        acc.clear()
        assert acc.is_empty
        np.testing.assert_array_equal(acc.mean_vector(), [0.0, 0.0, 0.0])
        assert acc.mean_rotation() == Quaternion.identity()


class TestWeightedMeanRotation:
    """회전 채널 테스트 (고유벡터 방식)"""

    def test_empty_is_identity(self):
        assert WeightedMean().mean_rotation() == Quaternion.identity()

    def test_identical_rotations(self):
        q = Quaternion.from_ypr(35.0, -10.0, 5.0)
        acc = WeightedMean()
        for _ in range(5):
            acc.add_rotation(q, 1.0)
        result = acc.mean_rotation()
        assert result.angle_to(q) == pytest.approx(0.0, abs=1e-5)
        assert result.is_unit

    def test_sign_invariance(self):
        rotations = [
            Quaternion.from_ypr(10.0, 5.0, 0.0),
            Quaternion.from_ypr(20.0, -5.0, 3.0),
            Quaternion.from_ypr(15.0, 0.0, -4.0),
        ]
        weights = [1.0, 2.0, 0.5]

        plain = WeightedMean()
        flipped = WeightedMean()
        for i, (q, w) in enumerate(zip(rotations, weights)):
            plain.add_rotation(q, w)
            flipped.add_rotation(_flip(q) if i % 2 == 0 else q, w)

        np.testing.assert_allclose(
            plain.quaternion_matrix, flipped.quaternion_matrix, atol=1e-12
        )
        assert plain.mean_rotation().angle_to(flipped.mean_rotation()) == pytest.approx(0.0, abs=1e-5)

    def test_sign_flipped_pair_equals_single(self):
        q = Quaternion.from_axis_angle([0, 1, 0], 70.0)
        acc = WeightedMean()
        acc.add_rotation(q, 1.0)
        acc.add_rotation(_flip(q), 1.0)
        assert acc.mean_rotation().angle_to(q) == pytest.approx(0.0, abs=1e-5)

    def test_equal_weights_bisect(self):
        acc = WeightedMean()
        acc.add_rotation(Quaternion.from_ypr(0.0, 0.0, 0.0), 1.0)
        acc.add_rotation(Quaternion.from_ypr(60.0, 0.0, 0.0), 1.0)
        yaw, pitch, roll = acc.mean_rotation().to_ypr()
        assert yaw == pytest.approx(30.0, abs=1e-6)
        assert pitch == pytest.approx(0.0, abs=1e-6)
        assert roll == pytest.approx(0.0, abs=1e-6)

    def test_heavier_weight_pulls_mean(self):
        acc = WeightedMean()
        acc.add_rotation(Quaternion.from_ypr(0.0, 0.0, 0.0), 3.0)
        acc.add_rotation(Quaternion.from_ypr(60.0, 0.0, 0.0), 1.0)
        yaw, _, _ = acc.mean_rotation().to_ypr()
        assert 0.0 < yaw < 30.0

    def test_non_unit_input_is_normalized(self):
        acc = WeightedMean()
        acc.add_rotation([0.0, 0.0, 0.0, 5.0], 1.0)
        assert acc.mean_rotation() == Quaternion.identity()

    def test_result_is_recomputed_after_insert(self):
        acc = WeightedMean()
        acc.add_rotation(Quaternion.identity(), 1.0)
        first = acc.mean_rotation()
        acc.add_rotation(Quaternion.from_ypr(90.0, 0.0, 0.0), 10.0)
        second = acc.mean_rotation()
        assert first.angle_to(second) > 1.0

    def test_output_sign_is_canonical(self):
        acc = WeightedMean()
        acc.add_rotation(_flip(Quaternion.from_ypr(20.0, 0.0, 0.0)), 1.0)
        assert acc.mean_rotation().w >= 0.0


class TestInvalidSamples:
    """잘못된 샘플 거부 테스트"""

    @pytest.mark.parametrize('weight', [0.0, -1.0, float('nan'), float('inf')])
    def test_bad_weight_leaves_state_unchanged(self, weight):
        acc = WeightedMean()
        acc.add(Transform(Quaternion.from_ypr(30, 0, 0), [1.0, 2.0, 3.0]), 1.0)
        before_vec = acc.mean_vector()
        before_rot = acc.mean_rotation()
        before_weight = acc.total_weight

        with pytest.raises(InvalidSample):
            acc.add(Transform(Quaternion.identity(), [9.0, 9.0, 9.0]), weight)
        with pytest.raises(InvalidSample):
            acc.add_vector([9.0, 9.0, 9.0], weight)
        with pytest.raises(InvalidSample):
            acc.add_rotation(Quaternion.identity(), weight)

        np.testing.assert_array_equal(acc.mean_vector(), before_vec)
        assert acc.mean_rotation() == before_rot
        assert acc.total_weight == before_weight

    def test_degenerate_rotation(self):
        acc = WeightedMean()
        with pytest.raises(InvalidSample):
            acc.add_rotation([0.0, 0.0, 0.0, 0.0], 1.0)
        assert acc.is_empty

    def test_invalid_sample_is_value_error(self):
        with pytest.raises(ValueError):
            WeightedMean().add_vector([1, 2, 3], -1)

    def test_bad_vector_shape(self):
        with pytest.raises(InvalidSample):
            WeightedMean().add_vector([1, 2], 1.0)


class TestScale:
    """감쇠 테스트"""

    def test_scale_reduces_weight_keeps_mean(self):
        acc = WeightedMean()
        acc.add(Transform(Quaternion.from_ypr(45, 0, 0), [2.0, 0.0, 0.0]), 4.0)
        rot = acc.mean_rotation()
        acc.scale(0.25)
        assert acc.total_weight == pytest.approx(1.0)
        assert acc.rotation_weight == pytest.approx(1.0)
        np.testing.assert_allclose(acc.mean_vector(), [2.0, 0.0, 0.0])
        assert acc.mean_rotation().angle_to(rot) == pytest.approx(0.0, abs=1e-5)

    def test_scale_zero_clears(self):
        acc = WeightedMean()
        acc.add_vector([1, 1, 1], 1.0)
        acc.scale(0.0)
        assert acc.is_empty

    @pytest.mark.parametrize('factor', [1.5, -0.1, float('nan')])
    def test_scale_rejects_amplification(self, factor):
        with pytest.raises(ValueError):
            WeightedMean().scale(factor)


class TestPassThrough:
    """통과 누적기 테스트"""

    def test_keeps_raw_samples(self):
        acc = PassThrough()
        acc.add(Transform(Quaternion.identity(), [1.0, 0.0, 0.0]), 5.0)
        acc.add(Transform(Quaternion.from_ypr(90, 0, 0), [0.0, 1.0, 0.0]), 0.1)

        assert len(acc.vectors) == 2
        assert len(acc.rotations) == 2
        np.testing.assert_array_equal(acc.mean_vector(), [0.0, 1.0, 0.0])
        assert acc.mean_rotation().angle_to(Quaternion.from_ypr(90, 0, 0)) == pytest.approx(0.0, abs=1e-5)

    def test_empty(self):
        acc = PassThrough()
        assert acc.is_empty
        assert acc.current_estimate() == Transform.identity()

    def test_scale_is_noop(self):
        acc = PassThrough()
        acc.add_vector([1, 2, 3])
        acc.scale(0.1)
        np.testing.assert_array_equal(acc.mean_vector(), [1, 2, 3])

    def test_rejects_bad_weight(self):
        with pytest.raises(InvalidSample):
            PassThrough().add_vector([1, 2, 3], 0.0)


class TestFactory:

    def test_create_accumulator(self):
        assert isinstance(create_accumulator(FusionMode.WEIGHTED_MEAN), WeightedMean)
        assert isinstance(create_accumulator(FusionMode.PASS_THROUGH), PassThrough)
        assert create_accumulator().mode == FusionMode.WEIGHTED_MEAN
