"""Tests for stroke downsampling and Chaikin smoothing."""

import numpy as np
import pytest

from airclay.curves import CurveSynthesizer, chaikin_smooth, downsample, synthesize
from airclay.strokes import Stroke


def zigzag(n):
    x = np.arange(n, dtype=np.float64) * 7.0
    y = np.where(np.arange(n) % 2 == 0, 0.0, 12.0)
    return np.column_stack([x, y])


class TestDownsample:
    def test_short_paths_unchanged(self):
        pts = zigzag(30)
        np.testing.assert_array_equal(downsample(pts, 30), pts)

    @pytest.mark.parametrize("n", [31, 59, 100, 1000])
    def test_bounded_and_keeps_endpoints(self, n):
        pts = zigzag(n)
        out = downsample(pts, 30)
        assert len(out) == 30
        np.testing.assert_array_equal(out[0], pts[0])
        np.testing.assert_array_equal(out[-1], pts[-1])

    def test_even_spacing(self):
        pts = zigzag(59)
        out = downsample(pts, 30)
        np.testing.assert_array_equal(out, pts[::2])

    def test_indices_round_half_up(self):
        # step = 3 / 2 = 1.5, so the middle index 1.5 rounds up to 2
        pts = np.arange(8, dtype=np.float64).reshape(4, 2)
        out = downsample(pts, 3)
        np.testing.assert_array_equal(out, pts[[0, 2, 3]])

    def test_rejects_tiny_cap(self):
        with pytest.raises(ValueError):
            downsample(zigzag(10), 1)


class TestChaikin:
    def test_single_pass_values(self):
        pts = np.array([[0.0, 0.0], [10.0, 0.0], [10.0, 10.0]])
        out = chaikin_smooth(pts, iterations=1)
        np.testing.assert_allclose(out, [
            [0.0, 0.0], [2.5, 0.0], [7.5, 0.0], [10.0, 2.5], [10.0, 7.5], [10.0, 10.0],
        ])

    @pytest.mark.parametrize("iterations", [0, 1, 2, 3, 4])
    def test_endpoints_preserved(self, iterations):
        pts = zigzag(9)
        out = chaikin_smooth(pts, iterations)
        np.testing.assert_allclose(out[0], pts[0])
        np.testing.assert_allclose(out[-1], pts[-1])

    @pytest.mark.parametrize("n", [3, 5, 30])
    def test_each_pass_doubles_point_count(self, n):
        pts = zigzag(n)
        assert len(chaikin_smooth(pts, 1)) == 2 * n
        assert len(chaikin_smooth(pts, 3)) == 8 * n

    @pytest.mark.parametrize("n", [0, 1, 2])
    def test_short_paths_unchanged(self, n):
        pts = zigzag(n)
        out = chaikin_smooth(pts, 3)
        np.testing.assert_array_equal(out, pts)

    def test_stays_inside_control_hull(self):
        pts = zigzag(12)
        out = chaikin_smooth(pts, 3)
        assert out[:, 1].min() >= 0.0
        assert out[:, 1].max() <= 12.0

    def test_works_in_3d(self):
        pts = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0], [2.0, 0.0, 2.0]])
        assert chaikin_smooth(pts, 2).shape == (12, 3)


class TestSynthesize:
    def test_deterministic(self):
        stroke = Stroke.from_points(zigzag(80))
        np.testing.assert_array_equal(synthesize(stroke), synthesize(stroke))

    def test_default_output_size(self):
        stroke = Stroke.from_points(zigzag(80))
        assert synthesize(stroke).shape == (240, 2)

    def test_accepts_arrays(self):
        out = synthesize(zigzag(10), max_points=30, iterations=1)
        assert out.shape == (20, 2)

    def test_synthesizer_matches_function(self):
        stroke = Stroke.from_points(zigzag(50))
        synth = CurveSynthesizer(max_points=20, iterations=2)
        np.testing.assert_array_equal(synth(stroke), synthesize(stroke, 20, 2))

    @pytest.mark.parametrize("kwargs", [{"max_points": 1}, {"iterations": -1}])
    def test_synthesizer_validates(self, kwargs):
        with pytest.raises(ValueError):
            CurveSynthesizer(**kwargs)
