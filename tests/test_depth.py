"""
Unit tests for monocular depth estimation module.
"""

import numpy as np
import pytest

from spatial_vision import DepthEstimator, DepthParams, DepthSample, DepthStats, Frame
from spatial_vision.depth import samples_to_array


@pytest.fixture
def deterministic() -> DepthEstimator:
    """Estimator without the noise term."""
    return DepthEstimator(DepthParams(noise_amplitude=0.0), rng=np.random.default_rng(0))


class TestDepthStats:
    """Tests for DepthStats dataclass."""

    def test_from_samples(self) -> None:
        samples = [
            DepthSample(0, 0, 0.1, 0.8),
            DepthSample(20, 0, 0.5, 0.6),
            DepthSample(40, 0, 0.9, 1.0),
            DepthSample(60, 0, 0.7, 0.8),
        ]
        stats = DepthStats.from_samples(samples)

        assert stats.count == 4
        assert stats.min_depth == pytest.approx(0.1)
        assert stats.max_depth == pytest.approx(0.9)
        assert stats.mean_depth == pytest.approx(0.55)
        assert stats.median_depth == pytest.approx(0.6)
        assert stats.mean_confidence == pytest.approx(0.8)

        near, mid, far = stats.zones
        assert (near.sample_count, mid.sample_count, far.sample_count) == (1, 1, 2)
        assert far.percentage == pytest.approx(50.0)

    def test_empty(self) -> None:
        stats = DepthStats.from_samples([])
        assert stats.count == 0
        assert stats.min_depth == 0.0
        assert stats.max_depth == 0.0
        assert stats.mean_confidence == 0.0

    def test_format_verbose(self) -> None:
        stats = DepthStats.from_samples([DepthSample(0, 0, 0.5, 0.9)])
        text = stats.format_verbose()
        assert "Samples: 1" in text
        assert "MID" in text


class TestSamplesToArray:
    """Tests for sample stacking helper."""

    def test_shape(self) -> None:
        arr = samples_to_array([DepthSample(1, 2, 0.3, 0.4), DepthSample(5, 6, 0.7, 0.8)])
        assert arr.shape == (2, 4)
        assert np.allclose(arr[1], [5, 6, 0.7, 0.8])

    def test_empty(self) -> None:
        assert samples_to_array([]).shape == (0, 4)


class TestDepthEstimator:
    """Tests for DepthEstimator class."""

    def test_grid(self, deterministic: DepthEstimator) -> None:
        samples = deterministic.estimate(Frame.blank(100, 60, (128, 128, 128)))

        assert len(samples) == 5 * 3
        # Row-major: y outer, x inner
        assert [(s.x, s.y) for s in samples[:6]] == [
            (0, 0), (20, 0), (40, 0), (60, 0), (80, 0), (0, 20),
        ]

    def test_stride_param(self) -> None:
        estimator = DepthEstimator(DepthParams(stride=10))
        samples = estimator.estimate(Frame.blank(40, 40))
        assert len(samples) == 16

    def test_uniform_frame(self, deterministic: DepthEstimator) -> None:
        samples = deterministic.estimate(Frame.blank(60, 60, (255, 255, 255)))
        # No local contrast: depth = luminance * 0.7
        for s in samples:
            assert s.depth == pytest.approx(0.7)

    def test_black_frame(self, deterministic: DepthEstimator) -> None:
        samples = deterministic.estimate(Frame.blank(60, 60))
        assert all(s.depth == pytest.approx(0.0) for s in samples)

    def test_local_contrast(self, deterministic: DepthEstimator) -> None:
        pixels = np.zeros((60, 100, 4), dtype=np.uint8)
        pixels[..., 3] = 255
        pixels[20, 20, :3] = 255
        samples = {(s.x, s.y): s for s in deterministic.estimate(Frame(pixels))}

        # 11x11 window fully inside the frame: contrast = 1 - 1/121
        expected = 0.7 + 0.3 * (1 - 1 / 121)
        assert samples[(20, 20)].depth == pytest.approx(expected)
        assert samples[(0, 0)].depth == pytest.approx(0.0)
        assert samples[(40, 20)].depth == pytest.approx(0.0)

    def test_clamped_window_at_border(self, deterministic: DepthEstimator) -> None:
        pixels = np.zeros((40, 40, 4), dtype=np.uint8)
        pixels[0, 0, :3] = 255
        samples = deterministic.estimate(Frame(pixels))
        # Window [0..5] x [0..5] -> 36 pixels
        assert samples[0].depth == pytest.approx(0.7 + 0.3 * (1 - 1 / 36))

    def test_ranges(self) -> None:
        rng = np.random.default_rng(7)
        frame = Frame(rng.integers(0, 256, size=(120, 160, 4), dtype=np.uint8))
        samples = DepthEstimator(rng=np.random.default_rng(1)).estimate(frame)

        assert samples
        for s in samples:
            assert 0.0 <= s.depth <= 1.0
            assert 0.6 <= s.confidence <= 1.0

    def test_noise_bounded(self) -> None:
        frame = Frame.blank(80, 80, (100, 100, 100))
        base = 0.7 * (100 / 255)
        samples = DepthEstimator(rng=np.random.default_rng(5)).estimate(frame)
        for s in samples:
            assert base - 1e-9 <= s.depth < base + 0.1 + 1e-9

    def test_seeded_reproducible(self) -> None:
        frame = Frame.blank(80, 80, (50, 90, 130))
        a = DepthEstimator(rng=np.random.default_rng(11)).estimate(frame)
        b = DepthEstimator(rng=np.random.default_rng(11)).estimate(frame)
        assert a == b

    def test_input_not_modified(self, deterministic: DepthEstimator) -> None:
        frame = Frame.blank(40, 40, (10, 20, 30))
        before = frame.pixels.copy()
        deterministic.estimate(frame)
        assert np.array_equal(frame.pixels, before)
