"""
Unit tests for object morphology module.
"""

import numpy as np
import pytest

from spatial_vision import (
    BoundingBox,
    DepthSample,
    DetectedObject,
    MorphologyAnalyzer,
    MorphologyParams,
    MorphologyProfile,
    ShapeClass,
)


def make_obj(x: float, y: float, w: float, h: float, object_id: str = "obj_1") -> DetectedObject:
    return DetectedObject(object_id, "box", 0.9, BoundingBox(x, y, w, h))


def grid(depths: dict[tuple[int, int], float]) -> list[DepthSample]:
    return [DepthSample(x, y, d, 0.8) for (x, y), d in depths.items()]


@pytest.fixture
def analyzer() -> MorphologyAnalyzer:
    return MorphologyAnalyzer()


class TestMorphologyAnalyzer:
    """Tests for MorphologyAnalyzer.analyze()."""

    def test_flat_object(self, analyzer: MorphologyAnalyzer) -> None:
        samples = grid({(0, 0): 0.5, (20, 0): 0.5, (40, 0): 0.5, (0, 40): 0.5, (40, 40): 0.5})
        profile = analyzer.analyze(make_obj(0, 0, 40, 40), samples)

        assert profile.object_id == "obj_1"
        assert profile.shape is ShapeClass.FLAT
        assert profile.width == pytest.approx(0.04)
        assert profile.height == pytest.approx(0.04)
        assert profile.depth == 0.0
        assert profile.volume == 0.0
        assert profile.surface_area == pytest.approx(2 * 0.04 * 0.04)
        assert profile.complexity == 0.0
        assert profile.symmetry == pytest.approx(1.0)

    def test_extents(self, analyzer: MorphologyAnalyzer) -> None:
        samples = grid({(10, 10): 0.2, (30, 10): 0.5})
        profile = analyzer.analyze(make_obj(0, 0, 40, 40), samples)

        # depth = 0.3 * depth_scale(2)
        assert profile.depth == pytest.approx(0.6)
        assert profile.volume == pytest.approx(0.04 * 0.04 * 0.6)
        expected_area = 2 * (0.04 * 0.04 + 0.04 * 0.6 + 0.04 * 0.6)
        assert profile.surface_area == pytest.approx(expected_area)

    def test_custom_scale(self) -> None:
        params = MorphologyParams(pixel_to_meter=0.01, depth_scale=1.0)
        samples = grid({(10, 10): 0.2, (30, 10): 0.5})
        profile = MorphologyAnalyzer(params).analyze(make_obj(0, 0, 40, 40), samples)
        assert profile.width == pytest.approx(0.4)
        assert profile.depth == pytest.approx(0.3)

    def test_no_samples_inside(self, analyzer: MorphologyAnalyzer) -> None:
        samples = grid({(100, 100): 0.5})
        profile = analyzer.analyze(make_obj(0, 0, 40, 40), samples)
        assert profile == MorphologyProfile.undefined("obj_1")
        assert profile.shape is ShapeClass.UNDEFINED

    def test_no_samples_at_all(self, analyzer: MorphologyAnalyzer) -> None:
        assert analyzer.analyze(make_obj(0, 0, 40, 40), []).shape is ShapeClass.UNDEFINED

    def test_edges_included(self, analyzer: MorphologyAnalyzer) -> None:
        samples = grid({(40, 40): 0.5})
        assert analyzer.analyze(make_obj(0, 0, 40, 40), samples).shape is not ShapeClass.UNDEFINED

    def test_analyze_all(self, analyzer: MorphologyAnalyzer) -> None:
        samples = grid({(10, 10): 0.5, (200, 200): 0.5})
        objects = [make_obj(0, 0, 20, 20, "a"), make_obj(500, 500, 20, 20, "b")]
        profiles = analyzer.analyze_all(objects, samples)

        assert set(profiles) == {"a", "b"}
        assert profiles["a"].shape is ShapeClass.FLAT
        assert profiles["b"].shape is ShapeClass.UNDEFINED

    def test_to_dict(self, analyzer: MorphologyAnalyzer) -> None:
        data = analyzer.analyze(make_obj(0, 0, 40, 40), grid({(0, 0): 0.5})).to_dict()
        assert data["shape"] == "flat"
        assert set(data["dimensions"]) == {"width", "height", "depth"}


class TestClassifyShape:
    """Tests for the aspect/variation shape rules."""

    @pytest.mark.parametrize(
        "w, h, depths, expected",
        [
            (100, 20, [0.1, 0.9], ShapeClass.RECTANGULAR),
            (20, 100, [0.1, 0.9], ShapeClass.VERTICAL),
            (40, 40, [0.5, 0.55], ShapeClass.FLAT),
            (40, 40, [0.1, 0.9], ShapeClass.IRREGULAR),
            (40, 40, [0.2, 0.5], ShapeClass.CUBOID),
            (40, 40, [0.9], ShapeClass.FLAT),
            (100, 0, [0.2, 0.5], ShapeClass.RECTANGULAR),
            (0, 0, [0.5, 0.55], ShapeClass.FLAT),
            (0, 0, [0.1, 0.9], ShapeClass.IRREGULAR),
            (0, 0, [0.2, 0.5], ShapeClass.CUBOID),
        ],
    )
    def test_rules(self, w: float, h: float, depths: list[float], expected: ShapeClass) -> None:
        shape = MorphologyAnalyzer.classify_shape(make_obj(0, 0, w, h), np.array(depths))
        assert shape is expected


class TestDescriptors:
    """Tests for complexity and symmetry."""

    def test_complexity(self) -> None:
        assert MorphologyAnalyzer.complexity(np.array([0.0, 1.0, 0.0, 1.0])) == pytest.approx(0.75)
        assert MorphologyAnalyzer.complexity(np.array([0.5, 0.5])) == 0.0

    def test_complexity_single_sample(self) -> None:
        assert MorphologyAnalyzer.complexity(np.array([0.7])) == 0.0

    def test_symmetry(self) -> None:
        obj = make_obj(0, 0, 40, 40)
        inside = np.array([
            [0, 0, 0.2, 0.8],
            [10, 0, 0.2, 0.8],
            [20, 0, 0.9, 0.8],  # on the center line, ignored
            [30, 0, 0.6, 0.8],
            [40, 0, 0.6, 0.8],
        ])
        assert MorphologyAnalyzer.symmetry(obj, inside) == pytest.approx(0.6)

    def test_symmetry_one_sided(self) -> None:
        obj = make_obj(0, 0, 40, 40)
        inside = np.array([[0, 0, 0.5, 0.8], [10, 10, 0.5, 0.8]])
        assert MorphologyAnalyzer.symmetry(obj, inside) == 0.0
