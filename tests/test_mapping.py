"""
Unit tests for spatial mapping engine.

Most tests use a 2x2 frame so that the focal length is 1 and the image
center is (1, 1): a sample (sx, sy, d) lands at ((sx - 1) * d, (1 - sy) * d, d)
while the camera sits at the origin.
"""

import numpy as np
import pytest

from spatial_vision import (
    DepthSample,
    Frame,
    MappingParams,
    ShapeLandmarkClassifier,
    SpatialMapper,
    Trajectory,
    TrajectorySample,
)
from spatial_vision.mapping import ClusterBounds

STILL = (0.0, 0.0, 0.0)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FailingClassifier:
    def classify(self, positions, bounds) -> str:
        raise RuntimeError("classifier exploded")


def dense_patch(offset: int = 0, spacing: float = 0.06) -> list[DepthSample]:
    """5x5 patch with `spacing` between neighbours, center sample first."""
    center = DepthSample(1 + offset, 1, spacing, 0.9)
    rest = [
        DepthSample(1 + offset + dx, 1 + dy, spacing, 0.9)
        for dy in range(-2, 3)
        for dx in range(-2, 3)
        if (dx, dy) != (0, 0)
    ]
    return [center, *rest]


def spread(count: int, confidence: float = 0.8, sy: int = 0) -> list[DepthSample]:
    """Samples one map unit apart along X."""
    return [DepthSample(i, sy, 1.0, confidence) for i in range(count)]


@pytest.fixture
def frame() -> Frame:
    return Frame.blank(2, 2, color=(10, 20, 30))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mapper(clock: FakeClock) -> SpatialMapper:
    m = SpatialMapper(clock=clock, rng=np.random.default_rng(0))
    m.start()
    return m


class TestLifecycle:
    """Tests for start/stop/reset."""

    def test_inactive_is_noop(self, frame: Frame, clock: FakeClock) -> None:
        mapper = SpatialMapper(clock=clock)
        snapshot = mapper.process_frame(frame, spread(5), STILL)
        assert snapshot.point_count == 0
        assert len(mapper.trajectory) == 0

    def test_stop(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.stop()
        assert not mapper.active
        assert mapper.process_frame(frame, spread(5), STILL).point_count == 0

    def test_empty_samples(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, spread(3), STILL)
        snapshot = mapper.process_frame(frame, [], (1.0, 0.0, 0.0))
        assert snapshot.point_count == 3
        assert len(mapper.trajectory) == 1
        assert mapper.pose.x == 0.0

    @pytest.mark.parametrize(
        "bad",
        [
            DepthSample(1, 1, float("nan"), 0.9),
            DepthSample(1, 1, float("inf"), 0.9),
            DepthSample(1, 1, 0.5, float("nan")),
            DepthSample(1, 1, 1.5, 0.9),
            DepthSample(1, 1, 0.5, -0.1),
            DepthSample(float("nan"), 1, 0.5, 0.9),
        ],
    )
    def test_malformed_samples_skipped(
        self, mapper: SpatialMapper, frame: Frame, bad: DepthSample
    ) -> None:
        snapshot = mapper.process_frame(frame, [*spread(10), bad], STILL)
        assert snapshot.point_count == 10
        assert all(np.isfinite(p.position).all() for p in mapper.points)

    def test_only_malformed_samples(self, mapper: SpatialMapper, frame: Frame) -> None:
        bad = [DepthSample(0, 0, float("nan"), 0.9), DepthSample(1, 0, 2.0, 0.9)]
        snapshot = mapper.process_frame(frame, bad, (1.0, 0.0, 0.0))
        assert snapshot.point_count == 0
        assert len(mapper.trajectory) == 0
        assert mapper.pose.x == 0.0

    def test_reset(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, spread(5), (1.0, 0.0, 0.0))
        mapper.reset()

        assert mapper.active
        assert mapper.point_count == 0
        assert mapper.landmarks == []
        assert len(mapper.trajectory) == 0
        assert mapper.trajectory.total_distance == 0.0
        assert mapper.pose.position == (0.0, 0.0, 0.0)


class TestProjection:
    """Tests for pose updates and back-projection."""

    def test_pinhole(self, clock: FakeClock) -> None:
        mapper = SpatialMapper(clock=clock)
        mapper.start()
        frame = Frame.blank(100, 100, color=(10, 20, 30))
        samples = [DepthSample(50, 50, 1.0, 0.8), DepthSample(0, 50, 0.5, 0.8)]
        mapper.process_frame(frame, samples, STILL)

        a, b = mapper.points
        assert a.position == pytest.approx((0.0, 0.0, 1.0))
        assert b.position == pytest.approx((-0.5, 0.0, 0.5))
        assert a.color == (10, 20, 30)

    def test_color_outside_frame(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, [DepthSample(5, 5, 1.0, 0.8)], STILL)
        assert mapper.points[0].color == (0, 0, 0)

    def test_motion_hint_scaled(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, spread(1), (1.0, 2.0, -1.0))
        assert mapper.pose.position == pytest.approx((0.01, 0.02, -0.01))
        assert mapper.points[0].position == pytest.approx((-0.99, 1.02, 0.99))

    def test_drift_motion(self, mapper: SpatialMapper, frame: Frame) -> None:
        # At t = 0 the drift is (sin 0, cos 0, sin 0) scaled
        mapper.process_frame(frame, spread(1))
        assert mapper.pose.position == pytest.approx((0.0, 0.01, 0.0))

    def test_trajectory(self, mapper: SpatialMapper, frame: Frame, clock: FakeClock) -> None:
        for _ in range(3):
            mapper.process_frame(frame, spread(1), (1.0, 0.0, 0.0))
            clock.now += 1.0

        trajectory = mapper.trajectory
        assert len(trajectory) == 3
        assert trajectory.total_distance == pytest.approx(0.03)
        assert trajectory.samples[-1].position == pytest.approx((0.03, 0.0, 0.0))
        assert all(0.8 <= s.confidence <= 1.0 for s in trajectory.samples)

    def test_trajectory_cap(self, clock: FakeClock, frame: Frame) -> None:
        mapper = SpatialMapper(MappingParams(max_trajectory=3), clock=clock)
        mapper.start()
        for _ in range(5):
            mapper.process_frame(frame, spread(1), (1.0, 0.0, 0.0))

        trajectory = mapper.trajectory
        assert len(trajectory) == 3
        assert trajectory.total_distance == pytest.approx(0.05)


class TestDeduplication:
    """Tests for radius-based point merging."""

    def test_same_frame_twice(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, spread(20), STILL)
        before = mapper.points
        mapper.process_frame(frame, spread(20), STILL)
        assert mapper.points == before

    def test_higher_confidence_replaces(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, spread(1, confidence=0.5), STILL)
        mapper.process_frame(frame, spread(1, confidence=0.9), STILL)
        assert mapper.point_count == 1
        assert mapper.points[0].confidence == 0.9

    def test_lower_confidence_dropped(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, spread(1, confidence=0.9), STILL)
        mapper.process_frame(frame, spread(1, confidence=0.5), STILL)
        assert mapper.points[0].confidence == 0.9

    def test_replacement_absorbs_neighbours(self, mapper: SpatialMapper, frame: Frame) -> None:
        # Two points 0.08 apart, then one in the middle that beats both
        mapper.process_frame(
            frame,
            [DepthSample(0, 1, 0.04, 0.5), DepthSample(2, 1, 0.04, 0.6)],
            STILL,
        )
        assert mapper.point_count == 2
        mapper.process_frame(frame, [DepthSample(1, 1, 0.04, 0.9)], STILL)

        assert mapper.point_count == 1
        assert mapper.points[0].position == pytest.approx((0.0, 0.0, 0.04))

    def test_no_close_pairs(self, mapper: SpatialMapper, clock: FakeClock) -> None:
        rng = np.random.default_rng(21)
        frame = Frame.blank(64, 64)
        for _ in range(5):
            samples = [
                DepthSample(int(x), int(y), float(d), float(c))
                for x, y, d, c in zip(
                    rng.integers(0, 64, 200),
                    rng.integers(0, 64, 200),
                    rng.random(200),
                    0.31 + rng.random(200) * 0.69,
                )
            ]
            motion = tuple(rng.normal(size=3))
            mapper.process_frame(frame, samples, motion)
            clock.now += 0.1

        positions = mapper.snapshot().points
        diff = positions[:, None, :] - positions[None, :, :]
        dist = np.sqrt((diff**2).sum(axis=-1))
        np.fill_diagonal(dist, np.inf)
        assert dist.min() >= 0.05 - 1e-9

    def test_many_separated_samples(self, mapper: SpatialMapper, frame: Frame) -> None:
        samples = [DepthSample(x, y, 1.0, 0.8) for y in range(100) for x in range(100)]
        snapshot = mapper.process_frame(frame, samples, STILL)
        assert snapshot.point_count == 10_000
        assert snapshot.landmarks == ()


class TestPruning:
    """Tests for age, confidence and count pruning."""

    def test_weak_points_dropped(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, spread(4, confidence=0.3), STILL)
        assert mapper.point_count == 0

    def test_point_cap(self, clock: FakeClock, frame: Frame) -> None:
        mapper = SpatialMapper(MappingParams(max_points=3), clock=clock)
        mapper.start()
        confidences = [0.5, 0.9, 0.4, 0.8, 0.95, 0.6]
        samples = [DepthSample(i, 0, 1.0, c) for i, c in enumerate(confidences)]
        mapper.process_frame(frame, samples, STILL)

        # Top three by confidence, input order kept
        assert [p.confidence for p in mapper.points] == [0.9, 0.8, 0.95]

    def test_age(self, mapper: SpatialMapper, frame: Frame, clock: FakeClock) -> None:
        mapper.process_frame(frame, spread(5), STILL)
        clock.now = 29.9
        assert mapper.optimize() == 0
        clock.now = 30.0
        assert mapper.optimize() == 5
        assert mapper.point_count == 0

    def test_age_on_tick(self, mapper: SpatialMapper, frame: Frame, clock: FakeClock) -> None:
        mapper.process_frame(frame, spread(5), STILL)
        clock.now = 31.0
        mapper.process_frame(frame, spread(2, sy=5), STILL)
        assert mapper.point_count == 2


class TestLandmarks:
    """Tests for landmark extraction."""

    def test_dense_patch(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, dense_patch(), STILL)

        landmarks = mapper.landmarks
        assert len(landmarks) == 1
        lm = landmarks[0]
        assert lm.id == "landmark_1"
        assert lm.type in {"wall", "surface", "structure", "object"}
        assert 0.7 <= lm.confidence <= 1.0
        assert len(lm.features) == 10
        assert lm.description.startswith(lm.type)
        assert np.linalg.norm(np.array(lm.position) - [0.0, 0.0, 0.06]) < 0.1

    def test_sparse_points_no_landmark(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, spread(30), STILL)
        assert mapper.landmarks == []

    def test_no_duplicate_on_revisit(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, dense_patch(), STILL)
        mapper.process_frame(frame, dense_patch(), STILL)
        assert len(mapper.landmarks) == 1

    def test_two_patches(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, dense_patch() + dense_patch(offset=20), STILL)
        assert [lm.id for lm in sorted(mapper.landmarks, key=lambda lm: lm.id)] == [
            "landmark_1",
            "landmark_2",
        ]

    def test_landmark_cap(self, clock: FakeClock, frame: Frame) -> None:
        mapper = SpatialMapper(MappingParams(max_landmarks=1), clock=clock)
        mapper.start()
        mapper.process_frame(frame, dense_patch() + dense_patch(offset=20), STILL)
        assert len(mapper.landmarks) == 1

    def test_sorted_by_confidence(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, dense_patch() + dense_patch(offset=20), STILL)
        confidences = [lm.confidence for lm in mapper.landmarks]
        assert confidences == sorted(confidences, reverse=True)

    def test_counter_survives_reset(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, dense_patch(), STILL)
        mapper.reset()
        mapper.process_frame(frame, dense_patch(), STILL)
        assert mapper.landmarks[0].id == "landmark_2"

    def test_snapshot_summaries(self, mapper: SpatialMapper, frame: Frame) -> None:
        snapshot = mapper.process_frame(frame, dense_patch(), STILL)
        (summary,) = snapshot.landmarks
        assert summary.id == mapper.landmarks[0].id
        assert set(summary.to_dict()) == {"id", "position", "type", "confidence"}

    def test_failed_tick_leaves_map(self, clock: FakeClock, frame: Frame) -> None:
        mapper = SpatialMapper(clock=clock, classifier=FailingClassifier())
        mapper.start()
        with pytest.raises(RuntimeError):
            mapper.process_frame(frame, dense_patch(), (1.0, 0.0, 0.0))

        assert mapper.point_count == 0
        assert len(mapper.trajectory) == 0
        assert mapper.pose.position == (0.0, 0.0, 0.0)


class TestShapeLandmarkClassifier:
    """Tests for extent-based landmark typing."""

    @pytest.mark.parametrize(
        "extent, expected",
        [
            ((1.0, 0.2, 0.2), "wall"),
            ((0.1, 0.1, 0.1), "surface"),
            ((0.3, 1.0, 0.5), "structure"),
            ((0.3, 0.3, 1.0), "object"),
        ],
    )
    def test_rules(self, extent: tuple, expected: str) -> None:
        bounds = ClusterBounds((0.0, 0.0, 0.0), extent)
        assert ShapeLandmarkClassifier().classify(np.zeros((1, 3)), bounds) == expected

    def test_bounds_of(self) -> None:
        bounds = ClusterBounds.of(np.array([[0.0, 1.0, 2.0], [1.0, 3.0, 2.5]]))
        assert (bounds.width, bounds.height, bounds.depth) == pytest.approx((1.0, 2.0, 0.5))


class TestSnapshot:
    """Tests for snapshots and boundaries."""

    def test_floor_boundary(self, mapper: SpatialMapper, frame: Frame) -> None:
        # sy = 3 puts the points at y = -2, well below the camera
        snapshot = mapper.process_frame(frame, spread(15, sy=3), STILL)
        (floor,) = snapshot.boundaries
        assert floor.type == "floor"
        assert floor.points.shape == (15, 3)

    def test_floor_needs_enough_points(self, mapper: SpatialMapper, frame: Frame) -> None:
        snapshot = mapper.process_frame(frame, spread(10, sy=3), STILL)
        assert snapshot.boundaries == ()

    def test_floor_point_cap(self, mapper: SpatialMapper, frame: Frame) -> None:
        snapshot = mapper.process_frame(frame, spread(150, sy=3), STILL)
        assert snapshot.boundaries[0].points.shape == (100, 3)

    def test_arrays(self, mapper: SpatialMapper, frame: Frame) -> None:
        snapshot = mapper.process_frame(frame, spread(4), STILL)
        assert snapshot.points.shape == (4, 3)
        assert snapshot.colors.shape == (4, 3)
        assert snapshot.colors.dtype == np.uint8

    def test_to_dict(self, mapper: SpatialMapper, frame: Frame) -> None:
        data = mapper.process_frame(frame, [DepthSample(1, 1, 1.0, 0.8)], STILL).to_dict()
        assert data["points"] == [{"x": 0.0, "y": 0.0, "z": 1.0, "color": [10, 20, 30]}]

    def test_accessors_return_copies(self, mapper: SpatialMapper, frame: Frame) -> None:
        mapper.process_frame(frame, spread(3), STILL)
        mapper.points.clear()
        mapper.landmarks.clear()
        assert mapper.point_count == 3


class TestTrajectory:
    """Tests for Trajectory window."""

    def test_copy_independent(self) -> None:
        trajectory = Trajectory()
        clone = trajectory.copy()
        clone.append(TrajectorySample((0, 0, 0), 1.0, 0.9), 1.0)
        assert len(trajectory) == 0
        assert trajectory.total_distance == 0.0
