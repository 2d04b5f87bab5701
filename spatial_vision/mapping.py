"""
Spatial Mapping Engine
=======================

Incremental SLAM-lite: a persistent 3D point map, landmark set and camera
trajectory built from per-frame depth samples.

Per tick:
    1. Camera motion from the hint (scaled) or a time-based drift
    2. Pose and trajectory update
    3. Pinhole back-projection of depth samples into map coordinates
    4. Insertion with radius deduplication (higher confidence wins)
    5. Landmark extraction from the points kept this tick
    6. Pruning by age, confidence and point cap
    7. Snapshot for the caller

Coordinate system (camera relative at session start):
    X right, Y up, Z forward. Units are map units (meters).

This module provides:
- MapPoint3D, Landmark, TrajectorySample, Trajectory, CameraPose: Map state
- Boundary, LandmarkSummary, MapSnapshot: Caller-facing snapshot
- LandmarkClassifier, ShapeLandmarkClassifier: Landmark type strategy
- SpatialMapper: The mapping engine
"""

from __future__ import annotations

import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, NamedTuple, Protocol, Sequence

import numpy as np
from loguru import logger

from .config import MappingParams
from .depth import DepthSample, samples_to_array
from .frame import Frame

if TYPE_CHECKING:
    import numpy.typing as npt


__all__ = [
    "Vec3",
    "MapPoint3D",
    "Landmark",
    "TrajectorySample",
    "Trajectory",
    "CameraPose",
    "Boundary",
    "LandmarkSummary",
    "MapSnapshot",
    "ClusterBounds",
    "LandmarkClassifier",
    "ShapeLandmarkClassifier",
    "SpatialMapper",
]


Vec3 = tuple[float, float, float]


def _distance(a: Sequence[float], b: Sequence[float]) -> float:
    return math.dist(a, b)


def _is_valid_sample(sample: DepthSample) -> bool:
    """Finite coordinates, depth and confidence both in [0, 1]."""
    if not (math.isfinite(sample.x) and math.isfinite(sample.y)):
        return False
    return 0.0 <= sample.depth <= 1.0 and 0.0 <= sample.confidence <= 1.0


@dataclass(frozen=True, slots=True)
class MapPoint3D:
    """
    One point of the map.

    Attributes:
        x, y, z: Global position (map units)
        color: (r, g, b) sampled from the frame
        confidence: Depth confidence of the source sample
        timestamp: Insertion time in seconds (mapper clock)
    """

    x: float
    y: float
    z: float
    color: tuple[int, int, int]
    confidence: float
    timestamp: float

    @property
    def position(self) -> Vec3:
        return (self.x, self.y, self.z)

    def distance_to(self, other: MapPoint3D) -> float:
        """Euclidean distance to another point."""
        return _distance(self.position, other.position)

    def to_dict(self) -> dict:
        return {
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "color": list(self.color),
            "confidence": self.confidence,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class Landmark:
    """
    Persistent, classified cluster of map points.

    Attributes:
        id: "landmark_<n>"
        position: Cluster centroid
        type: Category label ("wall", "surface", "structure", "object")
        confidence: Landmark confidence (0.7 to 1.0)
        description: Human-readable summary
        features: [width, height, depth, cx, cy, cz, count, r, g, b]
            with color channels normalized to [0, 1]
    """

    id: str
    position: Vec3
    type: str
    confidence: float
    description: str
    features: tuple[float, ...]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "position": list(self.position),
            "type": self.type,
            "confidence": self.confidence,
            "description": self.description,
            "features": list(self.features),
        }


@dataclass(frozen=True, slots=True)
class TrajectorySample:
    """Camera position at one tick."""

    position: Vec3
    timestamp: float
    confidence: float

    def to_dict(self) -> dict:
        return {
            "position": list(self.position),
            "timestamp": self.timestamp,
            "confidence": self.confidence,
        }


@dataclass
class Trajectory:
    """
    Sliding window of camera positions.

    total_distance accumulates over the whole session, including samples
    that already fell out of the window.
    """

    max_length: int = 1000
    total_distance: float = 0.0
    _samples: deque = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._samples = deque(maxlen=self.max_length)

    def append(self, sample: TrajectorySample, distance: float) -> None:
        self._samples.append(sample)
        self.total_distance += distance

    @property
    def samples(self) -> list[TrajectorySample]:
        return list(self._samples)

    def copy(self) -> Trajectory:
        clone = Trajectory(self.max_length, self.total_distance)
        clone._samples.extend(self._samples)
        return clone

    def __len__(self) -> int:
        return len(self._samples)


@dataclass(frozen=True, slots=True)
class CameraPose:
    """Cumulative camera position (translation only)."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @property
    def position(self) -> Vec3:
        return (self.x, self.y, self.z)

    def moved(self, delta: Vec3) -> CameraPose:
        dx, dy, dz = delta
        return CameraPose(self.x + dx, self.y + dy, self.z + dz)

    def __str__(self) -> str:
        return f"({self.x:.3f}, {self.y:.3f}, {self.z:.3f})"


@dataclass(frozen=True, slots=True, eq=False)
class Boundary:
    """Derived planar boundary estimate (e.g., floor)."""

    type: str  # "floor", "wall", "ceiling", "object"
    points: npt.NDArray  # (K, 3)

    def to_dict(self) -> dict:
        return {"type": self.type, "points": self.points.tolist()}


@dataclass(frozen=True, slots=True)
class LandmarkSummary:
    """Landmark fields exposed in snapshots."""

    id: str
    position: Vec3
    type: str
    confidence: float

    @classmethod
    def of(cls, landmark: Landmark) -> LandmarkSummary:
        return cls(landmark.id, landmark.position, landmark.type, landmark.confidence)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "position": list(self.position),
            "type": self.type,
            "confidence": self.confidence,
        }


@dataclass(frozen=True, slots=True, eq=False)
class MapSnapshot:
    """
    Read-only copy of the map for callers.

    Attributes:
        points: (N, 3) float positions
        colors: (N, 3) uint8 colors
        landmarks: Landmark summaries
        boundaries: Derived boundaries
    """

    points: npt.NDArray
    colors: npt.NDArray
    landmarks: tuple[LandmarkSummary, ...] = ()
    boundaries: tuple[Boundary, ...] = ()

    @classmethod
    def empty(cls) -> MapSnapshot:
        return cls(np.empty((0, 3)), np.empty((0, 3), dtype=np.uint8))

    @property
    def point_count(self) -> int:
        return len(self.points)

    def to_dict(self) -> dict:
        return {
            "points": [
                {"x": x, "y": y, "z": z, "color": color}
                for (x, y, z), color in zip(self.points.tolist(), self.colors.tolist())
            ],
            "landmarks": [lm.to_dict() for lm in self.landmarks],
            "boundaries": [b.to_dict() for b in self.boundaries],
        }


class ClusterBounds(NamedTuple):
    """Axis-aligned extents of a point cluster."""

    min_corner: Vec3
    max_corner: Vec3

    @property
    def width(self) -> float:
        return self.max_corner[0] - self.min_corner[0]

    @property
    def height(self) -> float:
        return self.max_corner[1] - self.min_corner[1]

    @property
    def depth(self) -> float:
        return self.max_corner[2] - self.min_corner[2]

    @property
    def volume(self) -> float:
        return self.width * self.height * self.depth

    @classmethod
    def of(cls, positions: npt.NDArray) -> ClusterBounds:
        lo = positions.min(axis=0)
        hi = positions.max(axis=0)
        return cls(
            (float(lo[0]), float(lo[1]), float(lo[2])),
            (float(hi[0]), float(hi[1]), float(hi[2])),
        )


class LandmarkClassifier(Protocol):
    """Strategy assigning a category label to a point cluster."""

    def classify(self, positions: npt.NDArray, bounds: ClusterBounds) -> str:
        """
        Args:
            positions: (N, 3) cluster positions
            bounds: Cluster extents

        Returns:
            Category label
        """
        ...


class ShapeLandmarkClassifier:
    """Deterministic classification by cluster extents."""

    def __init__(self, surface_volume: float = 0.01) -> None:
        self.surface_volume = surface_volume

    def classify(self, positions: npt.NDArray, bounds: ClusterBounds) -> str:
        if bounds.width > bounds.height and bounds.width > bounds.depth:
            return "wall"
        if bounds.volume < self.surface_volume:
            return "surface"
        if bounds.height >= bounds.width and bounds.height >= bounds.depth:
            return "structure"
        return "object"


class _PointIndex:
    """
    Voxel hash over 3D positions for fixed-radius neighbour queries.

    Cells are radius-sized cubes, so every neighbour of a position lies in
    the 27 cells around it.
    """

    __slots__ = ("_radius", "_cells", "_positions")

    def __init__(self, radius: float) -> None:
        self._radius = radius
        self._cells: dict[tuple[int, int, int], set[int]] = {}
        self._positions: dict[int, Vec3] = {}

    def _cell(self, pos: Vec3) -> tuple[int, int, int]:
        r = self._radius
        return (math.floor(pos[0] / r), math.floor(pos[1] / r), math.floor(pos[2] / r))

    def add(self, key: int, pos: Vec3) -> None:
        self._positions[key] = pos
        self._cells.setdefault(self._cell(pos), set()).add(key)

    def remove(self, key: int) -> None:
        pos = self._positions.pop(key)
        cell = self._cell(pos)
        members = self._cells[cell]
        members.discard(key)
        if not members:
            del self._cells[cell]

    def move(self, key: int, pos: Vec3) -> None:
        self.remove(key)
        self.add(key, pos)

    def neighbors(self, pos: Vec3) -> list[int]:
        """Keys strictly closer than the radius, in ascending key order."""
        cx, cy, cz = self._cell(pos)
        found = []
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for dz in (-1, 0, 1):
                    for key in self._cells.get((cx + dx, cy + dy, cz + dz), ()):
                        if _distance(pos, self._positions[key]) < self._radius:
                            found.append(key)
        found.sort()
        return found

    def __len__(self) -> int:
        return len(self._positions)


@dataclass
class _MapState:
    """Mutable map state; copied per tick and committed as a whole."""

    pose: CameraPose
    trajectory: Trajectory
    points: list[MapPoint3D]
    landmarks: list[Landmark]
    next_landmark: int = 1

    def copy(self) -> _MapState:
        return _MapState(
            pose=self.pose,
            trajectory=self.trajectory.copy(),
            points=list(self.points),
            landmarks=list(self.landmarks),
            next_landmark=self.next_landmark,
        )


class SpatialMapper:
    """
    Incremental point-cloud mapper.

    Owns the only copy of the map state; accessors return copies. One
    instance per mapping session; not safe for concurrent calls.

    Example:
        >>> mapper = SpatialMapper(rng=np.random.default_rng(0))
        >>> mapper.start()
        >>> snapshot = mapper.process_frame(frame, samples, motion_hint=(1, 0, 0))
        >>> print(f"{snapshot.point_count} points, pose {mapper.pose}")
    """

    def __init__(
        self,
        params: MappingParams | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: np.random.Generator | None = None,
        classifier: LandmarkClassifier | None = None,
    ) -> None:
        """
        Initialize mapper (inactive).

        Args:
            params: Mapping parameters
            clock: Time source in seconds (point ages, drift motion)
            rng: Random generator for trajectory/landmark confidences
            classifier: Landmark type strategy
        """
        self._params = params or MappingParams()
        self._clock = clock
        self._rng = rng if rng is not None else np.random.default_rng()
        self._classifier = classifier or ShapeLandmarkClassifier()
        self._active = False
        self._state = self._empty_state()

    def _empty_state(self, next_landmark: int = 1) -> _MapState:
        return _MapState(
            pose=CameraPose(),
            trajectory=Trajectory(self._params.max_trajectory),
            points=[],
            landmarks=[],
            next_landmark=next_landmark,
        )

    # Lifecycle

    def start(self) -> None:
        self._active = True
        logger.info("Spatial mapping started")

    def stop(self) -> None:
        self._active = False
        logger.info("Spatial mapping stopped")

    def reset(self) -> None:
        """Clear points, landmarks, trajectory and pose (active flag kept)."""
        self._state = self._empty_state(self._state.next_landmark)
        logger.info("Spatial map reset")

    @property
    def active(self) -> bool:
        return self._active

    @property
    def params(self) -> MappingParams:
        return self._params

    # Read-only accessors

    @property
    def pose(self) -> CameraPose:
        return self._state.pose

    @property
    def trajectory(self) -> Trajectory:
        return self._state.trajectory.copy()

    @property
    def points(self) -> list[MapPoint3D]:
        return list(self._state.points)

    @property
    def landmarks(self) -> list[Landmark]:
        return list(self._state.landmarks)

    @property
    def point_count(self) -> int:
        return len(self._state.points)

    def snapshot(self) -> MapSnapshot:
        return self._build_snapshot(self._state)

    # Processing

    def process_frame(
        self,
        frame: Frame,
        samples: Sequence[DepthSample],
        motion_hint: Vec3 | None = None,
    ) -> MapSnapshot:
        """
        Integrate one frame's depth samples into the map.

        Args:
            frame: Frame the samples were taken from (colors, intrinsics)
            samples: Depth samples
            motion_hint: External 3-axis motion estimate (scaled by
                motion_scale); None uses the time-based drift

        Returns:
            Snapshot after the update (unchanged map when inactive or
            when no sample is usable)
        """
        if not self._active or not samples:
            return self.snapshot()

        valid = [s for s in samples if _is_valid_sample(s)]
        if len(valid) < len(samples):
            logger.warning(
                "Dropped {} malformed depth samples", len(samples) - len(valid)
            )
        if not valid:
            return self.snapshot()
        samples = valid

        now = self._clock()
        state = self._state.copy()

        motion = self._estimate_motion(motion_hint, now)
        self._advance_pose(state, motion, now)

        new_points = self._project(frame, samples, state.pose, now)
        retained = self._insert(state, new_points)
        created = self._detect_landmarks(state, retained)
        self._prune(state, now)

        self._state = state
        logger.debug(
            "Mapped {} samples: {} points, {} landmarks (+{})",
            len(samples),
            len(state.points),
            len(state.landmarks),
            created,
        )
        return self._build_snapshot(state)

    def optimize(self) -> int:
        """Run pruning on demand; returns the number of points removed."""
        state = self._state.copy()
        before = len(state.points)
        self._prune(state, self._clock())
        self._state = state
        return before - len(state.points)

    def _estimate_motion(self, hint: Vec3 | None, now: float) -> Vec3:
        if hint is not None:
            s = self._params.motion_scale
            return (hint[0] * s, hint[1] * s, hint[2] * s)

        # Slow synthetic drift when no motion estimate is available
        t_ms = now * 1000.0
        return (
            math.sin(t_ms * 0.001) * 0.02,
            math.cos(t_ms * 0.0015) * 0.01,
            math.sin(t_ms * 0.0008) * 0.03,
        )

    def _advance_pose(self, state: _MapState, motion: Vec3, now: float) -> None:
        state.pose = state.pose.moved(motion)
        sample = TrajectorySample(
            position=state.pose.position,
            timestamp=now,
            confidence=0.8 + float(self._rng.random()) * 0.2,
        )
        state.trajectory.append(sample, math.hypot(*motion))

    @staticmethod
    def _project(
        frame: Frame,
        samples: Sequence[DepthSample],
        pose: CameraPose,
        now: float,
    ) -> list[MapPoint3D]:
        """Pinhole back-projection, offset by the camera position."""
        data = samples_to_array(samples)
        sx, sy, depth, confidence = data.T

        w, h = frame.width, frame.height
        f = 0.5 * w
        cx, cy = w / 2, h / 2

        xs = (sx - cx) / f * depth + pose.x
        ys = (cy - sy) / f * depth + pose.y
        zs = depth + pose.z

        ix = sx.astype(np.int64)
        iy = sy.astype(np.int64)
        inside = (ix >= 0) & (ix < w) & (iy >= 0) & (iy < h)
        colors = np.zeros((len(data), 3), dtype=np.uint8)
        colors[inside] = frame.pixels[iy[inside], ix[inside], :3]

        return [
            MapPoint3D(x, y, z, (int(r), int(g), int(b)), c, now)
            for x, y, z, (r, g, b), c in zip(
                xs.tolist(), ys.tolist(), zs.tolist(), colors, confidence.tolist()
            )
        ]

    def _insert(self, state: _MapState, new_points: Iterable[MapPoint3D]) -> list[MapPoint3D]:
        """
        Merge new points into the map.

        A new point with no neighbour inside dedup_radius is appended. Else
        it is compared with its most confident neighbour: if strictly more
        confident it takes that neighbour's slot and the remaining
        neighbours are removed; otherwise it is dropped.

        Returns:
            Points inserted this tick that are still in the map
        """
        slots: dict[int, MapPoint3D] = dict(enumerate(state.points))
        index = _PointIndex(self._params.dedup_radius)
        for key, point in slots.items():
            index.add(key, point.position)

        next_key = len(slots)
        retained: dict[int, None] = {}

        for point in new_points:
            neighbors = index.neighbors(point.position)
            if not neighbors:
                slots[next_key] = point
                index.add(next_key, point.position)
                retained[next_key] = None
                next_key += 1
                continue

            best = max(neighbors, key=lambda k: slots[k].confidence)
            if point.confidence <= slots[best].confidence:
                continue

            slots[best] = point
            index.move(best, point.position)
            retained[best] = None
            for key in neighbors:
                if key != best:
                    del slots[key]
                    index.remove(key)
                    retained.pop(key, None)

        state.points = list(slots.values())
        return [slots[key] for key in sorted(retained)]

    def _cluster(self, points: Sequence[MapPoint3D]) -> list[list[MapPoint3D]]:
        """
        Distance-threshold clustering with a bounded fan-out.

        The seed absorbs all its unvisited neighbours; each absorbed
        neighbour absorbs at most cluster_fanout further ones.
        """
        p = self._params
        index = _PointIndex(p.cluster_threshold)
        for key, point in enumerate(points):
            index.add(key, point.position)

        visited: set[int] = set()
        clusters = []
        for seed in range(len(points)):
            if seed in visited:
                continue
            visited.add(seed)
            members = [seed]

            for neighbor in index.neighbors(points[seed].position):
                if neighbor in visited:
                    continue
                visited.add(neighbor)
                members.append(neighbor)

                fanout = [
                    k for k in index.neighbors(points[neighbor].position)
                    if k not in visited
                ][: p.cluster_fanout]
                for k in fanout:
                    visited.add(k)
                    members.append(k)

            if len(members) >= p.min_cluster_size:
                clusters.append([points[k] for k in members])

        return clusters

    def _detect_landmarks(self, state: _MapState, points: Sequence[MapPoint3D]) -> int:
        """Promote clusters to landmarks; returns how many were created."""
        p = self._params
        created = 0

        for cluster in self._cluster(points):
            positions = np.array([pt.position for pt in cluster])
            centroid = tuple(float(v) for v in positions.mean(axis=0))

            if any(
                _distance(lm.position, centroid) < p.landmark_dedup_radius
                for lm in state.landmarks
            ):
                continue

            bounds = ClusterBounds.of(positions)
            kind = self._classifier.classify(positions, bounds)
            mean_color = np.array([pt.color for pt in cluster], dtype=np.float64).mean(axis=0)

            state.landmarks.append(
                Landmark(
                    id=f"landmark_{state.next_landmark}",
                    position=centroid,
                    type=kind,
                    confidence=0.7 + float(self._rng.random()) * 0.3,
                    description=(
                        f"{kind} detected with {len(cluster)} points, approximate size "
                        f"{bounds.width:.2f}m x {bounds.height:.2f}m x {bounds.depth:.2f}m"
                    ),
                    features=(
                        bounds.width,
                        bounds.height,
                        bounds.depth,
                        *centroid,
                        float(len(cluster)),
                        *(float(c) / 255.0 for c in mean_color),
                    ),
                )
            )
            state.next_landmark += 1
            created += 1

        # Stable sort keeps older landmarks ahead on confidence ties
        state.landmarks.sort(key=lambda lm: lm.confidence, reverse=True)
        del state.landmarks[p.max_landmarks :]
        return created

    def _prune(self, state: _MapState, now: float) -> None:
        """Drop stale or weak points, then cap the count by confidence."""
        p = self._params
        kept = [
            pt
            for pt in state.points
            if now - pt.timestamp < p.max_point_age_s
            and pt.confidence > p.min_point_confidence
        ]

        if len(kept) > p.max_points:
            confidence = np.array([pt.confidence for pt in kept])
            top = np.sort(np.argsort(-confidence, kind="stable")[: p.max_points])
            kept = [kept[i] for i in top]

        state.points = kept

    def _build_snapshot(self, state: _MapState) -> MapSnapshot:
        points = state.points
        if points:
            positions = np.array([pt.position for pt in points], dtype=np.float64)
            colors = np.array([pt.color for pt in points], dtype=np.uint8)
        else:
            positions = np.empty((0, 3), dtype=np.float64)
            colors = np.empty((0, 3), dtype=np.uint8)

        return MapSnapshot(
            points=positions,
            colors=colors,
            landmarks=tuple(LandmarkSummary.of(lm) for lm in state.landmarks),
            boundaries=self._boundaries(positions, state.pose),
        )

    def _boundaries(self, positions: npt.NDArray, pose: CameraPose) -> tuple[Boundary, ...]:
        """Floor estimate: points well below the camera height."""
        p = self._params
        if len(positions) == 0:
            return ()

        below = positions[positions[:, 1] < pose.y - p.floor_offset][: p.max_floor_points]
        if len(below) > p.min_floor_points:
            return (Boundary("floor", below.copy()),)
        return ()
