"""
Mapping Session
================

Caller-facing wrapper around SpatialMapper: lifecycle, motion hints,
per-tick error capture, statistics and export.

A fault inside SpatialMapper.process_frame never reaches the caller; it
is logged, stored in `error`, and the last good snapshot is returned.
The mapper commits a tick atomically, so the map is left as it was.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Sequence

from loguru import logger

from .config import MappingParams
from .depth import DepthSample
from .frame import Frame
from .mapping import MapSnapshot, SpatialMapper, Vec3


__all__ = ["EXPORT_FORMAT", "EXPORT_VERSION", "MappingStatistics", "MappingSession"]


EXPORT_FORMAT = "SLAM_JSON"
EXPORT_VERSION = "1.0"


@dataclass(frozen=True, slots=True)
class MappingStatistics:
    """
    Map summary after the last processed tick.

    Attributes:
        total_points: Map point count
        total_landmarks: Landmark count
        mapped_area: x-extent * z-extent of the points (2 decimals)
        processing_time_ms: Duration of the last tick
        accuracy: Mean landmark confidence (2 decimals)
    """

    total_points: int = 0
    total_landmarks: int = 0
    mapped_area: float = 0.0
    processing_time_ms: float = 0.0
    accuracy: float = 0.0

    @classmethod
    def from_snapshot(cls, snapshot: MapSnapshot, processing_time_ms: float) -> MappingStatistics:
        points = snapshot.points
        mapped_area = 0.0
        if len(points) > 0:
            width = float(points[:, 0].max() - points[:, 0].min())
            depth = float(points[:, 2].max() - points[:, 2].min())
            mapped_area = width * depth

        landmarks = snapshot.landmarks
        accuracy = (
            sum(lm.confidence for lm in landmarks) / len(landmarks) if landmarks else 0.0
        )

        return cls(
            total_points=snapshot.point_count,
            total_landmarks=len(landmarks),
            mapped_area=round(mapped_area, 2),
            processing_time_ms=processing_time_ms,
            accuracy=round(accuracy, 2),
        )

    def to_dict(self) -> dict:
        return {
            "total_points": self.total_points,
            "total_landmarks": self.total_landmarks,
            "mapped_area": self.mapped_area,
            "processing_time_ms": self.processing_time_ms,
            "accuracy": self.accuracy,
        }

    def __str__(self) -> str:
        return (
            f"{self.total_points} points | {self.total_landmarks} landmarks | "
            f"area {self.mapped_area:.2f} | accuracy {self.accuracy:.2f} | "
            f"{self.processing_time_ms:.1f}ms"
        )


class MappingSession:
    """
    One mapping session over a single SpatialMapper.

    Example:
        >>> session = MappingSession()
        >>> session.start()
        >>> snapshot = session.process_frame(frame, samples)
        >>> if session.error:
        ...     print(f"Mapping failed: {session.error}")
        >>> data = session.export()
    """

    def __init__(
        self,
        mapper: SpatialMapper | None = None,
        params: MappingParams | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        """
        Initialize session (inactive).

        Args:
            mapper: Mapper to wrap; a new one is built from params if None
            params: Mapping parameters for a new mapper
            clock: Time source in seconds for durations and processing times
        """
        self._mapper = mapper or SpatialMapper(params)
        self._clock = clock
        self._motion_hint: Vec3 | None = None
        self._snapshot = self._mapper.snapshot()
        self._statistics = MappingStatistics()
        self._error: str | None = None

        self._frame_count = 0
        self._total_processing_ms = 0.0
        self._start_time = clock()

    # Lifecycle

    def start(self) -> None:
        """Activate mapping and restart the session counters."""
        if self._mapper.active:
            return
        self._mapper.start()
        self._error = None
        self._reset_counters()

    def stop(self) -> None:
        self._mapper.stop()

    def reset(self) -> None:
        """Clear the map, statistics, error and counters."""
        self._mapper.reset()
        self._snapshot = self._mapper.snapshot()
        self._statistics = MappingStatistics()
        self._error = None
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._frame_count = 0
        self._total_processing_ms = 0.0
        self._start_time = self._clock()

    def set_motion_hint(self, hint: Vec3 | None) -> None:
        """Motion estimate used for subsequent frames (None = drift model)."""
        self._motion_hint = None if hint is None else (
            float(hint[0]),
            float(hint[1]),
            float(hint[2]),
        )

    # Processing

    def process_frame(self, frame: Frame, samples: Sequence[DepthSample]) -> MapSnapshot:
        """
        Feed one frame to the mapper.

        Returns:
            New snapshot; the previous one when inactive or on failure
        """
        if not self._mapper.active:
            return self._snapshot

        start = self._clock()
        try:
            snapshot = self._mapper.process_frame(frame, samples, self._motion_hint)
        except Exception as e:
            logger.exception("Mapping tick failed")
            self._error = str(e) or type(e).__name__
            return self._snapshot

        elapsed_ms = (self._clock() - start) * 1000.0
        self._frame_count += 1
        self._total_processing_ms += elapsed_ms

        self._snapshot = snapshot
        self._statistics = MappingStatistics.from_snapshot(snapshot, elapsed_ms)
        self._error = None
        return snapshot

    def optimize(self) -> int:
        """Prune the map now and refresh statistics."""
        removed = self._mapper.optimize()
        self._snapshot = self._mapper.snapshot()
        self._statistics = MappingStatistics.from_snapshot(self._snapshot, 0.0)
        return removed

    # State

    @property
    def mapper(self) -> SpatialMapper:
        return self._mapper

    @property
    def active(self) -> bool:
        return self._mapper.active

    @property
    def snapshot(self) -> MapSnapshot:
        return self._snapshot

    @property
    def statistics(self) -> MappingStatistics:
        return self._statistics

    @property
    def error(self) -> str | None:
        """Message of the last failed tick, cleared by the next good one."""
        return self._error

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def duration_s(self) -> float:
        return self._clock() - self._start_time

    # Export

    def export(self) -> dict:
        """Serializable snapshot of the whole session."""
        duration_s = self.duration_s
        trajectory = self._mapper.trajectory
        avg_ms = (
            self._total_processing_ms / self._frame_count if self._frame_count else 0.0
        )

        data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_info": {
                "duration_ms": round(duration_s * 1000.0),
                "frame_count": self._frame_count,
                "avg_processing_time_ms": round(avg_ms),
            },
            "map": {
                "points": self._snapshot.to_dict()["points"],
                "landmarks": [lm.to_dict() for lm in self._mapper.landmarks],
                "boundaries": [b.to_dict() for b in self._snapshot.boundaries],
            },
            "trajectory": {
                "points": [s.to_dict() for s in trajectory.samples],
                "total_distance": trajectory.total_distance,
                "total_time_s": duration_s,
                "average_speed": (
                    trajectory.total_distance / duration_s if duration_s > 0 else 0.0
                ),
            },
            "statistics": self._statistics.to_dict(),
            "metadata": {
                "version": EXPORT_VERSION,
                "format": EXPORT_FORMAT,
                "coordinate_system": "camera_relative",
            },
        }

        logger.info(
            "Exported map: {} points, {} landmarks, {} frames",
            len(data["map"]["points"]),
            len(data["map"]["landmarks"]),
            self._frame_count,
        )
        return data

    def export_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.export(), indent=indent)
